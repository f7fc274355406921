# hera/urp/api/schemas.py
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hera.urp.contracts.recipe import RecipeDefinition


class ExecuteRequestSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    parameters: dict[str, Any] = Field(default_factory=dict)
    format: str = Field(default="json", description="json, table, csv, excel or pdf")
    locale: str | None = None
    currency: str | None = None
    title: str | None = None
    use_cache: bool = True
    refresh_cache: bool = False


class CreateViewRequestSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipe_name: str = Field(..., min_length=1)
    view_name: str = Field(..., min_length=1)
    refresh_interval: int | None = Field(default=None, ge=0, description="Seconds")
    parameters: dict[str, Any] = Field(default_factory=dict)


class RecipeDescriptorSchema(BaseModel):
    name: str
    description: str | None = None
    version: str
    steps: list[str]
    cache_ttl: int | None = None
    has_parameter_schema: bool = False


class RecipeDetailSchema(BaseModel):
    name: str
    description: str | None = None
    version: str
    cache_ttl: int | None = None
    parameters: dict[str, Any] | None = None
    steps: list[dict[str, Any]]

    @staticmethod
    def from_recipe(recipe: RecipeDefinition) -> RecipeDetailSchema:
        return RecipeDetailSchema(
            name=recipe.name,
            description=recipe.description,
            version=recipe.version,
            cache_ttl=recipe.cache_ttl,
            parameters=recipe.parameters,
            steps=[s.model_dump() for s in recipe.steps],
        )


class ViewDescriptorSchema(BaseModel):
    view_name: str
    recipe_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    refresh_interval: int | None = None
    created_at: str
    refreshed_at: str | None = None
    stale: bool | None = None


class CacheClearedSchema(BaseModel):
    removed: int
    recipe_name: str | None = None
