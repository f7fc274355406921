# hera/urp/contracts/recipe.py
"""Pydantic models for recipe definitions."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NEVER_EXPIRE = -1


class RecipeStep(BaseModel):
    """One primitive invocation inside a recipe."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    primitive: str = Field(..., min_length=1, description="Registered primitive name")
    config: dict[str, Any] = Field(default_factory=dict)
    output_key: str | None = Field(
        None,
        alias="outputKey",
        description="Name binding the step output into the parameter bag",
    )

    @field_validator("output_key")
    @classmethod
    def validate_output_key(cls, v: str | None) -> str | None:
        if v is not None and not v.isidentifier():
            raise ValueError(f"output_key '{v}' must be a valid identifier")
        return v


class RecipeDefinition(BaseModel):
    """
    Declarative, named sequence of primitive invocations.

    ``cache_ttl`` is in seconds: ``None`` uses the engine default, ``0``
    disables caching for this recipe and ``-1`` never expires.
    ``parameters`` is an optional JSON Schema for the parameter bag.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., min_length=1)
    description: str | None = None
    version: str = "1"
    steps: list[RecipeStep] = Field(..., min_length=1)
    cache_ttl: int | None = Field(None, alias="cacheTTL")
    parameters: dict[str, Any] | None = None

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: int | None) -> int | None:
        if v is not None and v < NEVER_EXPIRE:
            raise ValueError("cache_ttl must be >= -1")
        return v

    @model_validator(mode="after")
    def validate_output_keys(self) -> RecipeDefinition:
        seen: set[str] = set()
        for step in self.steps:
            if step.output_key is None:
                continue
            if step.output_key in seen:
                raise ValueError(
                    f"Recipe '{self.name}' binds output_key '{step.output_key}' twice"
                )
            seen.add(step.output_key)
        return self
