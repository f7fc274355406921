# hera/urp/core/recipes/registry.py
"""In-memory recipe registry keyed by recipe name."""
from __future__ import annotations

import logging
from typing import Any, Iterator

from hera.urp.contracts.recipe import RecipeDefinition
from hera.urp.core.errors import RecipeNotFoundError

logger = logging.getLogger(__name__)


class RecipeRegistry:
    """
    Registered recipes. Registering an existing name replaces it.

    Lookups hand out the stored definition; ``snapshot`` hands out deep
    copies for callers that may mutate them.
    """

    def __init__(self) -> None:
        self._recipes: dict[str, RecipeDefinition] = {}

    def register(self, recipe: RecipeDefinition) -> None:
        if recipe.name in self._recipes:
            logger.info("Replacing recipe: %s", recipe.name)
        else:
            logger.info("Registered recipe: %s", recipe.name)
        self._recipes[recipe.name] = recipe.model_copy(deep=True)

    def get(self, name: str) -> RecipeDefinition:
        try:
            return self._recipes[name]
        except KeyError:
            raise RecipeNotFoundError(name, self._recipes) from None

    def has(self, name: str) -> bool:
        return name in self._recipes

    def unregister(self, name: str) -> bool:
        removed = self._recipes.pop(name, None) is not None
        if removed:
            logger.info("Unregistered recipe: %s", name)
        return removed

    def names(self) -> list[str]:
        return list(self._recipes)

    def snapshot(self) -> list[RecipeDefinition]:
        return [r.model_copy(deep=True) for r in self._recipes.values()]

    def list_all(self) -> list[dict[str, Any]]:
        return [
            {
                "name": r.name,
                "description": r.description,
                "version": r.version,
                "steps": [s.primitive for s in r.steps],
                "cache_ttl": r.cache_ttl,
                "has_parameter_schema": r.parameters is not None,
            }
            for r in self._recipes.values()
        ]

    def __iter__(self) -> Iterator[RecipeDefinition]:
        return iter(list(self._recipes.values()))

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._recipes)
