# hera/urp/core/recipes/config.py
"""
Recipe loader: reads recipe YAML files and parses them into definitions.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from hera.urp.contracts.recipe import RecipeDefinition
from hera.urp.core.errors import RecipeConfigError
from hera.urp.core.loader import import_attr, load_yaml_files, substitute_env_vars

logger = logging.getLogger(__name__)


def parse_recipe(name: str, spec: dict[str, Any]) -> RecipeDefinition:
    """
    Parse one recipe mapping; the YAML key is the default name.

    Raises:
        RecipeConfigError: If the mapping is not a valid recipe
    """
    data = {"name": name, **(spec or {})}
    try:
        return RecipeDefinition.model_validate(data)
    except ValidationError as exc:
        raise RecipeConfigError(
            f"Invalid recipe '{name}': {exc.errors()[0]['msg']}",
            recipe_name=name,
            errors=[e["msg"] for e in exc.errors()],
        ) from exc


def load_recipes(patterns: Iterable[str]) -> list[RecipeDefinition]:
    """
    Load recipe definitions from YAML.

    Expected YAML::

        recipes:
          account_balance_tree:
            description: Chart of accounts with balances
            cacheTTL: 300
            steps:
              - primitive: entity_resolver
                config:
                  entity_type: gl_account
                outputKey: entities

    ``${VAR:-default}`` is substituted in every string. Later files
    override earlier ones by recipe name.

    Raises:
        RecipeConfigError: Naming the offending file in ``details["source"]``
    """
    recipes: dict[str, RecipeDefinition] = {}
    for config_file in load_yaml_files(patterns):
        for name, spec in (config_file.data.get("recipes") or {}).items():
            try:
                recipe = parse_recipe(name, substitute_env_vars(spec))
            except ValueError as exc:
                raise RecipeConfigError(
                    f"Invalid recipe '{name}' in {config_file.path}: {exc}",
                    recipe_name=name,
                    source=str(config_file.path),
                ) from exc
            except RecipeConfigError as exc:
                exc.details["source"] = str(config_file.path)
                raise
            if recipe.name in recipes:
                logger.info(
                    "Recipe '%s' overridden by %s", recipe.name, config_file.path
                )
            recipes[recipe.name] = recipe
    logger.info("Loaded %d recipe(s): %s", len(recipes), list(recipes))
    return list(recipes.values())


def load_primitives(patterns: Iterable[str]) -> list[Any]:
    """
    Instantiate extra primitives declared in recipe files.

    Expected YAML::

        primitives:
          - class: my_package.reports:AgingBuckets
            config: {}
    """
    primitives: list[Any] = []
    for config_file in load_yaml_files(patterns):
        for spec in config_file.data.get("primitives") or []:
            class_path = spec.get("class")
            if not class_path:
                raise RecipeConfigError(
                    f"Primitive entry in {config_file.path} is missing 'class'",
                    source=str(config_file.path),
                )
            try:
                cls = import_attr(class_path)
            except (ImportError, AttributeError, ValueError) as exc:
                raise RecipeConfigError(
                    f"Cannot load primitive '{class_path}': {exc}",
                    source=str(config_file.path),
                ) from exc
            primitives.append(cls(**substitute_env_vars(spec.get("config") or {})))
    return primitives
