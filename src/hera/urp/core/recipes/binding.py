# hera/urp/core/recipes/binding.py
"""
Parameter binding for recipe steps.

Step configs carry Jinja placeholders. A string that is exactly one
``{{ expr }}`` evaluates to the native object, so step outputs (entity
lists, hierarchies) thread through unchanged; any other templated string
is rendered as text.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

import jsonschema
from jinja2 import BaseLoader, Environment, TemplateSyntaxError, Undefined, UndefinedError, meta

from hera.urp.contracts.recipe import RecipeDefinition
from hera.urp.core.errors import (
    MissingParameterError,
    ParameterValidationError,
    StepConfigError,
)

logger = logging.getLogger(__name__)

# Names every step can reference besides parameters and earlier outputs
BUILTIN_NAMES = frozenset(
    {"organization_id", "actor_user_id", "smart_code_prefix", "previous", "now"}
)

_EXPRESSION = re.compile(r"^\s*\{\{(?P<expr>.*)\}\}\s*$", re.DOTALL)


class _StrictishUndefined(Undefined):
    """Jinja undefined that raises when rendered but not on truthiness."""

    def __init__(self, name: str | None = None, **_: Any) -> None:
        self._name = name

    def __str__(self) -> str:
        raise UndefinedError(f"'{self._name}' is undefined in the parameter bag")

    def __bool__(self) -> bool:
        return False

    def __getattr__(self, name: str) -> _StrictishUndefined:
        if name.startswith("__"):
            raise AttributeError(name)
        return _StrictishUndefined(name=f"{self._name}.{name}")


def _create_jinja_env() -> Environment:
    return Environment(
        loader=BaseLoader(),
        autoescape=False,
        keep_trailing_newline=True,
        undefined=_StrictishUndefined,
    )


_jinja_env = _create_jinja_env()


def _is_template(value: str) -> bool:
    return "{{" in value or "{%" in value


def _single_expression(value: str) -> str | None:
    match = _EXPRESSION.match(value)
    if match is None:
        return None
    expr = match.group("expr")
    if "{{" in expr or "}}" in expr:
        return None
    return expr.strip()


def placeholders(value: Any) -> set[str]:
    """Top-level names referenced by the templates inside ``value``."""
    names: set[str] = set()
    if isinstance(value, str):
        if _is_template(value):
            try:
                names |= meta.find_undeclared_variables(_jinja_env.parse(value))
            except TemplateSyntaxError as exc:
                raise StepConfigError(f"Invalid placeholder in {value!r}: {exc}") from exc
    elif isinstance(value, Mapping):
        for item in value.values():
            names |= placeholders(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            names |= placeholders(item)
    return names


def render(value: Any, bag: Mapping[str, Any]) -> Any:
    """Return a copy of ``value`` with every placeholder bound from ``bag``."""
    if isinstance(value, str):
        if not _is_template(value):
            return value
        try:
            expr = _single_expression(value)
            if expr is not None:
                return _jinja_env.compile_expression(expr)(**bag)
            return _jinja_env.from_string(value).render(**bag)
        except (TemplateSyntaxError, UndefinedError) as exc:
            logger.error("Placeholder rendering failed for %r: %s", value, exc)
            raise StepConfigError(f"Cannot bind {value!r}: {exc}") from exc
    if isinstance(value, Mapping):
        return {k: render(v, bag) for k, v in value.items()}
    if isinstance(value, list):
        return [render(v, bag) for v in value]
    if isinstance(value, tuple):
        return tuple(render(v, bag) for v in value)
    return value


class RecipeBinder:
    """Validates parameters against a recipe before any step runs."""

    def validate_parameters(
        self, recipe: RecipeDefinition, parameters: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """
        Apply schema defaults and validate against the recipe's JSON Schema.

        Raises:
            ParameterValidationError: If the parameters violate the schema or
                use a builtin name
        """
        enriched = dict(parameters or {})
        schema = recipe.parameters or {}

        for prop_name, prop_schema in (schema.get("properties") or {}).items():
            if prop_name not in enriched and "default" in prop_schema:
                enriched[prop_name] = prop_schema["default"]

        reserved = sorted(BUILTIN_NAMES & enriched.keys())
        if reserved:
            raise ParameterValidationError(
                f"Recipe '{recipe.name}' parameters may not use builtin names: {reserved}",
                errors=[f"'{name}' is a builtin name" for name in reserved],
            )
        if not schema:
            return enriched

        validator_cls = jsonschema.validators.validator_for(schema)
        errors = sorted(validator_cls(schema).iter_errors(enriched), key=lambda e: list(e.path))
        if errors:
            messages = [e.message for e in errors]
            logger.warning(
                "Parameter validation failed for recipe '%s': %s", recipe.name, messages
            )
            raise ParameterValidationError(
                f"Parameter validation failed for recipe '{recipe.name}': {messages[0]}",
                errors=messages,
            )
        return enriched

    def check_placeholders(self, recipe: RecipeDefinition, available: Iterable[str]) -> None:
        """
        Every placeholder must name a parameter, a builtin or the output of
        an earlier step.

        Raises:
            MissingParameterError: Listing every unresolved name
        """
        known = set(available) | BUILTIN_NAMES
        missing: set[str] = set()
        for step in recipe.steps:
            missing |= placeholders(step.config) - known
            if step.output_key:
                known.add(step.output_key)
        if missing:
            raise MissingParameterError(recipe.name, missing)

    def bind(
        self, recipe: RecipeDefinition, parameters: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Validate parameters and placeholders; returns the enriched parameters."""
        validated = self.validate_parameters(recipe, parameters)
        self.check_placeholders(recipe, validated)
        return validated
