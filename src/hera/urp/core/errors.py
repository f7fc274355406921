# hera/urp/core/errors.py
"""
Typed errors raised by the report engine.

Every error carries a stable ``kind`` so API and UI layers can map it to a
status code or user message without parsing text.
"""
from __future__ import annotations

from typing import Any, Iterable


class ReportError(Exception):
    kind: str = "report_error"
    status_code: int = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": str(self), **self.details}


class RecipeNotFoundError(ReportError):
    kind = "recipe_not_found"
    status_code = 404

    def __init__(self, recipe_name: str, available: Iterable[str] = ()) -> None:
        self.recipe_name = recipe_name
        available = sorted(available)
        super().__init__(
            f"Recipe '{recipe_name}' not found. Available: {available or '(none)'}",
            recipe_name=recipe_name,
        )


class RecipeConfigError(ReportError):
    kind = "recipe_config_error"
    status_code = 422


class UnknownPrimitiveError(RecipeConfigError):
    kind = "unknown_primitive"

    def __init__(self, primitive: str, recipe_name: str | None = None) -> None:
        self.primitive = primitive
        where = f" in recipe '{recipe_name}'" if recipe_name else ""
        super().__init__(
            f"Unknown primitive '{primitive}'{where}",
            primitive=primitive,
            recipe_name=recipe_name,
        )


class StepConfigError(RecipeConfigError):
    """A primitive rejected its bound step configuration."""

    kind = "step_config_error"


class MissingParameterError(ReportError):
    kind = "missing_parameter"
    status_code = 400

    def __init__(self, recipe_name: str, missing: Iterable[str]) -> None:
        self.missing = sorted(set(missing))
        super().__init__(
            f"Recipe '{recipe_name}' is missing parameter(s): {', '.join(self.missing)}",
            recipe_name=recipe_name,
            missing=self.missing,
        )


class ParameterValidationError(ReportError):
    kind = "parameter_validation_failed"
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message, errors=self.errors)


class UnsupportedFormatError(ReportError):
    kind = "unsupported_format"
    status_code = 400

    def __init__(self, format: str, supported: Iterable[str] = ()) -> None:
        self.format = format
        super().__init__(
            f"Unsupported output format '{format}'. Supported: {sorted(supported)}",
            format=format,
        )


class ViewNotFoundError(ReportError):
    kind = "view_not_found"
    status_code = 404

    def __init__(self, view_name: str) -> None:
        self.view_name = view_name
        super().__init__(
            f"Materialized view '{view_name}' does not exist", view_name=view_name
        )


class ViewNotRefreshedError(ReportError):
    kind = "view_not_refreshed"
    status_code = 409

    def __init__(self, view_name: str) -> None:
        self.view_name = view_name
        super().__init__(
            f"Materialized view '{view_name}' has not been refreshed yet",
            view_name=view_name,
        )


class CycleDetectedError(ReportError):
    kind = "cycle_detected"
    status_code = 422

    def __init__(self, entity_ids: Iterable[str]) -> None:
        self.entity_ids = list(entity_ids)
        super().__init__(
            f"Hierarchy contains a cycle through: {', '.join(self.entity_ids)}",
            entity_ids=self.entity_ids,
        )
