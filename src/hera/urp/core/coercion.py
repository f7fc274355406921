# hera/urp/core/coercion.py
"""
Coercion of raw store values into typed dynamic attribute values.
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from hera.urp.contracts.attributes import (
    AttributeType,
    AttributeValue,
    BooleanValue,
    DateValue,
    JsonValue,
    NumberValue,
    TextValue,
)

logger = logging.getLogger(__name__)


class CoercionError(ValueError):
    """Raised when a value cannot be coerced to the declared attribute type."""

    def __init__(self, name: str, value: Any, expected_type: str, reason: str = ""):
        self.name = name
        self.value = value
        self.expected_type = expected_type
        msg = f"Cannot coerce attribute '{name}' value {value!r} to {expected_type}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def to_decimal(value: Any) -> Decimal:
    """Exact decimal conversion; floats go through ``str`` to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"boolean {value!r} is not a number")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def coerce_attribute(name: str, raw_type: str | None, value: Any) -> AttributeValue:
    """
    Coerce a raw (type, value) pair from the store into a typed value.

    Supports:
        - text: str() of the value
        - number: exact Decimal
        - boolean: bools, 'true'/'1'/'yes' and 'false'/'0'/'no'
        - date: date, datetime or ISO-8601 string
        - json: dicts/lists as-is, strings parsed as JSON

    An absent type is inferred from the Python value.

    Raises:
        CoercionError: If coercion fails
    """
    attr_type = _resolve_type(name, raw_type, value)

    if attr_type is AttributeType.TEXT:
        return TextValue("" if value is None else str(value))

    if attr_type is AttributeType.NUMBER:
        try:
            return NumberValue(to_decimal(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise CoercionError(name, value, "number", str(exc)) from exc

    if attr_type is AttributeType.BOOLEAN:
        if isinstance(value, bool):
            return BooleanValue(value)
        lower = str(value).strip().lower()
        if lower in ("true", "1", "yes"):
            return BooleanValue(True)
        if lower in ("false", "0", "no", ""):
            return BooleanValue(False)
        raise CoercionError(name, value, "boolean", f"expected true/false, got '{value}'")

    if attr_type is AttributeType.DATE:
        if isinstance(value, datetime):
            return DateValue(value.date())
        if isinstance(value, date):
            return DateValue(value)
        try:
            return DateValue(datetime.fromisoformat(str(value)).date())
        except ValueError as exc:
            raise CoercionError(name, value, "date", str(exc)) from exc

    # AttributeType.JSON
    if isinstance(value, str):
        try:
            return JsonValue(json.loads(value))
        except json.JSONDecodeError as exc:
            raise CoercionError(name, value, "json", str(exc)) from exc
    return JsonValue(value)


def _resolve_type(name: str, raw_type: str | None, value: Any) -> AttributeType:
    if raw_type:
        try:
            return AttributeType(raw_type.lower())
        except ValueError:
            logger.warning(
                "Unknown attribute type '%s' for '%s', treating as text", raw_type, name
            )
            return AttributeType.TEXT

    if isinstance(value, bool):
        return AttributeType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return AttributeType.NUMBER
    if isinstance(value, (date, datetime)):
        return AttributeType.DATE
    if isinstance(value, (dict, list)):
        return AttributeType.JSON
    return AttributeType.TEXT
