# hera/urp/contracts/attributes.py
"""
Typed dynamic attribute values.

Every dynamic attribute carries exactly one of five value kinds. Consumers
match on the concrete class instead of casting an untyped value::

    match attr.value:
        case NumberValue(value=amount):
            ...
        case TextValue(value=text):
            ...
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, ClassVar, Union


class AttributeType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"


@dataclass(frozen=True)
class TextValue:
    kind: ClassVar[AttributeType] = AttributeType.TEXT
    value: str


@dataclass(frozen=True)
class NumberValue:
    kind: ClassVar[AttributeType] = AttributeType.NUMBER
    value: Decimal


@dataclass(frozen=True)
class BooleanValue:
    kind: ClassVar[AttributeType] = AttributeType.BOOLEAN
    value: bool


@dataclass(frozen=True)
class DateValue:
    kind: ClassVar[AttributeType] = AttributeType.DATE
    value: date


@dataclass(frozen=True)
class JsonValue:
    kind: ClassVar[AttributeType] = AttributeType.JSON
    value: Any


AttributeValue = Union[TextValue, NumberValue, BooleanValue, DateValue, JsonValue]


@dataclass(frozen=True)
class DynamicAttribute:
    """One EAV row attached to an entity."""

    entity_id: str
    name: str
    value: AttributeValue

    @property
    def type(self) -> AttributeType:
        return self.value.kind


def plain(value: AttributeValue | None) -> Any:
    """Unwrap a typed value to its Python payload (``None`` stays ``None``)."""
    if value is None:
        return None
    return value.value
