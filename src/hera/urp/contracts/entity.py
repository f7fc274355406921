# hera/urp/contracts/entity.py
"""
Read-only views of the generic data store rows consumed by the report engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from hera.urp.contracts.attributes import AttributeValue, plain


@dataclass(frozen=True)
class Entity:
    """
    A generic typed record (GL account, customer, product, ...).

    Attributes:
        id: Entity identifier
        organization_id: Owning organization
        type: Entity type (e.g. ``gl_account``)
        name: Display name
        code: Optional business code (account number, SKU)
        parent_ref: Optional parent entity id
        tags: Free-form classification tags
        attributes: Hydrated dynamic attributes by name
        smart_code: Business-meaning classifier (``HERA.FIN.GL.ACC.ASSET.V1``)
        status: Lifecycle status
        metadata: Fixed-schema JSON metadata column
    """

    id: str
    organization_id: str
    type: str
    name: str
    code: str | None = None
    parent_ref: str | None = None
    tags: tuple[str, ...] = ()
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    smart_code: str = ""
    status: str = "active"
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def with_attributes(self, attributes: Mapping[str, AttributeValue]) -> Entity:
        return replace(self, attributes=dict(attributes))

    def get(self, name: str, default: Any = None) -> Any:
        """Look up a fixed field, then metadata, then a dynamic attribute."""
        if name in _ENTITY_FIELDS:
            return getattr(self, name)
        if name in self.metadata:
            return self.metadata[name]
        if name in self.attributes:
            return plain(self.attributes[name])
        return default

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": self.id,
            "organization_id": self.organization_id,
            "type": self.type,
            "name": self.name,
            "code": self.code,
            "parent_ref": self.parent_ref,
            "tags": list(self.tags),
            "smart_code": self.smart_code,
            "status": self.status,
        }
        for key, value in self.attributes.items():
            row.setdefault(key, plain(value))
        return row


_ENTITY_FIELDS = frozenset(
    {
        "id",
        "organization_id",
        "type",
        "name",
        "code",
        "parent_ref",
        "tags",
        "smart_code",
        "status",
    }
)


@dataclass(frozen=True)
class Relationship:
    organization_id: str
    from_entity_id: str
    to_entity_id: str
    type: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionLine:
    """
    A posting line of a universal transaction.

    ``amount`` is always non-negative; direction is carried by ``entry_type``
    (``debit`` or ``credit``).
    """

    line_number: int
    entity_id: str | None
    amount: Decimal
    entry_type: str = "debit"
    quantity: Decimal = Decimal("0")
    smart_code: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def debit(self) -> Decimal:
        return self.amount if self.entry_type == "debit" else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.entry_type == "credit" else Decimal("0")


@dataclass(frozen=True)
class Transaction:
    id: str
    organization_id: str
    type: str
    transaction_date: date
    smart_code: str = ""
    source_entity_id: str | None = None
    target_entity_id: str | None = None
    total_amount: Decimal = Decimal("0")
    currency: str | None = None
    status: str = "posted"
    metadata: Mapping[str, Any] = field(default_factory=dict)
    lines: tuple[TransactionLine, ...] = ()


# -- Store filters -------------------------------------------------------------


@dataclass(frozen=True)
class EntityFilter:
    entity_type: str | None = None
    smart_code_prefix: str | None = None
    parent_id: str | None = None
    status: str | None = None
    ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RelationshipFilter:
    relationship_type: str | None = None
    from_entity_ids: tuple[str, ...] | None = None
    to_entity_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class TransactionFilter:
    transaction_types: tuple[str, ...] | None = None
    smart_code_prefix: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    source_entity_id: str | None = None
    target_entity_id: str | None = None
    status: str | None = None
