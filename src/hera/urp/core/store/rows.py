# hera/urp/core/store/rows.py
"""
Mapping of raw entity store rows (JSON) to report engine contracts.

The store returns the column names of its six generic tables
(``entity_name``, ``field_value_number``, ``line_amount`` ...).
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping

from hera.urp.contracts.attributes import DynamicAttribute
from hera.urp.contracts.entity import Entity, Relationship, Transaction, TransactionLine
from hera.urp.core.coercion import coerce_attribute, to_decimal

logger = logging.getLogger(__name__)

_VALUE_COLUMNS = (
    ("field_value_number", "number"),
    ("field_value_boolean", "boolean"),
    ("field_value_date", "date"),
    ("field_value_json", "json"),
    ("field_value_text", "text"),
)


def entity_from_row(row: Mapping[str, Any]) -> Entity:
    metadata = dict(row.get("metadata") or {})
    tags = row.get("tags") or metadata.get("tags") or ()
    return Entity(
        id=str(row["id"]),
        organization_id=str(row["organization_id"]),
        type=row.get("entity_type") or row.get("type") or "",
        name=row.get("entity_name") or row.get("name") or "",
        code=row.get("entity_code") or row.get("code"),
        parent_ref=row.get("parent_entity_id") or row.get("parent_ref"),
        tags=tuple(tags),
        smart_code=row.get("smart_code") or "",
        status=row.get("status") or "active",
        metadata=metadata,
    )


def attribute_from_row(row: Mapping[str, Any]) -> DynamicAttribute:
    """
    Build a typed attribute from a ``core_dynamic_data`` row.

    ``field_type`` wins when present; otherwise the first populated
    ``field_value_*`` column decides the type.
    """
    name = row["field_name"]
    raw_type = row.get("field_type")
    if "field_value" in row:
        value = row["field_value"]
    else:
        value = None
        for column, column_type in _VALUE_COLUMNS:
            if row.get(column) is not None:
                value = row[column]
                raw_type = raw_type or column_type
                break

    return DynamicAttribute(
        entity_id=str(row["entity_id"]),
        name=name,
        value=coerce_attribute(name, raw_type, value),
    )


def relationship_from_row(row: Mapping[str, Any]) -> Relationship:
    return Relationship(
        organization_id=str(row["organization_id"]),
        from_entity_id=str(row["from_entity_id"]),
        to_entity_id=str(row["to_entity_id"]),
        type=row.get("relationship_type") or row.get("type") or "",
        data=dict(row.get("relationship_data") or row.get("metadata") or {}),
    )


def line_from_row(row: Mapping[str, Any], position: int) -> TransactionLine:
    metadata = dict(row.get("metadata") or {})

    debit = row.get("debit_amount", row.get("debit"))
    credit = row.get("credit_amount", row.get("credit"))
    if debit or credit:
        entry_type = "debit" if debit else "credit"
        amount = to_decimal(debit or credit)
    else:
        amount = to_decimal(row.get("line_amount") or 0)
        entry_type = row.get("entry_type") or metadata.get("entry_type") or "debit"
        if amount < 0:
            # Signed amounts: negative postings are credits
            entry_type = "credit" if entry_type == "debit" else "debit"
            amount = -amount

    entity_id = row.get("line_entity_id") or row.get("entity_id")
    return TransactionLine(
        line_number=int(row.get("line_number") or position),
        entity_id=str(entity_id) if entity_id is not None else None,
        amount=amount,
        entry_type=entry_type,
        quantity=to_decimal(row.get("quantity") or 0),
        smart_code=row.get("smart_code"),
        metadata=metadata,
    )


def transaction_from_row(row: Mapping[str, Any]) -> Transaction:
    lines = row.get("lines") or row.get("universal_transaction_lines") or []
    return Transaction(
        id=str(row["id"]),
        organization_id=str(row["organization_id"]),
        type=row.get("transaction_type") or row.get("type") or "",
        transaction_date=_parse_date(row.get("transaction_date")),
        smart_code=row.get("smart_code") or "",
        source_entity_id=row.get("source_entity_id"),
        target_entity_id=row.get("target_entity_id"),
        total_amount=to_decimal(row.get("total_amount") or 0),
        currency=row.get("transaction_currency_code") or row.get("currency"),
        status=row.get("transaction_status") or row.get("status") or "posted",
        metadata=dict(row.get("metadata") or {}),
        lines=tuple(line_from_row(line, i + 1) for i, line in enumerate(lines)),
    )


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("transaction_date is required")
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
