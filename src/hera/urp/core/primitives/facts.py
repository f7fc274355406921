# hera/urp/core/primitives/facts.py
"""
TransactionFacts: aggregate universal transactions into fact rows.

Amounts are accumulated as ``Decimal`` so sums over many small postings
stay exact.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Iterable, Iterator, Mapping

from hera.urp.contracts.entity import Transaction, TransactionFilter
from hera.urp.core.coercion import to_decimal
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import StepConfigError
from hera.urp.core.primitives.base import as_list, choice, get_path

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

MEASURE_OPS = ("sum", "count", "avg", "min", "max", "net")

DEFAULT_MEASURES: tuple[dict[str, str], ...] = (
    {"name": "amount", "op": "sum", "field": "amount"},
    {"name": "net", "op": "net", "field": "amount"},
    {"name": "debit", "op": "sum", "field": "debit"},
    {"name": "credit", "op": "sum", "field": "credit"},
    {"name": "count", "op": "count"},
)

# Derived date dimensions
_DATE_PARTS = {
    "year": lambda d: d.year,
    "month": lambda d: f"{d.year:04d}-{d.month:02d}",
    "day": lambda d: d.isoformat(),
}


@dataclass(frozen=True)
class Measure:
    name: str
    op: str
    field: str | None = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any] | str) -> Measure:
        if isinstance(raw, str):
            # "sum:amount" shorthand; the measure is named after the field
            op, _, fld = raw.partition(":")
            raw = {"name": fld or op, "op": op, "field": fld or None}
        op = str(raw.get("op", "sum")).lower()
        if op not in MEASURE_OPS:
            raise StepConfigError(
                f"transaction_facts: measure op must be one of {list(MEASURE_OPS)}, got '{op}'"
            )
        name = raw.get("name")
        fld = raw.get("field")
        if not name:
            raise StepConfigError("transaction_facts: every measure needs a 'name'")
        if op != "count" and not fld:
            fld = "amount"
        return cls(name=name, op=op, field=fld)


@dataclass
class FactRow:
    dimensions: dict[str, Any] = field(default_factory=dict)
    measures: dict[str, Decimal | int] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {**self.dimensions, **self.measures}


class _Accumulator:
    __slots__ = ("total", "count", "minimum", "maximum")

    def __init__(self) -> None:
        self.total = ZERO
        self.count = 0
        self.minimum: Decimal | None = None
        self.maximum: Decimal | None = None

    def add(self, value: Decimal) -> None:
        self.total += value
        self.count += 1
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)

    def result(self, op: str) -> Decimal | int:
        if op == "count":
            return self.count
        if op in ("sum", "net"):
            return self.total
        if op == "avg":
            return self.total / self.count if self.count else ZERO
        if op == "min":
            return self.minimum if self.minimum is not None else ZERO
        return self.maximum if self.maximum is not None else ZERO


class TransactionFacts:
    """
    Aggregates transactions (or their lines) into fact rows.

    Config keys:
        transaction_type: Type or list of types
        smart_code_prefix: Transaction smart code prefix
        date_from / date_to: Inclusive ISO date range
        source_entity_id / target_entity_id: Counterparty filters
        entity_ids: Line entity filter (line grain only)
        status: Transaction status filter
        grain: ``line`` (default) or ``header``
        group_by: Dimension names; dotted ``metadata.*`` paths and the derived
                  ``year``, ``month`` and ``day`` are supported
        measures: ``[{name, op, field}]`` with op in sum/count/avg/min/max/net

    Source row fields (line grain): transaction_id, transaction_type,
    transaction_date, smart_code, source_entity_id, target_entity_id,
    currency, status, entity_id, line_number, line_smart_code, entry_type,
    amount, debit, credit, quantity, metadata (line metadata over header).
    """

    name: ClassVar[str] = "transaction_facts"
    aliases: ClassVar[tuple[str, ...]] = ("transactionFacts", "facts")

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> list[FactRow]:
        return await self.aggregate(config, context)

    async def aggregate(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> list[FactRow]:
        grain = choice(config, "grain", ("line", "header"), self.name)
        group_by = [str(d) for d in as_list(config.get("group_by"))]
        measures = [Measure.parse(m) for m in (config.get("measures") or DEFAULT_MEASURES)]

        store_filter = TransactionFilter(
            transaction_types=tuple(as_list(config.get("transaction_type"))) or None,
            smart_code_prefix=config.get("smart_code_prefix"),
            date_from=_as_date(config.get("date_from"), "date_from"),
            date_to=_as_date(config.get("date_to"), "date_to"),
            source_entity_id=config.get("source_entity_id"),
            target_entity_id=config.get("target_entity_id"),
            status=config.get("status"),
        )
        transactions = await context.store.query_transactions(
            context.organization_id, store_filter
        )
        transactions = [
            t for t in transactions if self._accept(t, store_filter, context.organization_id)
        ]

        entity_ids = set(as_list(config.get("entity_ids")))
        rows = _header_rows(transactions) if grain == "header" else _line_rows(transactions)
        if entity_ids:
            rows = (r for r in rows if r.get("entity_id") in entity_ids)

        facts = self.group(rows, group_by, measures)
        logger.debug(
            "Aggregated %d transactions into %d fact rows (grain=%s, group_by=%s)",
            len(transactions),
            len(facts),
            grain,
            group_by,
        )
        return facts

    def group(
        self,
        rows: Iterable[Mapping[str, Any]],
        group_by: list[str],
        measures: list[Measure],
    ) -> list[FactRow]:
        """One fact row per distinct group-by combination, in first-seen order."""
        groups: dict[tuple[Any, ...], dict[str, _Accumulator]] = {}
        keys: dict[tuple[Any, ...], dict[str, Any]] = {}

        for row in rows:
            dims = {d: _dimension(row, d) for d in group_by}
            key = tuple(_hashable(v) for v in dims.values())
            if key not in groups:
                groups[key] = {m.name: _Accumulator() for m in measures}
                keys[key] = dims
            accs = groups[key]
            for m in measures:
                if m.op == "count":
                    accs[m.name].count += 1
                    continue
                value = _measure_value(row, m)
                if value is not None:
                    accs[m.name].add(value)

        return [
            FactRow(
                dimensions=keys[key],
                measures={m.name: accs[m.name].result(m.op) for m in measures},
            )
            for key, accs in groups.items()
        ]

    @staticmethod
    def _accept(t: Transaction, f: TransactionFilter, org_id: str) -> bool:
        if t.organization_id != org_id:
            logger.warning(
                "Dropping transaction %s of organization %s returned for organization %s",
                t.id,
                t.organization_id,
                org_id,
            )
            return False
        if f.transaction_types and t.type not in f.transaction_types:
            return False
        if f.smart_code_prefix and not t.smart_code.startswith(f.smart_code_prefix):
            return False
        if f.date_from and t.transaction_date < f.date_from:
            return False
        if f.date_to and t.transaction_date > f.date_to:
            return False
        if f.source_entity_id and t.source_entity_id != f.source_entity_id:
            return False
        if f.target_entity_id and t.target_entity_id != f.target_entity_id:
            return False
        if f.status and t.status != f.status:
            return False
        return True


def _header_fields(t: Transaction) -> dict[str, Any]:
    return {
        "transaction_id": t.id,
        "transaction_type": t.type,
        "transaction_date": t.transaction_date,
        "smart_code": t.smart_code,
        "source_entity_id": t.source_entity_id,
        "target_entity_id": t.target_entity_id,
        "currency": t.currency,
        "status": t.status,
    }


def _header_rows(transactions: Iterable[Transaction]) -> Iterator[dict[str, Any]]:
    for t in transactions:
        row = _header_fields(t)
        debit = sum((line.debit for line in t.lines), ZERO)
        credit = sum((line.credit for line in t.lines), ZERO)
        row.update(
            amount=t.total_amount,
            debit=debit,
            credit=credit,
            entry_type=None,
            metadata=dict(t.metadata),
        )
        yield row


def _line_rows(transactions: Iterable[Transaction]) -> Iterator[dict[str, Any]]:
    for t in transactions:
        header = _header_fields(t)
        for line in t.lines:
            row = dict(header)
            row.update(
                entity_id=line.entity_id,
                line_number=line.line_number,
                line_smart_code=line.smart_code,
                entry_type=line.entry_type,
                amount=line.amount,
                debit=line.debit,
                credit=line.credit,
                quantity=line.quantity,
                metadata={**t.metadata, **line.metadata},
            )
            yield row


def _dimension(row: Mapping[str, Any], name: str) -> Any:
    if name in _DATE_PARTS:
        d = row.get("transaction_date")
        return _DATE_PARTS[name](d) if d is not None else None
    return get_path(row, name)


def _measure_value(row: Mapping[str, Any], m: Measure) -> Decimal | None:
    raw = get_path(row, m.field) if m.field else None
    if raw is None:
        return None
    try:
        value = to_decimal(raw)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise StepConfigError(
            f"transaction_facts: field '{m.field}' is not numeric ({raw!r})"
        ) from exc
    if m.op == "net" and row.get("entry_type") == "credit":
        return -value
    return value


def _hashable(value: Any) -> Any:
    if isinstance(value, (list, dict, set)):
        return repr(value)
    return value


def _as_date(value: Any, key: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise StepConfigError(f"transaction_facts: '{key}' is not an ISO date: {value!r}") from exc
