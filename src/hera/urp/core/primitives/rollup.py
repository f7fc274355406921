# hera/urp/core/primitives/rollup.py
"""
RollupBalance: bubble fact balances up a hierarchy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Iterable, Iterator, Mapping

from hera.urp.core.coercion import to_decimal
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import StepConfigError
from hera.urp.core.primitives.base import choice, get_path, require, to_row
from hera.urp.core.primitives.hierarchy import Hierarchy, HierarchyNode

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Account classes whose balance normally sits on the debit side
DEBIT_NORMAL = frozenset({"asset", "expense"})
ACCOUNT_CLASSES = DEBIT_NORMAL | {"liability", "equity", "revenue", "income"}


@dataclass
class RollupNode:
    entity_id: str
    code: str | None
    name: str
    depth: int
    path: list[str]
    own_balance: Decimal = ZERO
    balance: Decimal = ZERO
    fact_count: int = 0
    normal_balance: str = "debit"
    children: list[RollupNode] = field(default_factory=list)

    def walk(self) -> Iterator[RollupNode]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_row(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "code": self.code,
            "name": self.name,
            "depth": self.depth,
            "path": list(self.path),
            "own_balance": self.own_balance,
            "balance": self.balance,
            "fact_count": self.fact_count,
            "normal_balance": self.normal_balance,
            "child_count": len(self.children),
        }


@dataclass
class RollupResult:
    """
    Balance tree plus totals.

    ``sum(root.balance) + unmatched_total == grand_total`` always holds.
    """

    roots: list[RollupNode] = field(default_factory=list)
    grand_total: Decimal = ZERO
    unmatched: list[dict[str, Any]] = field(default_factory=list)
    unmatched_total: Decimal = ZERO
    summary: dict[str, Any] = field(default_factory=dict)

    def __iter__(self) -> Iterator[RollupNode]:
        return iter(self.roots)

    def walk(self) -> Iterator[RollupNode]:
        for root in self.roots:
            yield from root.walk()

    def find(self, entity_id: str) -> RollupNode | None:
        return next((n for n in self.walk() if n.entity_id == entity_id), None)

    def to_rows(self) -> list[dict[str, Any]]:
        return [node.to_row() for node in self.walk()]


class RollupBalance:
    """
    Computes hierarchical balances from fact rows.

    Config keys:
        transactions: Fact rows (``transaction_facts`` output or dicts; required)
        hierarchy: ``Hierarchy`` or list of hierarchy nodes (required)
        balance_field: Measure holding the signed balance (default ``net``)
        side: ``debit`` (default) keeps the sign, ``credit`` flips it
        entity_field: Fact field holding the entity id (default ``entity_id``)
        tolerance: Trial balance tolerance (default ``0.01``)
    """

    name: ClassVar[str] = "rollup_balance"
    aliases: ClassVar[tuple[str, ...]] = ("rollupBalance", "rollup")

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> RollupResult:
        return self.calculate(config)

    def calculate(self, config: Mapping[str, Any]) -> RollupResult:
        facts = [to_row(f) for f in require(config, "transactions", self.name)]
        roots = _roots(require(config, "hierarchy", self.name))
        balance_field = config.get("balance_field") or "net"
        entity_field = config.get("entity_field") or "entity_id"
        side = choice(config, "side", ("debit", "credit"), self.name)
        sign = Decimal(1) if side == "debit" else Decimal(-1)
        try:
            tolerance = to_decimal(config.get("tolerance", "0.01"))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise StepConfigError(f"rollup_balance: invalid tolerance {config.get('tolerance')!r}") from exc

        # Per-entity postings
        postings: dict[str, Decimal] = {}
        counts: dict[str, int] = {}
        total_debits = ZERO
        total_credits = ZERO
        grand_total = ZERO
        for fact in facts:
            entity_id = get_path(fact, entity_field)
            key = str(entity_id) if entity_id is not None else None
            value = sign * _number(fact, balance_field)
            grand_total += value
            postings[key] = postings.get(key, ZERO) + value
            counts[key] = counts.get(key, 0) + 1

            debit, credit = _sides(fact, balance_field)
            total_debits += debit
            total_credits += credit

        result = RollupResult(grand_total=grand_total)
        seen: set[str] = set()
        result.roots = [self._roll(root, postings, counts, side, seen) for root in roots]

        for key, amount in postings.items():
            if key in seen:
                continue
            result.unmatched.append(
                {"entity_id": key, "balance": amount, "fact_count": counts[key]}
            )
            result.unmatched_total += amount
        if result.unmatched:
            logger.warning(
                "%d fact groups reference entities outside the hierarchy (total %s)",
                len(result.unmatched),
                result.unmatched_total,
            )

        difference = total_debits - total_credits
        result.summary = {
            "total_debits": total_debits,
            "total_credits": total_credits,
            "balance_difference": difference,
            "is_balanced": abs(difference) <= tolerance,
        }
        logger.debug(
            "Rolled up %d facts over %d roots: grand_total=%s unmatched=%s",
            len(facts),
            len(result.roots),
            result.grand_total,
            result.unmatched_total,
        )
        return result

    def _roll(
        self,
        root: HierarchyNode,
        postings: Mapping[str | None, Decimal],
        counts: Mapping[str | None, int],
        side: str,
        seen: set[str],
    ) -> RollupNode:
        """Post-order: children are summed before their parent."""
        built: dict[int, RollupNode] = {}
        stack: list[tuple[HierarchyNode, bool]] = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if not expanded:
                stack.append((node, True))
                stack.extend((child, False) for child in reversed(node.children))
                continue

            entity = node.entity
            own = postings.get(node.id, ZERO)
            children = [built.pop(id(child)) for child in node.children]
            seen.add(node.id)
            built[id(node)] = RollupNode(
                entity_id=node.id,
                code=entity.code,
                name=entity.name,
                depth=node.depth,
                path=list(node.path),
                own_balance=own,
                balance=own + sum((c.balance for c in children), ZERO),
                fact_count=counts.get(node.id, 0) + sum(c.fact_count for c in children),
                normal_balance=_normal_balance(node, side),
                children=children,
            )
        return built[id(root)]


def _roots(hierarchy: Any) -> list[HierarchyNode]:
    if isinstance(hierarchy, Hierarchy):
        return list(hierarchy.roots)
    if isinstance(hierarchy, HierarchyNode):
        return [hierarchy]
    if isinstance(hierarchy, Iterable) and not isinstance(hierarchy, (str, bytes, Mapping)):
        nodes = list(hierarchy)
        if all(isinstance(n, HierarchyNode) for n in nodes):
            return nodes
    raise StepConfigError(
        f"rollup_balance: 'hierarchy' must be a hierarchy_builder output, got {type(hierarchy).__name__}"
    )


def _number(fact: Mapping[str, Any], name: str) -> Decimal:
    raw = get_path(fact, name)
    if raw is None:
        return ZERO
    try:
        return to_decimal(raw)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise StepConfigError(f"rollup_balance: field '{name}' is not numeric ({raw!r})") from exc


def _sides(fact: Mapping[str, Any], balance_field: str) -> tuple[Decimal, Decimal]:
    """Debit and credit totals of one fact, from explicit measures or the balance sign."""
    if "debit" in fact or "credit" in fact:
        return _number(fact, "debit"), _number(fact, "credit")
    value = _number(fact, balance_field)
    return (value, ZERO) if value >= 0 else (ZERO, -value)


def _normal_balance(node: HierarchyNode, side: str) -> str:
    entity = node.entity
    explicit = entity.get("normal_balance")
    if explicit in ("debit", "credit"):
        return explicit
    account_type = entity.get("account_type")
    if account_type is None and entity.smart_code:
        # HERA.FIN.GL.ACC.ASSET.V1 -> asset
        parts = entity.smart_code.lower().split(".")
        candidate = parts[-2] if len(parts) >= 2 else None
        account_type = candidate if candidate in ACCOUNT_CLASSES else None
    if account_type:
        return "debit" if str(account_type).lower() in DEBIT_NORMAL else "credit"
    return side
