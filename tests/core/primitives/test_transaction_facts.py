# tests/core/primitives/test_transaction_facts.py
from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from hera.urp.core.errors import StepConfigError
from hera.urp.core.primitives import FactRow, Measure, TransactionFacts
from tests.helpers.memory_store import OTHER_ORG, journal


@pytest.fixture
def facts() -> TransactionFacts:
    return TransactionFacts()


def by_entity(rows: list[FactRow]) -> dict[str, dict]:
    return {r.dimensions["entity_id"]: r.measures for r in rows}


class TestMeasure:
    def test_parse_mapping(self):
        m = Measure.parse({"name": "revenue", "op": "SUM", "field": "amount"})
        assert m == Measure("revenue", "sum", "amount")

    def test_parse_shorthand(self):
        assert Measure.parse("avg:amount") == Measure("amount", "avg", "amount")

    def test_field_defaults_to_amount(self):
        assert Measure.parse({"name": "total", "op": "sum"}).field == "amount"

    def test_count_has_no_field(self):
        assert Measure.parse({"name": "n", "op": "count"}).field is None

    def test_unknown_op(self):
        with pytest.raises(StepConfigError, match="measure op"):
            Measure.parse({"name": "x", "op": "median"})

    def test_name_required(self):
        with pytest.raises(StepConfigError, match="needs a 'name'"):
            Measure.parse({"op": "sum"})


class TestTransactionFacts:
    @pytest.mark.asyncio
    async def test_default_measures_per_entity(self, facts, context):
        rows = await facts.run({"group_by": ["entity_id"]}, context)
        measures = by_entity(rows)

        assert measures["acc-1100"]["debit"] == Decimal("500")
        assert measures["acc-1100"]["net"] == Decimal("500")
        assert measures["acc-3000"]["credit"] == Decimal("800")
        assert measures["acc-3000"]["net"] == Decimal("-800")
        assert measures["acc-3000"]["count"] == 2
        assert all(isinstance(m["amount"], Decimal) for m in measures.values())

    @pytest.mark.asyncio
    async def test_first_seen_group_order(self, facts, context):
        rows = await facts.run({"group_by": ["entity_id"]}, context)

        assert [r.dimensions["entity_id"] for r in rows] == ["acc-1100", "acc-3000", "acc-1200"]

    @pytest.mark.asyncio
    async def test_no_group_by_yields_one_row(self, facts, context):
        rows = await facts.run({}, context)

        assert len(rows) == 1
        assert rows[0].dimensions == {}
        assert rows[0].measures["net"] == Decimal("0")
        assert rows[0].measures["count"] == 4

    @pytest.mark.asyncio
    async def test_date_range_inclusive(self, facts, context):
        rows = await facts.run(
            {"group_by": ["entity_id"], "date_from": "2024-02-05", "date_to": "2024-02-05"},
            context,
        )

        assert set(by_entity(rows)) == {"acc-1200", "acc-3000"}

    @pytest.mark.asyncio
    async def test_invalid_date(self, facts, context):
        with pytest.raises(StepConfigError, match="not an ISO date"):
            await facts.run({"date_from": "last week"}, context)

    @pytest.mark.asyncio
    async def test_group_by_month(self, facts, context):
        rows = await facts.run(
            {"group_by": ["month"], "measures": [{"name": "debits", "op": "sum", "field": "debit"}]},
            context,
        )

        assert [(r.dimensions["month"], r.measures["debits"]) for r in rows] == [
            ("2024-01", Decimal("500")),
            ("2024-02", Decimal("300")),
        ]

    @pytest.mark.asyncio
    async def test_header_grain(self, facts, context, store):
        store.transactions.append(
            journal("sale-1", date(2024, 3, 1), ("acc-1100", "debit", "150"), type="sale")
        )

        rows = await facts.run(
            {
                "grain": "header",
                "transaction_type": "sale",
                "measures": ["sum:amount", {"name": "orders", "op": "count"}],
            },
            context,
        )

        assert len(rows) == 1
        assert rows[0].measures == {"amount": Decimal("150"), "orders": 1}

    @pytest.mark.asyncio
    async def test_entity_ids_filter(self, facts, context):
        rows = await facts.run(
            {"group_by": ["entity_id"], "entity_ids": ["acc-1200"]}, context
        )

        assert list(by_entity(rows)) == ["acc-1200"]

    @pytest.mark.asyncio
    async def test_min_max_avg(self, facts, context):
        rows = await facts.run(
            {
                "measures": [
                    {"name": "lo", "op": "min"},
                    {"name": "hi", "op": "max"},
                    {"name": "mean", "op": "avg"},
                ]
            },
            context,
        )

        assert rows[0].measures == {
            "lo": Decimal("300"),
            "hi": Decimal("500"),
            "mean": Decimal("400"),
        }

    @pytest.mark.asyncio
    async def test_drops_other_organizations(self, facts, context, store):
        store.transactions.append(
            journal("txn-x", date(2024, 1, 1), ("acc-9999", "debit", "999"), org=OTHER_ORG)
        )

        async def leaky(organization_id, filter):
            return list(store.transactions)

        store.query_transactions = leaky

        rows = await facts.run({"group_by": ["entity_id"]}, context)

        assert "acc-9999" not in by_entity(rows)

    @pytest.mark.asyncio
    async def test_metadata_dimension(self, facts, context, store):
        txn = journal("txn-3", date(2024, 3, 1), ("acc-1100", "debit", "10"))
        store.transactions.append(replace(txn, metadata={"region": "EU"}))

        rows = await facts.run({"group_by": ["metadata.region"]}, context)

        regions = {r.dimensions["metadata.region"]: r.measures["count"] for r in rows}
        assert regions == {None: 4, "EU": 1}

    @pytest.mark.asyncio
    async def test_non_numeric_field(self, facts, context):
        with pytest.raises(StepConfigError, match="not numeric"):
            await facts.run(
                {"measures": [{"name": "x", "op": "sum", "field": "transaction_type"}]}, context
            )

    def test_fact_row_to_row(self):
        row = FactRow(dimensions={"entity_id": "a"}, measures={"net": Decimal("1")})
        assert row.to_row() == {"entity_id": "a", "net": Decimal("1")}
