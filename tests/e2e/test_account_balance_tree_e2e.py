# tests/e2e/test_account_balance_tree_e2e.py
import asyncio
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from hera.urp.contracts.entity import Entity, Relationship
from hera.urp.core.engine import ReportEngine
from hera.urp.core.errors import ParameterValidationError
from hera.urp.core.recipes import load_recipes
from tests.helpers.memory_store import ORG, chart_of_accounts_store, journal

RECIPES = Path(__file__).resolve().parents[2] / "config" / "recipes.yaml"


def make_engine(store) -> ReportEngine:
    engine = ReportEngine(store, ORG)
    for recipe in load_recipes([str(RECIPES)]):
        engine.register_recipe(recipe)
    return engine


def test_account_balance_tree_end_to_end():
    store = chart_of_accounts_store()
    engine = make_engine(store)

    output = asyncio.run(engine.execute_recipe("account_balance_tree"))
    result = output.content

    # Domain-level assertions
    assert [n.code for n in result.roots] == ["1000", "3000"]
    assert result.find("acc-1000").balance == Decimal("800")
    assert result.find("acc-1100").balance == Decimal("500")
    assert result.find("acc-1200").balance == Decimal("300")
    assert result.find("acc-3000").balance == Decimal("-800")
    assert result.find("acc-1100").depth == 1
    assert result.grand_total == Decimal("0")
    assert result.unmatched == []
    assert result.summary["is_balanced"] is True
    assert output.metadata["cache"] == "miss"


def test_account_balance_tree_period_and_formats():
    store = chart_of_accounts_store()
    engine = make_engine(store)

    january = asyncio.run(
        engine.execute_recipe(
            "account_balance_tree", {"date_from": "2024-01-01", "date_to": "2024-01-31"}
        )
    )
    assert january.content.find("acc-1000").balance == Decimal("500")
    assert january.content.find("acc-1200").balance == Decimal("0")

    csv = asyncio.run(engine.execute_recipe("account_balance_tree", format="csv", currency="USD"))
    lines = csv.content.splitlines()
    assert lines[0].startswith("entity_id,code,name,depth")
    assert "$800.00" in lines[1]

    pdf = asyncio.run(engine.execute_recipe("account_balance_tree", format="pdf"))
    assert pdf.content.startswith(b"%PDF")
    assert pdf.metadata["cache"] == "hit"


def test_trial_balance_joins_totals_onto_accounts():
    engine = make_engine(chart_of_accounts_store())

    rows = asyncio.run(engine.execute_recipe("trial_balance")).content

    assert [r["code"] for r in rows] == ["1000", "1100", "1200", "3000"]
    by_code = {r["code"]: r["totals"] for r in rows}
    assert by_code["1000"] is None
    assert by_code["1100"]["debit"] == Decimal("500")
    assert by_code["3000"]["credit"] == Decimal("800")
    assert by_code["3000"]["balance"] == Decimal("-800")


def test_chart_of_accounts_recipe_with_attributes():
    engine = make_engine(chart_of_accounts_store())

    output = asyncio.run(
        engine.execute_recipe("HERA.URP.RECIPE.FINANCE.COA.V1", format="table")
    )

    columns = output.content["columns"]
    rows = [dict(zip(columns, r)) for r in output.content["rows"]]
    cash = next(r for r in rows if r["id"] == "acc-1100")
    assert cash["bank_name"] == "First Bank"
    assert cash["depth"] == 1


def test_customer_list_with_sales_rep():
    store = chart_of_accounts_store()
    store.entities.extend(
        [
            Entity(id="c1", organization_id=ORG, type="customer", name="Acme"),
            Entity(id="c2", organization_id=ORG, type="customer", name="Beta"),
            Entity(id="e1", organization_id=ORG, type="employee", name="Alice"),
        ]
    )
    store.relationships.append(Relationship(ORG, "c1", "e1", "assigned_to"))
    engine = make_engine(store)

    rows = asyncio.run(engine.execute_recipe("customer_list")).content

    assert [(r["name"], r["sales_rep"]["name"] if r["sales_rep"] else None) for r in rows] == [
        ("Acme", "Alice"),
        ("Beta", None),
    ]


def test_monthly_sales_requires_a_period():
    store = chart_of_accounts_store()
    store.transactions.extend(
        [
            journal("s1", date(2024, 1, 5), ("acc-1200", "debit", "100"), type="sale"),
            journal("s2", date(2024, 1, 20), ("acc-1200", "debit", "50"), type="sale"),
            journal("s3", date(2024, 2, 2), ("acc-1200", "debit", "30"), type="sale"),
        ]
    )
    engine = make_engine(store)

    with pytest.raises(ParameterValidationError):
        asyncio.run(engine.execute_recipe("monthly_sales"))

    rows = asyncio.run(
        engine.execute_recipe(
            "monthly_sales", {"date_from": "2024-01-01", "date_to": "2024-12-31"}
        )
    ).content

    assert [(r.dimensions["month"], r.measures["revenue"], r.measures["orders"]) for r in rows] == [
        ("2024-01", Decimal("150"), 2),
        ("2024-02", Decimal("30"), 1),
    ]
    assert rows[0].measures["average_order"] == Decimal("75")
