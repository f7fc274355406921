# tests/api/test_reports_api.py
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from hera.urp.api import reports as reports_api
from hera.urp.main import create_app
from tests.helpers.memory_store import ORG, OTHER_ORG, chart_of_accounts_store

RECIPES = Path(__file__).resolve().parents[2] / "config" / "recipes.yaml"
HEADERS = {"X-Organization-Id": ORG}


@pytest.fixture
def store():
    return chart_of_accounts_store()


@pytest.fixture
def client(store):
    app = create_app(store=store, recipes_config_paths=[str(RECIPES)])
    with TestClient(app) as c:
        yield c


def test_organization_header_required(client):
    resp = client.get("/reports/recipes")

    assert resp.status_code == 400


def test_list_and_describe_recipes(client):
    resp = client.get("/reports/recipes", headers=HEADERS)

    assert resp.status_code == 200, resp.text
    recipes = {r["name"]: r for r in resp.json()}
    assert recipes["account_balance_tree"]["steps"] == [
        "entity_resolver",
        "hierarchy_builder",
        "transaction_facts",
        "rollup_balance",
    ]
    assert recipes["account_balance_tree"]["has_parameter_schema"] is True
    assert recipes["customer_list"]["has_parameter_schema"] is False

    detail = client.get("/reports/recipes/monthly_sales", headers=HEADERS).json()
    assert detail["parameters"]["required"] == ["date_from", "date_to"]
    assert detail["cache_ttl"] == 900


def test_unknown_recipe_is_404(client):
    resp = client.get("/reports/recipes/nope", headers=HEADERS)

    assert resp.status_code == 404
    assert resp.json()["detail"]["error"] == "recipe_not_found"

    resp = client.post("/reports/recipes/nope/execute", headers=HEADERS, json={})
    assert resp.status_code == 404


def test_execute_json_then_cache_hit(client, store):
    resp = client.post("/reports/recipes/account_balance_tree/execute", headers=HEADERS, json={})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["format"] == "json"
    assert body["metadata"]["cache"] == "miss"
    assert body["metadata"]["organization_id"] == ORG
    roots = {r["entity_id"]: r for r in body["data"]["roots"]}
    assert float(roots["acc-1000"]["balance"]) == 800
    assert float(roots["acc-3000"]["balance"]) == -800
    assert body["data"]["summary"]["is_balanced"] is True

    calls = store.total_calls
    again = client.post("/reports/recipes/account_balance_tree/execute", headers=HEADERS, json={})
    assert again.json()["metadata"]["cache"] == "hit"
    assert store.total_calls == calls


def test_execute_csv(client):
    resp = client.post(
        "/reports/recipes/trial_balance/execute",
        headers=HEADERS,
        json={"format": "csv", "parameters": {"date_to": "2024-01-31"}},
    )

    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["x-cache"] == "miss"
    assert 'filename="trial_balance.csv"' in resp.headers["content-disposition"]
    lines = resp.text.splitlines()
    assert lines[0].startswith("id,organization_id,type,name,code")
    assert len(lines) == 5


def test_execute_errors_map_to_status(client):
    missing = client.post("/reports/recipes/monthly_sales/execute", headers=HEADERS, json={})
    assert missing.status_code == 400
    assert missing.json()["detail"]["error"] == "parameter_validation_failed"

    bad_format = client.post(
        "/reports/recipes/trial_balance/execute", headers=HEADERS, json={"format": "docx"}
    )
    assert bad_format.status_code == 400
    assert bad_format.json()["detail"]["error"] == "unsupported_format"

    unknown_field = client.post(
        "/reports/recipes/trial_balance/execute", headers=HEADERS, json={"bogus": 1}
    )
    assert unknown_field.status_code == 422


def test_organizations_are_isolated(client):
    resp = client.post(
        "/reports/recipes/trial_balance/execute",
        headers={"X-Organization-Id": OTHER_ORG},
        json={},
    )

    assert resp.status_code == 200, resp.text
    assert [r["id"] for r in resp.json()["data"]] == ["acc-9999"]


def test_clear_cache(client):
    client.post("/reports/recipes/trial_balance/execute", headers=HEADERS, json={})
    client.post("/reports/recipes/customer_list/execute", headers=HEADERS, json={})

    resp = client.delete("/reports/cache", headers=HEADERS, params={"recipe_name": "trial_balance"})

    assert resp.status_code == 200
    assert resp.json() == {"removed": 1, "recipe_name": "trial_balance"}
    again = client.post("/reports/recipes/customer_list/execute", headers=HEADERS, json={})
    assert again.json()["metadata"]["cache"] == "hit"


def test_materialized_view_lifecycle(client):
    created = client.post(
        "/reports/views",
        headers=HEADERS,
        json={"recipe_name": "trial_balance", "view_name": "tb", "refresh_interval": 3600},
    )
    assert created.status_code == 201, created.text
    assert created.json()["parameters"] == {"date_from": None, "date_to": None}

    not_ready = client.get("/reports/views/tb", headers=HEADERS)
    assert not_ready.status_code == 409
    assert not_ready.json()["detail"]["error"] == "view_not_refreshed"

    refreshed = client.post("/reports/views/tb/refresh", headers=HEADERS)
    assert refreshed.status_code == 200, refreshed.text
    assert refreshed.json()["refreshed_at"] is not None

    rows = client.get("/reports/views/tb", headers=HEADERS).json()["data"]
    assert [r["code"] for r in rows] == ["1000", "1100", "1200", "3000"]

    csv = client.get("/reports/views/tb", headers=HEADERS, params={"format": "csv"})
    assert csv.headers["content-type"].startswith("text/csv")

    (listed,) = client.get("/reports/views", headers=HEADERS).json()
    assert listed["view_name"] == "tb"
    assert listed["stale"] is False

    assert client.delete("/reports/views/tb", headers=HEADERS).status_code == 204
    assert client.get("/reports/views/tb", headers=HEADERS).status_code == 404
    assert client.delete("/reports/views/tb", headers=HEADERS).status_code == 404


def test_view_over_unknown_recipe(client):
    resp = client.post(
        "/reports/views", headers=HEADERS, json={"recipe_name": "nope", "view_name": "v"}
    )

    assert resp.status_code == 404


def test_excel_view_with_colon_in_name(client):
    client.post(
        "/reports/views",
        headers=HEADERS,
        json={"recipe_name": "trial_balance", "view_name": "q1:2024"},
    )
    client.post("/reports/views/q1:2024/refresh", headers=HEADERS)

    resp = client.get("/reports/views/q1:2024", headers=HEADERS, params={"format": "excel"})

    assert resp.status_code == 200, resp.text
    assert resp.content[:2] == b"PK"


class RecordingLogger:
    def __init__(self):
        self.exceptions = []

    def exception(self, msg, *args):
        self.exceptions.append(msg % args)


def test_unexpected_failure_logs_traceback(client, store, monkeypatch):
    async def broken(organization_id, filter):
        raise RuntimeError("store exploded")

    store.query_entities = broken
    recorder = RecordingLogger()
    monkeypatch.setattr(reports_api, "logger", recorder)

    resp = client.post("/reports/recipes/trial_balance/execute", headers=HEADERS, json={})

    assert resp.status_code == 500
    assert recorder.exceptions == [f"execute_recipe(trial_balance, org={ORG}) failed"]
