# tests/core/store/test_http_store.py
from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from hera.urp.contracts.entity import EntityFilter, RelationshipFilter, TransactionFilter
from hera.urp.core.store import HttpEntityStoreClient
from hera.urp.core.store import http as http_module


@pytest.fixture
def requests(monkeypatch) -> list[httpx.Request]:
    """Route every AsyncClient of the store module through a mock transport."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        path = request.url.path
        if path.endswith("/entities"):
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "id": "acc-1100",
                            "organization_id": "org",
                            "entity_type": "gl_account",
                            "entity_name": "Cash",
                            "entity_code": "1100",
                        }
                    ]
                },
            )
        if path.endswith("/dynamic-data/query"):
            return httpx.Response(
                200,
                json=[{"entity_id": "acc-1100", "field_name": "bank", "field_value_text": "First"}],
            )
        if path.endswith("/relationships"):
            return httpx.Response(200, json={"data": []})
        if path.endswith("/transactions"):
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "id": "t1",
                            "organization_id": "org",
                            "transaction_type": "journal_entry",
                            "transaction_date": "2024-01-10",
                            "lines": [{"line_entity_id": "acc-1100", "debit_amount": "5"}],
                        }
                    ]
                },
            )
        return httpx.Response(500)

    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(
        http_module.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=transport, **kwargs),
    )
    return seen


@pytest.fixture
def client() -> HttpEntityStoreClient:
    return HttpEntityStoreClient(base_url="http://store/api/v2/", token="secret")


class TestHttpEntityStoreClient:
    @pytest.mark.asyncio
    async def test_query_entities(self, client, requests):
        entities = await client.query_entities(
            "org", EntityFilter(entity_type="gl_account", ids=("a", "b"))
        )

        assert [e.name for e in entities] == ["Cash"]
        request = requests[0]
        assert str(request.url).startswith("http://store/api/v2/entities?")
        assert request.url.params["entity_type"] == "gl_account"
        assert request.url.params["ids"] == "a,b"
        assert "status" not in request.url.params
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Organization-Id"] == "org"

    @pytest.mark.asyncio
    async def test_query_dynamic_attributes(self, client, requests):
        attrs = await client.query_dynamic_attributes(["acc-1100"])

        assert attrs[0].value.value == "First"
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {"entity_ids": ["acc-1100"]}

    @pytest.mark.asyncio
    async def test_no_ids_skips_request(self, client, requests):
        assert await client.query_dynamic_attributes([]) == []
        assert requests == []

    @pytest.mark.asyncio
    async def test_query_relationships(self, client, requests):
        rels = await client.query_relationships(
            "org", RelationshipFilter(relationship_type="parent_of", to_entity_ids=("x",))
        )

        assert rels == []
        assert requests[0].url.params["to_entity_ids"] == "x"

    @pytest.mark.asyncio
    async def test_query_transactions(self, client, requests):
        txns = await client.query_transactions(
            "org", TransactionFilter(date_from=date(2024, 1, 1), transaction_types=("journal_entry",))
        )

        assert txns[0].lines[0].debit == 5
        params = requests[0].url.params
        assert params["date_from"] == "2024-01-01"
        assert params["transaction_type"] == "journal_entry"
        assert params["include_lines"] == "true"

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self, client, monkeypatch):
        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        monkeypatch.setattr(
            http_module.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.query_entities("org", EntityFilter())
