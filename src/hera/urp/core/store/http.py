# hera/urp/core/store/http.py
from typing import Any, Sequence

import httpx

from hera.urp.contracts.attributes import DynamicAttribute
from hera.urp.contracts.entity import (
    Entity,
    EntityFilter,
    Relationship,
    RelationshipFilter,
    Transaction,
    TransactionFilter,
)
from hera.urp.contracts.store import EntityStoreClient
from hera.urp.core.store.rows import (
    attribute_from_row,
    entity_from_row,
    relationship_from_row,
    transaction_from_row,
)


class HttpEntityStoreClient(EntityStoreClient):
    """Entity store client over the universal ``/api/v2`` REST surface."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
    ):
        self._base = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def _headers(self, organization_id: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if organization_id:
            headers["X-Organization-Id"] = organization_id
        return headers

    async def _get(
        self, path: str, *, organization_id: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.get(
                f"{self._base}{path}",
                params={k: v for k, v in params.items() if v is not None},
                headers=self._headers(organization_id),
            )
            r.raise_for_status()
            return _items(r.json())

    async def query_entities(
        self, organization_id: str, filter: EntityFilter
    ) -> list[Entity]:
        rows = await self._get(
            "/entities",
            organization_id=organization_id,
            params={
                "organization_id": organization_id,
                "entity_type": filter.entity_type,
                "smart_code_prefix": filter.smart_code_prefix,
                "parent_entity_id": filter.parent_id,
                "status": filter.status,
                "ids": _csv(filter.ids),
            },
        )
        return [entity_from_row(row) for row in rows]

    async def query_dynamic_attributes(
        self, entity_ids: Sequence[str]
    ) -> list[DynamicAttribute]:
        if not entity_ids:
            return []
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.post(
                f"{self._base}/dynamic-data/query",
                json={"entity_ids": list(entity_ids)},
                headers=self._headers(),
            )
            r.raise_for_status()
            return [attribute_from_row(row) for row in _items(r.json())]

    async def query_relationships(
        self, organization_id: str, filter: RelationshipFilter
    ) -> list[Relationship]:
        rows = await self._get(
            "/relationships",
            organization_id=organization_id,
            params={
                "organization_id": organization_id,
                "relationship_type": filter.relationship_type,
                "from_entity_ids": _csv(filter.from_entity_ids),
                "to_entity_ids": _csv(filter.to_entity_ids),
            },
        )
        return [relationship_from_row(row) for row in rows]

    async def query_transactions(
        self, organization_id: str, filter: TransactionFilter
    ) -> list[Transaction]:
        rows = await self._get(
            "/transactions",
            organization_id=organization_id,
            params={
                "organization_id": organization_id,
                "transaction_type": _csv(filter.transaction_types),
                "smart_code_prefix": filter.smart_code_prefix,
                "date_from": filter.date_from.isoformat() if filter.date_from else None,
                "date_to": filter.date_to.isoformat() if filter.date_to else None,
                "source_entity_id": filter.source_entity_id,
                "target_entity_id": filter.target_entity_id,
                "status": filter.status,
                "include_lines": "true",
            },
        )
        return [transaction_from_row(row) for row in rows]


def _items(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        return payload.get("items") or payload.get("data") or []
    return payload or []


def _csv(values: Sequence[str] | None) -> str | None:
    return ",".join(values) if values else None
