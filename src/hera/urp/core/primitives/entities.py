# hera/urp/core/primitives/entities.py
"""
EntityResolver: fetch and filter generic entities of the calling organization.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, ClassVar, Mapping

from hera.urp.contracts.attributes import AttributeValue
from hera.urp.contracts.entity import Entity, EntityFilter
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import StepConfigError
from hera.urp.core.loader import import_attr
from hera.urp.core.primitives.base import as_list

logger = logging.getLogger(__name__)

EntityPredicate = Callable[[Entity], bool]


class EntityResolver:
    """
    Resolves entities from the entity store.

    Config keys:
        entity_type: Entity type filter (``gl_account``)
        tags: Tags that must all be present
        smart_code_prefix: Smart code prefix filter
        parent_id: Only direct children of this entity
        status: Lifecycle status filter
        where: Field/attribute equality map (list values mean "any of")
        predicate: Callable or ``module:attr`` import path taking an Entity
        include_attributes: Hydrate dynamic attributes (default False)
        order_by: Field/attribute to sort by (prefix ``-`` for descending)
        limit: Maximum number of entities returned
    """

    name: ClassVar[str] = "entity_resolver"
    aliases: ClassVar[tuple[str, ...]] = ("entityResolver", "entities")

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> list[Entity]:
        return await self.resolve(config, context)

    async def resolve(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> list[Entity]:
        org_id = context.organization_id
        where: Mapping[str, Any] = config.get("where") or {}
        predicate = self._load_predicate(config.get("predicate"))

        store_filter = EntityFilter(
            entity_type=config.get("entity_type"),
            smart_code_prefix=config.get("smart_code_prefix"),
            parent_id=config.get("parent_id"),
            status=config.get("status"),
        )
        logger.debug("Resolving entities: org=%s filter=%s", org_id, store_filter)
        entities = await context.store.query_entities(org_id, store_filter)

        entities = [e for e in entities if self._owned(e, org_id)]
        entities = [e for e in entities if self._matches_store_filter(e, store_filter)]

        tags = set(as_list(config.get("tags")))
        if tags:
            entities = [e for e in entities if tags.issubset(e.tags)]

        if entities and (config.get("include_attributes") or where):
            entities = await self.hydrate(entities, context)

        if where:
            entities = [e for e in entities if _matches_where(e, where)]
        if predicate is not None:
            entities = [e for e in entities if predicate(e)]

        order_by = config.get("order_by")
        if order_by:
            entities = _sort(entities, order_by)

        limit = config.get("limit")
        if limit is not None:
            entities = entities[: int(limit)]

        logger.debug("Resolved %d entities for org=%s", len(entities), org_id)
        return entities

    async def hydrate(
        self, entities: list[Entity], context: ExecutionContext
    ) -> list[Entity]:
        """Attach every dynamic attribute row of each entity to its ``attributes`` map."""
        rows = await context.store.query_dynamic_attributes([e.id for e in entities])

        by_entity: dict[str, dict[str, AttributeValue]] = defaultdict(dict)
        for row in rows:
            by_entity[row.entity_id][row.name] = row.value

        return [e.with_attributes({**e.attributes, **by_entity.get(e.id, {})}) for e in entities]

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _owned(entity: Entity, org_id: str) -> bool:
        if entity.organization_id != org_id:
            logger.warning(
                "Dropping entity %s of organization %s returned for organization %s",
                entity.id,
                entity.organization_id,
                org_id,
            )
            return False
        return True

    @staticmethod
    def _matches_store_filter(entity: Entity, f: EntityFilter) -> bool:
        # The store applies these filters as well; re-checked for stores that
        # only filter coarsely.
        if f.entity_type and entity.type != f.entity_type:
            return False
        if f.smart_code_prefix and not entity.smart_code.startswith(f.smart_code_prefix):
            return False
        if f.parent_id and entity.parent_ref != f.parent_id:
            return False
        if f.status and entity.status != f.status:
            return False
        return True

    @staticmethod
    def _load_predicate(value: Any) -> EntityPredicate | None:
        if value is None:
            return None
        if callable(value):
            return value
        if isinstance(value, str):
            try:
                predicate = import_attr(value)
            except (ImportError, AttributeError, ValueError) as exc:
                raise StepConfigError(f"entity_resolver: cannot load predicate '{value}': {exc}") from exc
            if not callable(predicate):
                raise StepConfigError(f"entity_resolver: predicate '{value}' is not callable")
            return predicate
        raise StepConfigError(
            f"entity_resolver: predicate must be callable or an import path, got {type(value).__name__}"
        )


def _matches_where(entity: Entity, where: Mapping[str, Any]) -> bool:
    for key, expected in where.items():
        actual = entity.get(key)
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected and str(actual) not in {str(v) for v in expected}:
                return False
        elif actual != expected and str(actual) != str(expected):
            return False
    return True


def _sort(entities: list[Entity], order_by: str) -> list[Entity]:
    reverse = order_by.startswith("-")
    key = order_by.lstrip("-")

    def sort_key(e: Entity) -> tuple[bool, str]:
        value = e.get(key)
        # None sorts last regardless of direction
        return (value is None) != reverse, "" if value is None else str(value)

    return sorted(entities, key=sort_key, reverse=reverse)
