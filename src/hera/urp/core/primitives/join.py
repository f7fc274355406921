# hera/urp/core/primitives/join.py
"""
DynamicJoin: attach related data onto a base row set by key correlation.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, ClassVar, Mapping, Sequence

from hera.urp.contracts.attributes import plain
from hera.urp.contracts.entity import EntityFilter, RelationshipFilter
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import StepConfigError
from hera.urp.core.primitives.base import choice, get_path, require, to_row

logger = logging.getLogger(__name__)


class DynamicJoin:
    """
    EAV-style join of a base row set against one source.

    Config keys:
        rows: Base rows (entities, fact rows or dicts; required)
        join_key: Base row field holding the correlation key (default ``id``)
        as: Output field name (defaults to the attribute/relationship name)
        attribute: Dynamic attribute name looked up for the key entity
        relationship_type: Relationship type followed from the key entity
        direction: ``outgoing`` (default, key is ``from``) or ``incoming``
        hydrate: Join related entity rows instead of their ids (default True)
        right: Rows of another step to join against
        right_key: Field of the right rows matched to ``join_key`` (default ``id``)
        cardinality: ``one_to_one`` (default) or ``one_to_many``
        unmatched: ``null`` (default) or ``drop``, one-to-many only

    One-to-one never changes the row count: the first match wins and missing
    matches become ``None``. One-to-many emits one row per match.
    """

    name: ClassVar[str] = "dynamic_join"
    aliases: ClassVar[tuple[str, ...]] = ("dynamicJoin", "join")

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> list[dict[str, Any]]:
        return await self.join(config, context)

    async def join(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> list[dict[str, Any]]:
        base = [to_row(item) for item in require(config, "rows", self.name)]
        join_key = config.get("join_key") or "id"
        cardinality = choice(config, "cardinality", ("one_to_one", "one_to_many"), self.name)
        unmatched = choice(config, "unmatched", ("null", "drop"), self.name)

        sources = [k for k in ("attribute", "relationship_type", "right") if config.get(k) is not None]
        if len(sources) != 1:
            raise StepConfigError(
                "dynamic_join: exactly one of 'attribute', 'relationship_type' or 'right' is required"
            )
        source = sources[0]
        target = config.get("as") or (
            config[source] if source != "right" else "joined"
        )

        keys = [k for k in (get_path(row, join_key) for row in base) if k is not None]
        if source == "attribute":
            matches = await self._attribute_matches(keys, config["attribute"], context)
        elif source == "relationship_type":
            matches = await self._relationship_matches(keys, config, context)
        else:
            matches = self._right_matches(config)

        out = self.merge(base, join_key, target, matches, cardinality, unmatched)
        logger.debug(
            "Joined %d base rows into %d rows via %s '%s' (%s)",
            len(base),
            len(out),
            source,
            config.get(source) if source != "right" else config.get("right_key", "id"),
            cardinality,
        )
        return out

    @staticmethod
    def merge(
        base: Sequence[Mapping[str, Any]],
        join_key: str,
        target: str,
        matches: Mapping[Any, list[Any]],
        cardinality: str = "one_to_one",
        unmatched: str = "null",
    ) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for row in base:
            found = matches.get(_key(get_path(row, join_key)), [])
            if cardinality == "one_to_one":
                if len(found) > 1:
                    logger.debug(
                        "One-to-one join on '%s' found %d matches for %r, keeping first",
                        join_key,
                        len(found),
                        get_path(row, join_key),
                    )
                out.append({**row, target: found[0] if found else None})
                continue

            if not found:
                if unmatched == "null":
                    out.append({**row, target: None})
                continue
            for match in found:
                out.append({**row, target: match})
        return out

    # -- sources -----------------------------------------------------------

    async def _attribute_matches(
        self, keys: list[Any], attribute: str, context: ExecutionContext
    ) -> dict[Any, list[Any]]:
        if not keys:
            return {}
        owned = await self._owned_ids(keys, context)
        rows = await context.store.query_dynamic_attributes(owned)
        matches: dict[Any, list[Any]] = defaultdict(list)
        for row in rows:
            if row.name == attribute and row.entity_id in owned:
                matches[_key(row.entity_id)].append(plain(row.value))
        return matches

    async def _relationship_matches(
        self, keys: list[Any], config: Mapping[str, Any], context: ExecutionContext
    ) -> dict[Any, list[Any]]:
        if not keys:
            return {}
        direction = choice(config, "direction", ("outgoing", "incoming"), self.name)
        ids = tuple(str(k) for k in dict.fromkeys(keys))
        rel_filter = (
            RelationshipFilter(relationship_type=config["relationship_type"], from_entity_ids=ids)
            if direction == "outgoing"
            else RelationshipFilter(relationship_type=config["relationship_type"], to_entity_ids=ids)
        )
        relationships = await context.store.query_relationships(context.organization_id, rel_filter)
        relationships = [r for r in relationships if r.organization_id == context.organization_id]

        pairs = [
            (r.from_entity_id, r.to_entity_id) if direction == "outgoing" else (r.to_entity_id, r.from_entity_id)
            for r in relationships
        ]

        hydrate = bool(config.get("hydrate", True))
        related: dict[str, Any] = {}
        if hydrate and pairs:
            related_ids = tuple(dict.fromkeys(other for _, other in pairs))
            entities = await context.store.query_entities(
                context.organization_id, EntityFilter(ids=related_ids)
            )
            related = {
                e.id: e.to_row()
                for e in entities
                if e.organization_id == context.organization_id
            }

        matches: dict[Any, list[Any]] = defaultdict(list)
        for key, other in pairs:
            if hydrate:
                if other not in related:
                    continue
                matches[_key(key)].append(dict(related[other]))
            else:
                matches[_key(key)].append(other)
        return matches

    def _right_matches(self, config: Mapping[str, Any]) -> dict[Any, list[Any]]:
        right_key = config.get("right_key") or "id"
        matches: dict[Any, list[Any]] = defaultdict(list)
        for item in config["right"]:
            row = to_row(item)
            value = get_path(row, right_key)
            if value is not None:
                matches[_key(value)].append(row)
        return matches

    @staticmethod
    async def _owned_ids(keys: list[Any], context: ExecutionContext) -> list[str]:
        ids = tuple(str(k) for k in dict.fromkeys(keys))
        entities = await context.store.query_entities(
            context.organization_id, EntityFilter(ids=ids)
        )
        return [e.id for e in entities if e.organization_id == context.organization_id and e.id in ids]


def _key(value: Any) -> Any:
    return str(value) if value is not None else None
