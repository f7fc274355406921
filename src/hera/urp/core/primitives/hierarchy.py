# hera/urp/core/primitives/hierarchy.py
"""
HierarchyBuilder: flat entity list -> tree with depth and path metadata.

Parents come either from a parent-reference field on each entity
(``parent_ref``, a metadata key or a dynamic attribute) or from
relationships in the store (``from`` = parent, ``to`` = child, as the
``parent_of`` links written by the GL tooling).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Mapping, Sequence

from hera.urp.contracts.entity import Entity, RelationshipFilter
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import CycleDetectedError, StepConfigError
from hera.urp.core.primitives.base import choice

logger = logging.getLogger(__name__)


@dataclass
class HierarchyNode:
    entity: Entity
    depth: int = 0
    path: list[str] = field(default_factory=list)
    children: list[HierarchyNode] = field(default_factory=list)
    parent_id: str | None = None
    orphan: bool = False
    cycle: bool = False

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator[HierarchyNode]:
        """Pre-order traversal of this subtree."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_row(self) -> dict[str, Any]:
        row = self.entity.to_row()
        row.update(
            depth=self.depth,
            path=list(self.path),
            parent_id=self.parent_id,
            child_count=len(self.children),
            orphan=self.orphan,
        )
        return row


@dataclass
class Hierarchy:
    """Forest returned by the builder; iterating yields the roots."""

    roots: list[HierarchyNode] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    cycles: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[HierarchyNode]:
        return iter(self.roots)

    def __len__(self) -> int:
        return len(self.roots)

    def walk(self) -> Iterator[HierarchyNode]:
        for root in self.roots:
            yield from root.walk()

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.walk())

    def find(self, entity_id: str) -> HierarchyNode | None:
        return next((n for n in self.walk() if n.id == entity_id), None)

    def to_rows(self) -> list[dict[str, Any]]:
        return [node.to_row() for node in self.walk()]


class HierarchyBuilder:
    """
    Builds a hierarchy from a flat entity list.

    Config keys:
        entities: Entities to arrange (required)
        parent_field: Field/attribute holding the parent id (default ``parent_ref``)
        root_value: Parent value that marks a root (in addition to empty)
        relationship_type: Take parents from store relationships instead
        sort_by: Sort siblings by this field (default: input order)
        max_depth: Omit nodes deeper than this (root depth is 0)
        on_cycle: ``error`` (default) raises, ``break`` promotes a cyclic node to root
    """

    name: ClassVar[str] = "hierarchy_builder"
    aliases: ClassVar[tuple[str, ...]] = ("hierarchyBuilder", "hierarchy")

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> Hierarchy:
        entities = config.get("entities")
        if entities is None:
            raise StepConfigError("hierarchy_builder: 'entities' is required")

        parents: dict[str, str | None] | None = None
        rel_type = config.get("relationship_type")
        if rel_type:
            parents = await self._parents_from_relationships(entities, rel_type, context)

        return self.build(
            entities,
            parent_field=config.get("parent_field") or "parent_ref",
            root_value=config.get("root_value"),
            parents=parents,
            sort_by=config.get("sort_by"),
            max_depth=config.get("max_depth"),
            on_cycle=choice(config, "on_cycle", ("error", "break"), self.name),
        )

    def build(
        self,
        entities: Sequence[Entity],
        *,
        parent_field: str = "parent_ref",
        root_value: Any = None,
        parents: Mapping[str, str | None] | None = None,
        sort_by: str | None = None,
        max_depth: int | None = None,
        on_cycle: str = "error",
    ) -> Hierarchy:
        # Pass 1: index
        nodes: dict[str, HierarchyNode] = {}
        order: list[str] = []
        for entity in entities:
            if entity.id in nodes:
                logger.warning("Duplicate entity %s in hierarchy input, keeping first", entity.id)
                continue
            nodes[entity.id] = HierarchyNode(entity=entity)
            order.append(entity.id)

        # Pass 2: attach under parents, input order keeps siblings stable
        hierarchy = Hierarchy()
        for entity_id in order:
            node = nodes[entity_id]
            if parents is not None:
                parent_id = parents.get(entity_id)
            else:
                parent_id = node.entity.get(parent_field)
            parent_id = str(parent_id) if parent_id not in (None, "") else None

            if parent_id is None or (root_value is not None and parent_id == str(root_value)):
                hierarchy.roots.append(node)
                continue

            parent = nodes.get(parent_id)
            if parent is None:
                logger.warning(
                    "Entity %s (%s) references missing parent %s; treating as orphan root",
                    entity_id,
                    node.entity.code or node.entity.name,
                    parent_id,
                )
                node.orphan = True
                node.parent_id = parent_id
                hierarchy.roots.append(node)
                hierarchy.orphans.append(entity_id)
                continue

            node.parent_id = parent_id
            parent.children.append(node)

        # Pass 3: depth/path from the roots with a visited set
        visited: set[str] = set()
        self._annotate(hierarchy.roots, visited)

        unreachable = [i for i in order if i not in visited]
        if unreachable:
            if on_cycle == "error":
                raise CycleDetectedError(unreachable)
            self._break_cycles(hierarchy, nodes, unreachable, visited)

        if sort_by:
            _sort_forest(hierarchy.roots, sort_by)

        if max_depth is not None:
            _prune(hierarchy.roots, int(max_depth))

        logger.debug(
            "Built hierarchy: %d roots, %d orphans, %d cyclic",
            len(hierarchy.roots),
            len(hierarchy.orphans),
            len(hierarchy.cycles),
        )
        return hierarchy

    # -- helpers -----------------------------------------------------------

    def _annotate(self, roots: list[HierarchyNode], visited: set[str]) -> None:
        stack: list[tuple[HierarchyNode, int, list[str]]] = [
            (root, 0, []) for root in reversed(roots)
        ]
        while stack:
            node, depth, prefix = stack.pop()
            if node.id in visited:
                # Reached twice: a child links back into an annotated branch
                node.cycle = True
                continue
            visited.add(node.id)
            node.depth = depth
            node.path = prefix + [node.id]
            for child in reversed(node.children):
                stack.append((child, depth + 1, node.path))

    def _break_cycles(
        self,
        hierarchy: Hierarchy,
        nodes: dict[str, HierarchyNode],
        unreachable: list[str],
        visited: set[str],
    ) -> None:
        for entity_id in unreachable:
            if entity_id in visited:
                continue
            node = nodes[entity_id]
            logger.warning("Cycle detected at entity %s; promoting it to root", entity_id)
            # Detach from the cyclic parent so the branch hangs under this node
            if node.parent_id and node.parent_id in nodes:
                siblings = nodes[node.parent_id].children
                nodes[node.parent_id].children = [c for c in siblings if c.id != entity_id]
            node.cycle = True
            hierarchy.roots.append(node)
            hierarchy.cycles.append(entity_id)
            self._annotate([node], visited)

    async def _parents_from_relationships(
        self,
        entities: Sequence[Entity],
        relationship_type: str,
        context: ExecutionContext,
    ) -> dict[str, str | None]:
        ids = tuple(e.id for e in entities)
        relationships = await context.store.query_relationships(
            context.organization_id,
            RelationshipFilter(relationship_type=relationship_type, to_entity_ids=ids),
        )
        parents: dict[str, str | None] = {}
        for rel in relationships:
            if rel.organization_id != context.organization_id:
                continue
            if rel.to_entity_id in parents:
                logger.warning(
                    "Entity %s has several '%s' parents, keeping %s",
                    rel.to_entity_id,
                    relationship_type,
                    parents[rel.to_entity_id],
                )
                continue
            parents[rel.to_entity_id] = rel.from_entity_id
        return parents


def _sort_forest(nodes: list[HierarchyNode], key: str) -> None:
    nodes.sort(key=lambda n: (n.entity.get(key) is None, str(n.entity.get(key) or "")))
    for node in nodes:
        _sort_forest(node.children, key)


def _prune(nodes: list[HierarchyNode], max_depth: int) -> None:
    for node in nodes:
        if node.depth >= max_depth:
            node.children = []
        else:
            _prune(node.children, max_depth)
