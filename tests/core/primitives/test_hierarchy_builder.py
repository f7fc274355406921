# tests/core/primitives/test_hierarchy_builder.py
from __future__ import annotations

import pytest

from hera.urp.contracts.entity import Relationship
from hera.urp.core.errors import CycleDetectedError, StepConfigError
from hera.urp.core.primitives import HierarchyBuilder
from tests.helpers.memory_store import ORG, account


@pytest.fixture
def builder() -> HierarchyBuilder:
    return HierarchyBuilder()


class TestHierarchyBuilder:
    def test_builds_tree_from_parent_ref(self, builder, store):
        tree = builder.build(store.entities[:4])

        assert [r.id for r in tree.roots] == ["acc-1000", "acc-3000"]
        assets = tree.find("acc-1000")
        assert [c.id for c in assets.children] == ["acc-1100", "acc-1200"]
        assert tree.node_count == 4

    def test_depth_and_path(self, builder):
        entities = [
            account("a", "1", "A"),
            account("b", "2", "B", parent="a"),
            account("c", "3", "C", parent="b"),
        ]

        tree = builder.build(entities)

        for node in tree.walk():
            assert node.depth == len(node.path) - 1
            if node.parent_id is not None:
                parent = tree.find(node.parent_id)
                assert node.depth == parent.depth + 1
        assert tree.find("c").path == ["a", "b", "c"]

    def test_orphan_becomes_root(self, builder):
        entities = [account("a", "1", "A"), account("x", "9", "X", parent="missing")]

        tree = builder.build(entities)

        orphan = tree.find("x")
        assert orphan in tree.roots
        assert orphan.orphan is True
        assert orphan.depth == 0
        assert tree.orphans == ["x"]

    def test_cycle_raises_by_default(self, builder):
        entities = [
            account("root", "0", "Root"),
            account("a", "1", "A", parent="b"),
            account("b", "2", "B", parent="a"),
        ]

        with pytest.raises(CycleDetectedError) as exc_info:
            builder.build(entities)

        assert set(exc_info.value.entity_ids) == {"a", "b"}

    def test_cycle_break_promotes_node(self, builder):
        entities = [
            account("a", "1", "A", parent="b"),
            account("b", "2", "B", parent="a"),
        ]

        tree = builder.build(entities, on_cycle="break")

        assert [r.id for r in tree.roots] == ["a"]
        assert tree.cycles == ["a"]
        assert tree.find("b").depth == 1
        assert tree.node_count == 2

    def test_self_parent_is_a_cycle(self, builder):
        with pytest.raises(CycleDetectedError):
            builder.build([account("a", "1", "A", parent="a")])

    def test_sort_by_code(self, builder):
        entities = [
            account("b", "2000", "B"),
            account("a", "1000", "A"),
            account("a2", "1200", "A2", parent="a"),
            account("a1", "1100", "A1", parent="a"),
        ]

        tree = builder.build(entities, sort_by="code")

        assert [n.id for n in tree.walk()] == ["a", "a1", "a2", "b"]

    def test_input_order_kept_without_sort(self, builder):
        entities = [account("b", "2000", "B"), account("a", "1000", "A")]

        tree = builder.build(entities)

        assert [r.id for r in tree.roots] == ["b", "a"]

    def test_max_depth(self, builder, store):
        tree = builder.build(store.entities[:4], max_depth=0)

        assert tree.node_count == 2
        assert all(r.is_leaf for r in tree.roots)

    def test_root_value(self, builder):
        entities = [account("a", "1", "A", parent="ROOT"), account("b", "2", "B", parent="a")]

        tree = builder.build(entities, root_value="ROOT")

        assert [r.id for r in tree.roots] == ["a"]
        assert tree.orphans == []

    def test_duplicates_keep_first(self, builder):
        first = account("a", "1", "First")
        tree = builder.build([first, account("a", "1", "Second")])

        assert tree.node_count == 1
        assert tree.roots[0].entity.name == "First"

    def test_rows(self, builder, store):
        rows = builder.build(store.entities[:4], sort_by="code").to_rows()

        cash = next(r for r in rows if r["id"] == "acc-1100")
        assert cash["depth"] == 1
        assert cash["parent_id"] == "acc-1000"
        assert cash["path"] == ["acc-1000", "acc-1100"]
        assert rows[0]["child_count"] == 2


class TestHierarchyBuilderRun:
    @pytest.mark.asyncio
    async def test_requires_entities(self, builder, context):
        with pytest.raises(StepConfigError, match="'entities' is required"):
            await builder.run({}, context)

    @pytest.mark.asyncio
    async def test_rejects_unknown_on_cycle(self, builder, context, store):
        with pytest.raises(StepConfigError, match="on_cycle"):
            await builder.run({"entities": store.entities, "on_cycle": "ignore"}, context)

    @pytest.mark.asyncio
    async def test_parents_from_relationships(self, builder, context, store):
        flat = [
            account("p", "1", "Parent"),
            account("c1", "2", "Child 1"),
            account("c2", "3", "Child 2"),
        ]
        store.relationships.extend(
            [
                Relationship(ORG, "p", "c1", "parent_of"),
                Relationship(ORG, "p", "c2", "parent_of"),
                Relationship(ORG, "c1", "c2", "related_to"),
            ]
        )

        tree = await builder.run(
            {"entities": flat, "relationship_type": "parent_of"}, context
        )

        assert [r.id for r in tree.roots] == ["p"]
        assert [c.id for c in tree.roots[0].children] == ["c1", "c2"]
        assert store.calls["query_relationships"] == 1
