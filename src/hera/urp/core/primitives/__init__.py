"""Report primitives and their registry."""
from hera.urp.core.primitives.base import PrimitiveRegistry
from hera.urp.core.primitives.entities import EntityResolver
from hera.urp.core.primitives.facts import FactRow, Measure, TransactionFacts
from hera.urp.core.primitives.hierarchy import Hierarchy, HierarchyBuilder, HierarchyNode
from hera.urp.core.primitives.join import DynamicJoin
from hera.urp.core.primitives.rollup import RollupBalance, RollupNode, RollupResult

__all__ = [
    "PrimitiveRegistry",
    "EntityResolver",
    "FactRow", "Measure", "TransactionFacts",
    "Hierarchy", "HierarchyBuilder", "HierarchyNode",
    "DynamicJoin",
    "RollupBalance", "RollupNode", "RollupResult",
]
