# hera/urp/core/presentation/records.py
"""Flatten engine payloads into tabular records."""
from __future__ import annotations

from dataclasses import is_dataclass
from typing import Any, Iterable, Mapping

from hera.urp.core.primitives.base import to_row
from hera.urp.core.primitives.hierarchy import Hierarchy, HierarchyNode
from hera.urp.core.primitives.rollup import RollupNode, RollupResult


def to_records(data: Any) -> list[dict[str, Any]]:
    """
    Flatten a payload into a list of flat dicts.

    Rollups and hierarchies flatten to pre-order rows carrying ``depth``;
    lists convert item by item; a single mapping becomes one record.
    """
    if data is None:
        return []
    if isinstance(data, (RollupResult, Hierarchy)):
        return data.to_rows()
    if isinstance(data, (RollupNode, HierarchyNode)):
        return [node.to_row() for node in data.walk()]
    if isinstance(data, Mapping):
        return [dict(data)]
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes)):
        return [_record(item) for item in data]
    return [{"value": data}]


def columns_of(records: Iterable[Mapping[str, Any]]) -> list[str]:
    """Union of keys in first-seen order."""
    columns: dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)


def _record(item: Any) -> dict[str, Any]:
    if isinstance(item, Mapping) or hasattr(item, "to_row") or is_dataclass(item):
        return to_row(item)
    return {"value": item}
