"""Hierarchy level building.

Groups rows by dependency depth so each level can be created with one
bulk call:
- Level 0: rows with no parent, or whose parent is not in this record set
  (an existing tracker key, or a dangling reference)
- Level N: rows whose parent is at level N-1

Only a partial order by level is needed, not a total topological order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import networkx as nx

from issuebatch.contracts import HierarchyLevel, IdentifierMap, LevelItem
from issuebatch.core.hierarchy.graph import build_parent_graph
from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD, DEFAULT_UID_FIELD


def strip_uid_field(record: Mapping[str, Any], uid_field: str = DEFAULT_UID_FIELD) -> dict[str, Any]:
    """Copy of ``record`` without the identifier field.

    The identifier is a control field and is never sent to the tracker.
    """
    return {k: v for k, v in record.items() if k != uid_field}


def compute_depths(graph: nx.DiGraph[int]) -> dict[int, int]:
    """Depth of every row: 0 for roots, 1 + depth(parent) otherwise.

    The graph must be acyclic (run cycle detection first). With at most one
    parent per row the topological generations are exactly the depths.

    Raises:
        networkx.NetworkXUnfeasible: If the graph contains a cycle
    """
    depths: dict[int, int] = {}
    for depth, generation in enumerate(nx.topological_generations(graph)):
        for index in generation:
            depths[index] = depth
    return depths


def build_levels(
    records: Sequence[Mapping[str, Any]],
    identifiers: IdentifierMap,
    *,
    uid_field: str = DEFAULT_UID_FIELD,
    parent_field: str = DEFAULT_PARENT_FIELD,
) -> list[HierarchyLevel]:
    """Build levels sorted by depth, members in original row order.

    Args:
        records: Input records (not modified)
        identifiers: Identifier maps from detect_identifiers()
        uid_field: Identifier field to strip from every record
        parent_field: Parent reference field

    Returns:
        Levels in ascending depth order. Empty input yields no levels.
    """
    if not records:
        return []

    graph = build_parent_graph(records, identifiers, parent_field)
    depths = compute_depths(graph)

    grouped: dict[int, list[LevelItem]] = {}
    for index in range(len(records)):
        grouped.setdefault(depths[index], []).append(
            LevelItem(
                index=index,
                record=strip_uid_field(records[index], uid_field),
                uid=identifiers.index_to_uid.get(index),
            )
        )

    return [HierarchyLevel(depth=depth, items=tuple(grouped[depth])) for depth in sorted(grouped)]
