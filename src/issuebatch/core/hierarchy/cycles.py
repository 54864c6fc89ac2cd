"""Cycle detection over parent references.

Level building assumes a DAG, so this must run (and fail) first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import Any

import networkx as nx

from issuebatch.contracts import HierarchyCycleError, IdentifierMap
from issuebatch.core.hierarchy.graph import build_parent_graph, parent_of
from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD


class _Mark(IntEnum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


def find_parent_cycle(graph: nx.DiGraph[int]) -> list[int] | None:
    """Find a cycle by walking child -> parent links.

    Iterative depth-first walk with three-colour marking. Nodes are started
    in ascending row order so the reported cycle is deterministic.

    Returns:
        Row indices of the cycle, each followed by its parent and closed
        with the repeated row (e.g. [0, 2, 1, 0]), or None if acyclic.
    """
    marks = dict.fromkeys(graph.nodes, _Mark.UNVISITED)

    for start in sorted(graph.nodes):
        if marks[start] != _Mark.UNVISITED:
            continue

        path: list[int] = []
        current: int | None = start
        while current is not None:
            mark = marks[current]
            if mark == _Mark.IN_PROGRESS:
                first = path.index(current)
                return [*path[first:], current]
            if mark == _Mark.DONE:
                break
            marks[current] = _Mark.IN_PROGRESS
            path.append(current)
            current = parent_of(graph, current)

        for node in path:
            marks[node] = _Mark.DONE

    return None


def detect_cycles(
    records: Sequence[Mapping[str, Any]],
    identifiers: IdentifierMap,
    parent_field: str = DEFAULT_PARENT_FIELD,
) -> None:
    """Fail fast if any parent reference chain loops back on itself.

    No-op when the record set has no identifiers.

    Raises:
        HierarchyCycleError: With the cycle as an identifier chain, each
            identifier followed by its parent's.
    """
    if not identifiers.has_identifiers:
        return

    graph = build_parent_graph(records, identifiers, parent_field)
    cycle = find_parent_cycle(graph)
    if cycle is not None:
        # Every row on a cycle is some row's parent, so it has an identifier
        raise HierarchyCycleError([identifiers.index_to_uid[index] for index in cycle])
