"""Parent/child graph over row indices.

Wraps a NetworkX DiGraph with one node per row and one edge
parent_index -> child_index for every row whose parent reference names
another row's identifier. Each row has at most one parent, so an acyclic
graph is a forest.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import networkx as nx

from issuebatch.contracts import IdentifierMap
from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD, resolve_parent_index


def build_parent_graph(
    records: Sequence[Mapping[str, Any]],
    identifiers: IdentifierMap,
    parent_field: str = DEFAULT_PARENT_FIELD,
) -> nx.DiGraph[int]:
    """Build the parent -> child graph for a record set.

    Rows without identifiers are still nodes (they can be children).
    A row naming its own identifier as parent becomes a self-loop.
    """
    graph: nx.DiGraph[int] = nx.DiGraph()
    graph.add_nodes_from(range(len(records)))
    for index, record in enumerate(records):
        parent_index = resolve_parent_index(record, identifiers, parent_field)
        if parent_index is not None:
            graph.add_edge(parent_index, index)
    return graph


def parent_of(graph: nx.DiGraph[int], index: int) -> int | None:
    """Parent row index of ``index`` within the graph, or None for roots."""
    for parent in graph.predecessors(index):
        return parent
    return None
