# src/botwright/core/graph/graph.py
"""BotGraph - conversation topology over a networkx MultiDiGraph.

Construction lives in builder.py. A BotGraph handed to a caller is a
snapshot: nothing in the core mutates it after build_graph() returns.
"""

from __future__ import annotations

from typing import cast

import networkx as nx
from networkx import MultiDiGraph

from botwright.contracts.enums import EdgeOrigin
from botwright.contracts.records import Edge, NodeRecord
from botwright.contracts.types import NodeNumber


class BotGraph:
    """Directed multigraph of conversation nodes.

    Uses MultiDiGraph because one node may reach the same target through
    several encodings (a next-node entry and a button, say), and each is
    a distinct edge.
    """

    def __init__(self) -> None:
        self._graph: MultiDiGraph[int] = nx.MultiDiGraph()
        self.dropped_references = 0

    @property
    def node_count(self) -> int:
        """Number of nodes in the graph."""
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        """Number of edges in the graph."""
        return self._graph.number_of_edges()

    def has_node(self, number: int) -> bool:
        return self._graph.has_node(number)

    def get_nx_graph(self) -> MultiDiGraph[int]:
        """Return a frozen copy of the underlying NetworkX graph.

        Mutation attempts on the copy raise nx.NetworkXError.
        """
        return nx.freeze(self._graph.copy())  # type: ignore[no-any-return]

    def add_node(self, record: NodeRecord) -> None:
        self._graph.add_node(record.number, record=record)

    def add_edge(self, edge: Edge) -> None:
        """Add an edge; both endpoints must already be nodes.

        Raises:
            KeyError: If either endpoint is unknown
        """
        if not self._graph.has_node(edge.source):
            raise KeyError(edge.source)
        if not self._graph.has_node(edge.target):
            raise KeyError(edge.target)
        self._graph.add_edge(
            edge.source,
            edge.target,
            key=(edge.origin, edge.position),
            edge=edge,
        )

    def get_node(self, number: int) -> NodeRecord:
        """Record for a node.

        Raises:
            KeyError: If the node is not in the graph
        """
        if not self._graph.has_node(number):
            raise KeyError(number)
        return cast(NodeRecord, self._graph.nodes[number]["record"])

    def get_nodes(self) -> list[NodeRecord]:
        return [cast(NodeRecord, attrs["record"]) for _number, attrs in self._graph.nodes(data=True)]

    def get_edges(self, origin: EdgeOrigin | None = None) -> list[Edge]:
        """All edges, optionally filtered by origin."""
        edges = [cast(Edge, data["edge"]) for _u, _v, data in self._graph.edges(data=True)]
        if origin is None:
            return edges
        return [edge for edge in edges if edge.origin is origin]

    def get_outgoing_edges(self, number: int) -> list[Edge]:
        """Edges leaving a node, in declaration order."""
        edges = [cast(Edge, data["edge"]) for _u, _v, data in self._graph.out_edges(number, data=True)]
        return sorted(edges, key=lambda edge: edge.position)

    def get_incoming_edges(self, number: int) -> list[Edge]:
        return [cast(Edge, data["edge"]) for _u, _v, data in self._graph.in_edges(number, data=True)]

    def successors(self, number: int) -> list[NodeNumber]:
        """Distinct successor numbers in first-declared order."""
        seen: dict[NodeNumber, None] = {}
        for edge in self.get_outgoing_edges(number):
            seen.setdefault(edge.target, None)
        return list(seen)

    def reachable_from(self, number: int) -> set[NodeNumber]:
        """Every node reachable from number, itself included."""
        if not self._graph.has_node(number):
            return set()
        return {NodeNumber(n) for n in nx.descendants(self._graph, number)} | {NodeNumber(number)}
