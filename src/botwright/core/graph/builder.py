"""Graph construction from node records."""

from __future__ import annotations

from collections.abc import Collection, Iterable

import structlog

from botwright.contracts.records import Edge, NodeRecord
from botwright.core.graph.graph import BotGraph
from botwright.core.graph.references import iter_references

logger = structlog.get_logger(__name__)


def build_graph(records: Iterable[NodeRecord], *, scope: Collection[int] | None = None) -> BotGraph:
    """Build the conversation graph.

    Edges are taken from Next Nodes, What Next routes and rich-content
    option destinations. A reference to a number outside the node set is
    dropped (never fabricated) and counted in graph.dropped_references.

    Args:
        records: Node records; on duplicate numbers the first row wins
        scope: Optional set of node numbers to restrict the graph to
            (e.g. one flow's bucket). Edges leaving the scope are dropped.

    Returns:
        A new BotGraph
    """
    graph = BotGraph()
    included: list[NodeRecord] = []
    for record in records:
        if scope is not None and record.number not in scope:
            continue
        if graph.has_node(record.number):
            continue
        graph.add_node(record)
        included.append(record)

    for record in included:
        for position, reference in enumerate(iter_references(record)):
            if not graph.has_node(reference.target):
                graph.dropped_references += 1
                continue
            graph.add_edge(
                Edge(
                    source=record.number,
                    target=reference.target,
                    origin=reference.origin,
                    label=reference.label,
                    position=position,
                )
            )

    if graph.dropped_references:
        logger.debug(
            "graph_references_dropped",
            dropped=graph.dropped_references,
            nodes=graph.node_count,
            edges=graph.edge_count,
        )
    return graph
