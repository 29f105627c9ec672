"""Reference extraction shared by the graph builder and the validator.

Leaf module within core.graph: both consumers read node references through
iter_references() so a defect can never be visible to one and hidden from
the other.
"""

from __future__ import annotations

from collections.abc import Iterator

from botwright.contracts.columns import Column
from botwright.contracts.enums import EdgeOrigin
from botwright.contracts.records import NodeRecord, Reference
from botwright.core.artifact.rich_content import parse_rich_content


def iter_references(record: NodeRecord) -> Iterator[Reference]:
    """Yield every target a record declares, in declaration order.

    Order: Next Nodes, then What Next pairs, then rich-content options.
    Existence of targets is not checked here.
    """
    for target in record.next_nodes:
        yield Reference(origin=EdgeOrigin.NEXT_NODE_LIST, target=target, label=None, column=Column.NEXT_NODES)

    for label, target in record.what_next:
        yield Reference(origin=EdgeOrigin.WHAT_NEXT_ROUTE, target=target, label=label, column=Column.WHAT_NEXT)

    content = parse_rich_content(record.rich_content_type, record.rich_content_payload)
    if content is None:
        return
    for option in content.options:
        if option.destination is None:
            continue
        yield Reference(
            origin=EdgeOrigin.RICH_CONTENT_OPTION,
            target=option.destination,
            label=option.label,
            column=Column.RICH_CONTENT,
        )
