# src/botwright/core/flows.py
"""Flow partitioning by ascending node-number ranges.

A flow owns every node number from its start node up to (not including)
the next flow's start node; the last flow owns up to the system
threshold. Startup nodes below the first flow and system nodes belong to
no flow. Plans with overlapping or duplicate start nodes are rejected
when the plan is built.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from botwright.contracts.errors import FlowLayoutError
from botwright.contracts.records import Flow, NodeRecord
from botwright.contracts.types import NodeNumber
from botwright.core.artifact.system_nodes import SYSTEM_THRESHOLD

FLOW_BLOCK_SIZE = 100


@dataclass(frozen=True, slots=True)
class FlowPlan:
    """Validated, start-ordered flow descriptors.

    Build with from_flows(); the constructor does not validate.
    """

    flows: tuple[Flow, ...]
    system_threshold: int = SYSTEM_THRESHOLD

    @classmethod
    def from_flows(cls, flows: Iterable[Flow], *, system_threshold: int = SYSTEM_THRESHOLD) -> FlowPlan:
        """Validate flows and order them by start node.

        Raises:
            FlowLayoutError: On duplicate names, two flows sharing a start
                node, or a start node outside (0, system_threshold).
        """
        ordered = sorted(flows, key=lambda flow: flow.start_node)
        names: set[str] = set()
        errors: list[str] = []
        for flow in ordered:
            if flow.name in names:
                errors.append(f"duplicate flow name {flow.name!r}")
            names.add(flow.name)
            if not 0 < flow.start_node < system_threshold:
                errors.append(f"flow {flow.name!r} start node {flow.start_node} is outside 1..{system_threshold - 1}")
        for previous, current in zip(ordered, ordered[1:], strict=False):
            if previous.start_node == current.start_node:
                errors.append(
                    f"flows {previous.name!r} and {current.name!r} overlap: both start at node {current.start_node}"
                )
        if errors:
            raise FlowLayoutError("; ".join(errors))
        return cls(flows=tuple(ordered), system_threshold=system_threshold)

    @property
    def starts(self) -> list[int]:
        return [flow.start_node for flow in self.flows]

    def __iter__(self) -> Iterator[Flow]:
        return iter(self.flows)

    def __len__(self) -> int:
        return len(self.flows)

    def range_of(self, name: str) -> range:
        """Owned number range of a named flow.

        Raises:
            KeyError: If no flow has that name
        """
        for index, flow in enumerate(self.flows):
            if flow.name == name:
                end = self.flows[index + 1].start_node if index + 1 < len(self.flows) else self.system_threshold
                return range(flow.start_node, end)
        raise KeyError(name)

    def flow_for(self, number: int) -> Flow | None:
        """The flow owning a node number, or None for startup/system nodes."""
        if number < 0 or number >= self.system_threshold:
            return None
        index = bisect.bisect_right(self.starts, number) - 1
        if index < 0:
            return None
        return self.flows[index]

    def next_start_node(self, block: int = FLOW_BLOCK_SIZE) -> NodeNumber:
        """First block-aligned start node above every existing flow.

        An empty plan starts at the first block (e.g. 100).
        """
        if not self.flows:
            return NodeNumber(block)
        highest = self.flows[-1].start_node
        return NodeNumber((highest // block + 1) * block)


def partition(records: Sequence[NodeRecord], plan: FlowPlan | Iterable[Flow]) -> dict[str, list[NodeRecord]]:
    """Assign node records to the flows that own their numbers.

    Args:
        records: Node records in any order
        plan: A FlowPlan, or raw flows (validated via FlowPlan.from_flows)

    Returns:
        Mapping of every flow name (in start order) to its records, in
        input order. Startup and system nodes appear in no bucket.

    Raises:
        FlowLayoutError: If raw flows do not form a valid plan.
    """
    if not isinstance(plan, FlowPlan):
        plan = FlowPlan.from_flows(plan)
    buckets: dict[str, list[NodeRecord]] = {flow.name: [] for flow in plan}
    for record in records:
        owner = plan.flow_for(record.number)
        if owner is not None:
            buckets[owner.name].append(record)
    return buckets
