"""Shared contracts: enums, records, outcomes, events and errors.

Leaf package - nothing here imports from core, clients or engine.
"""

from botwright.contracts.columns import COLUMN_COUNT, HEADER_LINE, Column
from botwright.contracts.enums import (
    DeployTarget,
    EdgeOrigin,
    NodeKind,
    RepairPhase,
    RichContentKind,
    ScriptClass,
)
from botwright.contracts.errors import BotIdError, FlowLayoutError, PatchServiceError
from botwright.contracts.outcomes import (
    Accepted,
    CompilerError,
    Outcome,
    RateLimited,
    Rejected,
    TransientFailure,
    Unauthorized,
)
from botwright.contracts.records import (
    Edge,
    Flow,
    NodeRecord,
    Reference,
    ScriptReference,
    ValidationIssue,
    parse_node_number,
)
from botwright.contracts.types import BotId, FlowName, NodeNumber

__all__ = [
    "COLUMN_COUNT",
    "HEADER_LINE",
    "Accepted",
    "BotId",
    "BotIdError",
    "Column",
    "CompilerError",
    "DeployTarget",
    "Edge",
    "EdgeOrigin",
    "Flow",
    "FlowLayoutError",
    "FlowName",
    "NodeKind",
    "NodeNumber",
    "NodeRecord",
    "Outcome",
    "PatchServiceError",
    "RateLimited",
    "Reference",
    "Rejected",
    "RepairPhase",
    "RichContentKind",
    "ScriptClass",
    "ScriptReference",
    "TransientFailure",
    "Unauthorized",
    "ValidationIssue",
    "parse_node_number",
]
