"""Required runtime system nodes and their default rows.

The runtime expects a handful of well-known nodes (error handler, end of
chat, agent transfer, out-of-scope and the generic error message). When an
artifact lacks one, a default row can be appended.
"""

from __future__ import annotations

from collections.abc import Mapping

from botwright.contracts.columns import COLUMN_COUNT, Column
from botwright.contracts.records import NodeRecord
from botwright.contracts.types import NodeNumber
from botwright.core.artifact.parser import ParsedArtifact

SYSTEM_THRESHOLD = NodeNumber(99990)
"""Node numbers at or above this value (and all negative numbers) are system nodes."""

ERROR_NODE = NodeNumber(99990)
AGENT_TRANSFER_NODE = NodeNumber(999)
END_CHAT_NODE = NodeNumber(666)


def is_system_number(number: int, threshold: int = SYSTEM_THRESHOLD) -> bool:
    """Whether a node number is reserved for runtime-provided behavior."""
    return number < 0 or number >= threshold


def _row(number: int, **values: str) -> tuple[str, ...]:
    cells = [""] * COLUMN_COUNT
    cells[Column.NODE_NUMBER] = str(number)
    for name, value in values.items():
        cells[Column[name.upper()]] = value
    return tuple(cells)


_RECOVERY_BUTTONS = "Start Over~1|Talk to Agent~999"

REQUIRED_SYSTEM_ROWS: Mapping[NodeNumber, tuple[str, ...]] = {
    NodeNumber(-500): _row(
        -500,
        node_type="A",
        node_name="HandleBotError",
        command="HandleBotError",
        description="Catches exceptions",
        output="error_type",
        param_input='{"save_error_to":"PLATFORM_ERROR"}',
        decision_variable="error_type",
        what_next="bot_error~99990|bot_timeout~99990|other~99990",
        variable="PLATFORM_ERROR",
    ),
    END_CHAT_NODE: _row(
        666,
        node_type="D",
        node_name="EndChat",
        message="Thank you for using our service. Goodbye!",
    ),
    AGENT_TRANSFER_NODE: _row(999, node_type="D", node_name="Agent Transfer", behaviors="xfer_to_agent"),
    NodeNumber(1800): _row(
        1800,
        node_type="D",
        node_name="OutOfScope",
        intent="out_of_scope",
        message="I'm not sure I understood that.",
        rich_type="button",
        rich_content=_RECOVERY_BUTTONS,
        answer_required="1",
        behaviors="disable_input",
    ),
    ERROR_NODE: _row(
        99990,
        node_type="D",
        node_name="Error Message",
        message="Oops! Something went wrong. Let me help you get back on track.",
        rich_type="button",
        rich_content=_RECOVERY_BUTTONS,
        answer_required="1",
        behaviors="disable_input",
    ),
}


def inject_system_nodes(artifact: ParsedArtifact) -> tuple[ParsedArtifact, list[str]]:
    """Append default rows for required system nodes that are missing.

    Existing rows are never touched, so running this twice is a no-op the
    second time.

    Returns:
        (artifact, descriptions of injected nodes)
    """
    present = artifact.numbers()
    added: list[NodeRecord] = []
    fixes: list[str] = []
    for number, cells in REQUIRED_SYSTEM_ROWS.items():
        if number in present:
            continue
        added.append(NodeRecord(number=number, cells=cells))
        fixes.append(f"Injected missing required system node {number}")
    if not added:
        return artifact, fixes
    return artifact.with_records([*artifact.records, *added]), fixes
