"""Status codes, kinds and origins used across subsystem boundaries."""

from enum import StrEnum


class NodeKind(StrEnum):
    """Kind of a conversation node, as written in the Node Type column."""

    DECISION = "D"
    ACTION = "A"


class EdgeOrigin(StrEnum):
    """Which encoding in a node record declared an edge.

    A single node may route through all three: an explicit next-node
    list, a keyed what-next table (Action nodes), and destinations
    embedded in rich-content options (buttons, list pickers, carousels).
    """

    NEXT_NODE_LIST = "next-node-list"
    WHAT_NEXT_ROUTE = "what-next-route"
    RICH_CONTENT_OPTION = "rich-content-option"


class ScriptClass(StrEnum):
    """Classification of an Action-node command."""

    SYSTEM = "system"
    CUSTOM = "custom"


class RichContentKind(StrEnum):
    """Rich content kinds the core understands.

    Anything the runtime supports but the core does not interpret falls
    into GENERIC; its options are still read when present.
    """

    BUTTONS = "buttons"
    CAROUSEL = "carousel"
    LIST_PICKER = "list-picker"
    DATE_PICKER = "date-picker"
    FILE_UPLOAD = "file-upload"
    FREE_TEXT = "free-text"
    GENERIC = "generic"


class DeployTarget(StrEnum):
    """Deployment environment selected for a compiler submission."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"


class RepairPhase(StrEnum):
    """States of the repair orchestrator."""

    SANITIZING = "sanitizing"
    STRUCTURAL_FIX = "structural_fix"
    REMOTE_VALIDATING = "remote_validating"
    PATCHING = "patching"
    DONE = "done"
    EXHAUSTED = "exhausted"
    NEEDS_CREDENTIAL = "needs_credential"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the orchestrator stops driving the session in this state.

        NEEDS_CREDENTIAL counts as terminal for a single run() call but the
        session is kept so that resume() can continue it.
        """
        return self in _STOPPING_PHASES


_STOPPING_PHASES = frozenset(
    {
        RepairPhase.DONE,
        RepairPhase.EXHAUSTED,
        RepairPhase.NEEDS_CREDENTIAL,
        RepairPhase.FAILED,
        RepairPhase.CANCELLED,
    }
)
