"""Progress events emitted by the repair orchestrator.

Events are immutable snapshots. Subscribers may render them or ignore
them; the orchestrator behaves the same whether or not anyone listens.
"""

from dataclasses import dataclass

from botwright.contracts.enums import RepairPhase


@dataclass(frozen=True, slots=True)
class RepairPhaseEntered:
    """Emitted on every state transition."""

    bot_id: str
    phase: RepairPhase
    iteration: int


@dataclass(frozen=True, slots=True)
class RemoteRejected:
    """Emitted when the compiler rejects the current artifact."""

    bot_id: str
    iteration: int
    errors: tuple[str, ...]
    stuck: bool = False


@dataclass(frozen=True, slots=True)
class BackoffScheduled:
    """Emitted before sleeping ahead of a compiler resubmission.

    reason is "rate_limited" or "transient_failure".
    """

    bot_id: str
    attempt: int
    delay_seconds: float
    reason: str


@dataclass(frozen=True, slots=True)
class PatchApplied:
    """Emitted after an AI rewrite has been accepted into the session."""

    bot_id: str
    iteration: int
    descriptions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RepairFinished:
    """Emitted once per run() or resume() call when the session stops."""

    bot_id: str
    phase: RepairPhase
    iterations: int
    remaining_errors: int
