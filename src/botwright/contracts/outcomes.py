"""Typed outcomes of a remote compiler submission.

The compiler client never raises for an expected response: it returns
exactly one of these so the repair orchestrator can match on the type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from botwright.contracts.types import NodeNumber


@dataclass(frozen=True, slots=True)
class CompilerError:
    """One rejection message, keyed by node number where determinable."""

    node_number: NodeNumber | None
    field: str | None
    message: str

    def format(self) -> str:
        """Render as 'Node N: [field] message' (parts omitted when unknown)."""
        parts: list[str] = []
        if self.node_number is not None:
            parts.append(f"Node {self.node_number}:")
        if self.field:
            parts.append(f"[{self.field}]")
        parts.append(self.message)
        return " ".join(parts)


@dataclass(frozen=True, slots=True)
class Accepted:
    """The compiler accepted the artifact and created a version."""

    version_id: str


@dataclass(frozen=True, slots=True)
class Rejected:
    """The compiler rejected the artifact."""

    errors: tuple[CompilerError, ...]


@dataclass(frozen=True, slots=True)
class RateLimited:
    """The compiler asked us to slow down.

    retry_after is in seconds; None means the compiler gave no hint.
    """

    retry_after: float | None = None


@dataclass(frozen=True, slots=True)
class Unauthorized:
    """The credential was refused. Must be replaced before retrying."""

    message: str = ""


@dataclass(frozen=True, slots=True)
class TransientFailure:
    """Timeout, transport failure or server error. Safe to retry."""

    reason: str


Outcome: TypeAlias = Accepted | Rejected | RateLimited | Unauthorized | TransientFailure

RETRYABLE_OUTCOMES: tuple[type, ...] = (RateLimited, TransientFailure)
