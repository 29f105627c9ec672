"""Repair engine: orchestrator, retry and clock."""

from botwright.engine.clock import Clock, MockClock, SystemClock
from botwright.engine.repair import (
    CancellationToken,
    CompilerClient,
    RepairOrchestrator,
    RepairResult,
    RepairSession,
)
from botwright.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager

__all__ = [
    "CancellationToken",
    "Clock",
    "CompilerClient",
    "MaxRetriesExceeded",
    "MockClock",
    "RepairOrchestrator",
    "RepairResult",
    "RepairSession",
    "RetryConfig",
    "RetryManager",
    "SystemClock",
]
