"""Event bus for repair observability.

A simple synchronous bus: the orchestrator emits immutable progress
events, and CLI formatters or other callers subscribe to the ones they
care about.
"""

from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class EventBusProtocol(Protocol):
    """Protocol satisfied by both EventBus and NullEventBus."""

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Subscribe a handler to an event type."""
        ...

    def emit(self, event: T) -> None:
        """Emit an event to all subscribers."""
        ...


class EventBus:
    """Synchronous event bus.

    Handlers run in subscription order on the emitting thread. Handler
    exceptions propagate to the caller.

    Example:
        bus = EventBus()
        bus.subscribe(RepairPhaseEntered, lambda e: print(f"[{e.phase}] iteration {e.iteration}"))
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        self._subscribers.setdefault(event_type, []).append(handler)

    def emit(self, event: T) -> None:
        """Dispatch to subscribers of type(event). Unsubscribed events are ignored."""
        for handler in self._subscribers.get(type(event), []):
            handler(event)


class NullEventBus:
    """No-op bus for library use where nobody listens.

    Does not inherit from EventBus, so subscribing to it by mistake is
    visible in review rather than silently dropped at runtime.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        pass

    def emit(self, event: T) -> None:
        pass
