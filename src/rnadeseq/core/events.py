# src/rnadeseq/core/events.py
"""Synchronous event bus between the orchestrator and its observers.

The orchestrator emits run and stage events (rnadeseq.contracts.events)
from its scheduling thread only, so handlers never run concurrently and
need no locking. The CLI subscribes console or JSON formatters; library
callers either subscribe their own handlers or take the NullEventBus.
"""

from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class EventBusProtocol(Protocol):
    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None: ...

    def emit(self, event: T) -> None: ...


class EventBus:
    """Dispatches each event to the handlers subscribed to its exact type.

    Handlers run in subscription order; an exception in a handler
    propagates to the emitter.

    Example:
        bus = EventBus()
        bus.subscribe(StageSkipped, lambda e: print(f"{e.stage} blocked by {e.blocked_by}"))
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        self._handlers[event_type].append(handler)

    def emit(self, event: T) -> None:
        for handler in self._handlers.get(type(event), ()):
            handler(event)


class NullEventBus:
    """Bus that drops every event; the default when nobody is listening."""

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        pass

    def emit(self, event: T) -> None:
        pass
