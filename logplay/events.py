"""
Playback events and the manager that delivers them.

Playback produces a single kind of event today: Pause, emitted when the
played time reaches the end of the log. Hosts connect a handler and pause
their step loop in response.

Usage:
    events = EventManager()
    disconnect = events.connect(Pause, lambda e: loop.set_paused(e.paused))
    ...
    disconnect()
"""

from collections import defaultdict
from typing import Callable, Dict, List, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from logplay.logging import get_logger

log = get_logger('events')

E = TypeVar('E', bound=BaseModel)


class Pause(BaseModel):
    """Request to pause (or resume) the simulation step loop."""
    paused: bool = Field(..., description="True to pause, False to resume")

    model_config = ConfigDict(frozen=True)


class EventManager:
    """Synchronous publish/subscribe keyed by event type."""

    def __init__(self):
        self._handlers: Dict[Type[BaseModel], List[Callable[[BaseModel], None]]] = defaultdict(list)

    def connect(self, event_type: Type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler.

        Returns:
            Callable that disconnects the handler again
        """
        self._handlers[event_type].append(handler)  # type: ignore[arg-type]

        def disconnect() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)  # type: ignore[arg-type]

        return disconnect

    def emit(self, event: BaseModel) -> int:
        """Deliver an event to every handler of its type, in connect order.

        Returns:
            Number of handlers called
        """
        handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            handler(event)
        log.debug("Emitted %s to %d handlers", type(event).__name__, len(handlers))
        return len(handlers)

    def handler_count(self, event_type: Type[BaseModel]) -> int:
        return len(self._handlers.get(event_type, []))
