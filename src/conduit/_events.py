"""
Request lifecycle events for the conduit SDK.

Listeners are read-only observers: they can log, notify or collect metrics,
but should not modify the request or response.

Example:
    >>> dispatcher = EventDispatcher()
    >>> dispatcher.listen(ResponseReceivedEvent.name, lambda e: print(e.response.status_code))
    >>> client.add_middleware(EventMiddleware(dispatcher))
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from conduit._models import HttpMethod, Response


@dataclass(frozen=True)
class Event:
    """Base class for dispatched events. Subclasses set `name`."""

    name: ClassVar[str] = "event"


@dataclass(frozen=True)
class RequestSendingEvent(Event):
    """Dispatched before the request continues down the chain."""

    name: ClassVar[str] = "request.sending"

    method: HttpMethod
    uri: str
    data: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseReceivedEvent(Event):
    """Dispatched after a response came back. `duration` is in seconds."""

    name: ClassVar[str] = "response.received"

    method: HttpMethod
    uri: str
    response: Response
    duration: float


@dataclass(frozen=True)
class RequestFailedEvent(Event):
    """Dispatched when the rest of the chain raised. `duration` is in seconds."""

    name: ClassVar[str] = "request.failed"

    method: HttpMethod
    uri: str
    exception: Exception
    duration: float


Listener = Callable[[Any], None]


class EventDispatcher:
    """
    Synchronous event dispatcher.

    Listeners run on the calling thread, in registration order. An exception
    raised by a listener propagates to the caller.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def listen(self, event_name: str, listener: Listener) -> None:
        """Register a listener for an event name (e.g., `"request.failed"`)."""
        assert listener is not None, "listener cannot be None"
        with self._lock:
            self._listeners.setdefault(event_name, []).append(listener)

    def dispatch(self, event: Event) -> None:
        """Call every listener registered for `event.name`."""
        with self._lock:
            listeners = list(self._listeners.get(event.name, ()))

        for listener in listeners:
            listener(event)

    def forget(self, event_name: str) -> None:
        """Remove all listeners for an event name."""
        with self._lock:
            self._listeners.pop(event_name, None)

    def has_listeners(self, event_name: str) -> bool:
        with self._lock:
            return bool(self._listeners.get(event_name))
