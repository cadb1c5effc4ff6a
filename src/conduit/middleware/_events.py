"""
Middleware that publishes request lifecycle events to an EventDispatcher.
"""

from typing import override

from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._events import (
    EventDispatcher,
    RequestFailedEvent,
    RequestSendingEvent,
    ResponseReceivedEvent,
)
from conduit._models import Request, Response
from conduit.middleware._base import Handler, Middleware


class EventMiddleware(Middleware):
    """
    Dispatches `request.sending` before, and `response.received` or
    `request.failed` after, the rest of the chain runs.

    Failures are re-raised after the event is dispatched.
    """

    def __init__(self, dispatcher: EventDispatcher, clock: Clock = SYSTEM_CLOCK):
        assert dispatcher is not None, "Event dispatcher is required."
        self.dispatcher = dispatcher
        self.clock = clock

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        self.dispatcher.dispatch(RequestSendingEvent(
            method=request.method,
            uri=request.uri,
            data=dict(request.data),
            headers=dict(request.headers),
        ))

        start = self.clock.monotonic()
        try:
            response = call_next(request)
        except Exception as e:
            self.dispatcher.dispatch(RequestFailedEvent(
                method=request.method,
                uri=request.uri,
                exception=e,
                duration=self.clock.monotonic() - start,
            ))
            raise

        self.dispatcher.dispatch(ResponseReceivedEvent(
            method=request.method,
            uri=request.uri,
            response=response,
            duration=self.clock.monotonic() - start,
        ))
        return response
