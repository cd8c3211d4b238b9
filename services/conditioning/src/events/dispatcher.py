from __future__ import annotations

from typing import Iterable

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.events import DomainEvent, EventName

from shared.metrics import get_counter

from .handlers import DomainEventHandler

logger = get_logger("conditioning.dispatcher")

EVENTS_DISPATCHED_TOTAL = get_counter(
    "events_dispatched_total",
    "Change events routed to a handler, by event name and outcome.",
    settings.otel_service_name,
    labelnames=("event_name", "outcome"),
)


class EventDispatcher:
    """Routes each change event to the one handler registered for its name.

    Unknown names are logged and dropped. Handler failures are logged and
    never reach the caller, which is usually a detached pump task.
    """

    def __init__(self, handlers: Iterable[DomainEventHandler]):
        self._handlers: dict[EventName, DomainEventHandler] = {}
        for handler in handlers:
            if handler.event_name in self._handlers:
                raise ValueError(f"Duplicate handler for {handler.event_name.value}")
            self._handlers[handler.event_name] = handler

    @property
    def handled(self) -> set[EventName]:
        return set(self._handlers)

    async def dispatch(self, event: DomainEvent) -> None:
        kind = event.kind
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            EVENTS_DISPATCHED_TOTAL.labels(event_name="unknown", outcome="unhandled").inc()
            logger.warning(
                "unhandled_event",
                extra={"event_name": event.event_name, "event_id": str(event.event_id)},
            )
            return
        try:
            await handler.handle(event)
        except Exception as e:  # noqa: BLE001
            EVENTS_DISPATCHED_TOTAL.labels(event_name=event.event_name, outcome="error").inc()
            logger.exception(
                "event_handler_failed",
                extra={
                    "event_name": event.event_name,
                    "event_id": str(event.event_id),
                    "handler": type(handler).__name__,
                    "error": str(e),
                },
            )
            return
        EVENTS_DISPATCHED_TOTAL.labels(event_name=event.event_name, outcome="ok").inc()
