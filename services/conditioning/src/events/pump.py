"""Background tasks that drain repository change queues into the dispatcher."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from src.core.logger import get_logger
from src.domain.events import DomainEvent

from .dispatcher import EventDispatcher

logger = get_logger("conditioning.event_pump")


class ChangeSource(Protocol):
    def subscribe(self) -> asyncio.Queue[DomainEvent]: ...

    def unsubscribe(self, queue: asyncio.Queue[DomainEvent]) -> None: ...


class RepositoryEventPump:
    """Feeds one repository's change events to the dispatcher, in order."""

    def __init__(self, name: str, source: ChangeSource, dispatcher: EventDispatcher):
        self.name = name
        self.source = source
        self.dispatcher = dispatcher
        self._queue: Optional[asyncio.Queue[DomainEvent]] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._queue = self.source.subscribe()
        self._task = asyncio.create_task(self._run(self._queue), name=f"pump:{self.name}")
        logger.info("event_pump_started", extra={"source": self.name})

    async def _run(self, queue: asyncio.Queue[DomainEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.dispatcher.dispatch(event)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every event queued so far has been dispatched."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self) -> None:
        if self._queue is not None:
            self.source.unsubscribe(self._queue)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:  # expected during shutdown
                logger.debug("event_pump_cancelled", extra={"source": self.name})
        self._task = None
        self._queue = None
        logger.info("event_pump_stopped", extra={"source": self.name})
