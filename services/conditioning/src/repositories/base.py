"""In-memory repository with a change-event stream.

Stands in for a persistence adapter: entities live in a dict keyed by entity
id, every committed mutation is announced as a `DomainEvent` on each
subscriber's queue, and failures come back as `Result.fail` instead of being
raised.
"""

from __future__ import annotations

import asyncio
from typing import Any, Generic, Iterable, TypeVar

from pydantic import BaseModel, ValidationError
from src.core.logger import get_logger
from src.domain.events import DomainEvent, EventName
from src.domain.models import utcnow
from src.domain.result import Result
from uuid6 import uuid7

E = TypeVar("E", bound=BaseModel)

logger = get_logger("conditioning.repository")


class InMemoryRepository(Generic[E]):
    created_event: EventName
    updated_event: EventName
    deleted_event: EventName
    undeleted_event: EventName

    def __init__(self, entities: Iterable[E] = ()):
        self._entities: dict[str, E] = {}
        self._subscribers: list[asyncio.Queue[DomainEvent]] = []
        for entity in entities:
            stored = self._prepare(entity)
            self._entities[stored.entity_id] = stored  # type: ignore[attr-defined]

    # Change stream
    def subscribe(self) -> asyncio.Queue[DomainEvent]:
        queue: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DomainEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    # Reads
    async def fetch_all(self) -> Result[list[E]]:
        return Result.ok([self._overview(e) for e in self._entities.values()])

    async def fetch_by_id(self, entity_id: str) -> Result[E]:
        entity = self._entities.get(str(entity_id))
        if entity is None:
            return Result.fail(f"{self._name}: entity {entity_id} not found")
        return Result.ok(entity.model_copy(deep=True))

    # Writes
    async def create(self, entity: E) -> Result[E]:
        stored = self._prepare(entity)
        entity_id = stored.entity_id  # type: ignore[attr-defined]
        if entity_id in self._entities:
            return Result.fail(f"{self._name}: entity {entity_id} already exists")
        self._entities[entity_id] = stored
        self._emit(self.created_event, stored)
        return Result.ok(stored.model_copy(deep=True))

    async def update(self, entity_id: str, changes: dict[str, Any]) -> Result[None]:
        current = self._entities.get(str(entity_id))
        if current is None:
            return Result.fail(f"{self._name}: entity {entity_id} not found")
        data = {
            **current.model_dump(),
            **{k: v for k, v in changes.items() if k != "entity_id"},
            "updated_on": utcnow(),
        }
        try:
            updated = type(current).model_validate(data)
        except ValidationError as e:
            return Result.fail(f"{self._name}: invalid update: {e}")
        self._entities[str(entity_id)] = updated
        self._emit(self.updated_event, updated)
        return Result.ok()

    async def delete(self, entity_id: str, soft_delete: bool = True) -> Result[None]:
        current = self._entities.get(str(entity_id))
        if current is None:
            return Result.fail(f"{self._name}: entity {entity_id} not found")
        if soft_delete:
            marked = current.model_copy(update={"deleted_on": utcnow()})
            self._entities[str(entity_id)] = marked
            self._emit(self.deleted_event, marked)
        else:
            del self._entities[str(entity_id)]
            self._emit(self.deleted_event, current.model_copy(update={"deleted_on": None}))
        return Result.ok()

    async def undelete(self, entity_id: str) -> Result[None]:
        current = self._entities.get(str(entity_id))
        if current is None:
            return Result.fail(f"{self._name}: entity {entity_id} not found")
        restored = current.model_copy(update={"deleted_on": None, "updated_on": utcnow()})
        self._entities[str(entity_id)] = restored
        self._emit(self.undeleted_event, restored)
        return Result.ok()

    # Internals
    @property
    def _name(self) -> str:
        return type(self).__name__

    def _prepare(self, entity: E) -> E:
        update: dict[str, Any] = {}
        if getattr(entity, "entity_id", None) is None:
            update["entity_id"] = str(uuid7())
        if getattr(entity, "created_on", None) is None:
            update["created_on"] = utcnow()
        return entity.model_copy(update=update, deep=True)

    def _overview(self, entity: E) -> E:
        return entity.model_copy(deep=True)

    def _emit(self, name: EventName, entity: E) -> None:
        event = DomainEvent.of(name, **entity.model_dump(mode="json"))
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        logger.debug(
            "repository_event_emitted",
            extra={
                "event_name": name.value,
                "entity_id": event.entity_id,
                "subscribers": len(self._subscribers),
            },
        )
