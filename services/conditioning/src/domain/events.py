from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from uuid6 import uuid7

from .models import utcnow


class EventName(str, Enum):
    """Kinds of repository change events the cache reacts to."""

    LOG_CREATED = "LogCreatedEvent"
    LOG_UPDATED = "LogUpdatedEvent"
    LOG_DELETED = "LogDeletedEvent"
    LOG_UNDELETED = "LogUndeletedEvent"
    USER_CREATED = "UserCreatedEvent"
    USER_UPDATED = "UserUpdatedEvent"
    USER_DELETED = "UserDeletedEvent"


class DomainEvent(BaseModel):
    """One committed repository mutation.

    `payload` holds the (partial) entity data relevant to the event kind,
    keyed by entity field name. `event_name` stays a plain string so that
    names this service does not know survive parsing and can be reported.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    event_id: UUID = Field(default_factory=uuid7)
    event_name: str
    occurred_on: datetime = Field(default_factory=utcnow)
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> EventName | None:
        try:
            return EventName(self.event_name)
        except ValueError:
            return None

    @property
    def entity_id(self) -> str | None:
        value = self.payload.get("entity_id")
        return None if value is None else str(value)

    @classmethod
    def of(cls, name: EventName, **payload: Any) -> "DomainEvent":
        return cls(event_name=name.value, payload=payload)
