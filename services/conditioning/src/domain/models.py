from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# unit -> (dimension, factor to the dimension's base unit)
UNITS: dict[str, tuple[str, float]] = {
    "ms": ("time", 0.001),
    "s": ("time", 1.0),
    "min": ("time", 60.0),
    "h": ("time", 3600.0),
    "hours": ("time", 3600.0),
    "m": ("length", 1.0),
    "km": ("length", 1000.0),
    "g": ("mass", 0.001),
    "kg": ("mass", 1.0),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Quantity(BaseModel):
    """A scalar with a unit, e.g. a duration of 45 min or a distance of 12 km."""

    model_config = ConfigDict(frozen=True)

    value: float
    unit: str

    @field_validator("unit")
    @classmethod
    def _known_unit(cls, unit: str) -> str:
        if unit not in UNITS:
            raise ValueError(f"Unsupported unit: {unit}")
        return unit

    def to(self, unit: str) -> "Quantity":
        if unit not in UNITS:
            raise ValueError(f"Unsupported unit: {unit}")
        src_dim, src_factor = UNITS[self.unit]
        dst_dim, dst_factor = UNITS[unit]
        if src_dim != dst_dim:
            raise ValueError(f"Cannot convert {self.unit} to {unit}")
        return Quantity(value=self.value * src_factor / dst_factor, unit=unit)


class ActivityType(str, Enum):
    MTB = "MTB"
    RUN = "RUN"
    SWIM = "SWIM"
    BIKE = "BIKE"
    SKI = "SKI"
    OTHER = "OTHER"


class ConditioningLap(BaseModel):
    """A segment of a session, e.g. a pool length or a leg of a ride."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime | None = None
    duration: Quantity | None = None
    note: str | None = None

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class ConditioningLog(BaseModel):
    """A logged conditioning session.

    Overview logs are lightweight summaries without laps; detailed logs carry
    the full record. Instances are immutable: changes produce new copies.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str | None = None
    activity: ActivityType
    start: datetime | None = None
    end: datetime | None = None
    duration: Quantity | None = None
    distance: Quantity | None = None
    note: str | None = None
    laps: list[ConditioningLap] | None = None
    is_overview: bool = True
    created_on: datetime | None = None
    updated_on: datetime | None = None
    deleted_on: datetime | None = None

    @field_validator("start", "end", "created_on", "updated_on", "deleted_on")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_on is not None

    def to_overview(self) -> "ConditioningLog":
        return self.model_copy(update={"laps": None, "is_overview": True})

    def to_detailed(self) -> "ConditioningLog":
        return self.model_copy(update={"laps": list(self.laps or []), "is_overview": False})


class User(BaseModel):
    """Association between an external user identity and the ids of its logs.

    Holds log ids only, never log content.
    """

    entity_id: str | None = None
    user_id: str
    logs: list[str] = Field(default_factory=list)
    created_on: datetime | None = None
    updated_on: datetime | None = None
    deleted_on: datetime | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value):
        return str(value) if isinstance(value, int) else value

    def add_log(self, log_id: str) -> None:
        if log_id not in self.logs:
            self.logs = [*self.logs, log_id]

    def remove_log(self, log_id: str) -> None:
        self.logs = [lid for lid in self.logs if lid != log_id]


class UserContext(BaseModel):
    """Identity of the requesting user or service, trusted as supplied."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    user_name: str | None = None
    user_type: Literal["user", "service"] = "user"
    roles: list[str] = Field(default_factory=list)

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value):
        return str(value) if isinstance(value, int) else value

    def is_admin(self, admin_role: str) -> bool:
        return admin_role in self.roles


class CacheEntry(BaseModel):
    """Cached logs of one user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    logs: tuple[ConditioningLog, ...] = ()
    last_accessed: datetime = Field(default_factory=utcnow)

    def find(self, log_id: str) -> ConditioningLog | None:
        return next((log for log in self.logs if log.entity_id == log_id), None)

    def holds(self, log_id: str) -> bool:
        return self.find(log_id) is not None

    def with_log(self, log: ConditioningLog, touch: bool = False) -> "CacheEntry":
        """Copy of the entry with the log of the same id replaced."""
        logs = tuple(log if c.entity_id == log.entity_id else c for c in self.logs)
        update: dict = {"logs": logs}
        if touch:
            update["last_accessed"] = utcnow()
        return self.model_copy(update=update)
