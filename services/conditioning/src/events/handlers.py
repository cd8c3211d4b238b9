"""Handlers that project repository change events onto the log cache.

Each handler owns one event kind. Writes take a full snapshot, build the new
collection and swap it in through the capability-guarded store API. Missing
entries and failed fetches are logged; handlers never raise for them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError
from src.core.logger import get_logger
from src.domain.events import DomainEvent, EventName
from src.domain.models import CacheEntry, ConditioningLog, User, utcnow
from src.domain.query import sort_logs
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository
from src.services.cache_store import CacheStore
from src.services.rollback import compensate

logger = get_logger("conditioning.handlers")

_TIMESTAMP = TypeAdapter(datetime)


class DomainEventHandler:
    event_name: EventName

    def __init__(
        self,
        cache: CacheStore,
        log_repo: ConditioningLogRepository,
        user_repo: UserRepository,
    ):
        self.cache = cache
        self.log_repo = log_repo
        self.user_repo = user_repo
        self._capability = cache.grant(type(self).__name__)

    async def handle(self, event: DomainEvent) -> None:
        raise NotImplementedError

    # Guarded cache access
    def _snapshot(self) -> list[CacheEntry]:
        return self.cache.snapshot(self._capability)

    def _replace(self, entries: list[CacheEntry]) -> None:
        self.cache.replace(entries, self._capability)

    def _replace_log(self, log: ConditioningLog) -> bool:
        """Swap the cached copy of `log` wherever it is held."""
        snapshot = self._snapshot()
        for i, entry in enumerate(snapshot):
            if entry.holds(log.entity_id or ""):
                snapshot[i] = entry.with_log(log)
                self._replace(snapshot)
                return True
        return False

    async def _fetch_logs(self, log_ids: list[str], user_id: str) -> list[ConditioningLog]:
        fetched: list[ConditioningLog] = []
        for log_id in log_ids:
            result = await self.log_repo.fetch_by_id(log_id)
            if result.is_failure or result.value is None:
                logger.error(
                    "log_fetch_failed",
                    extra={"log_id": log_id, "user_id": user_id, "error": result.error},
                )
                continue
            fetched.append(result.value)
        return fetched


def _user_from(event: DomainEvent) -> Optional[User]:
    try:
        return User.model_validate(event.payload)
    except ValidationError as e:
        logger.error(
            "invalid_user_payload",
            extra={"event_name": event.event_name, "error": str(e)},
        )
        return None


class LogCreatedHandler(DomainEventHandler):
    event_name = EventName.LOG_CREATED

    async def handle(self, event: DomainEvent) -> None:
        # logs enter the cache when a user lists them (UserUpdatedHandler)
        logger.debug("log_created_seen", extra={"log_id": event.entity_id})


class LogUpdatedHandler(DomainEventHandler):
    event_name = EventName.LOG_UPDATED

    async def handle(self, event: DomainEvent) -> None:
        log_id = event.entity_id
        if log_id is None or self.cache.entry_holding(log_id) is None:
            logger.warning("log_not_cached", extra={"log_id": log_id, "event_name": event.event_name})
            return
        result = await self.log_repo.fetch_by_id(log_id)
        if result.is_failure or result.value is None:
            logger.warning("log_refetch_failed", extra={"log_id": log_id, "error": result.error})
            return
        if not self._replace_log(result.value):
            logger.warning("log_not_cached", extra={"log_id": log_id, "event_name": event.event_name})
            return
        logger.info("log_updated_in_cache", extra={"log_id": log_id})


class LogDeletedHandler(DomainEventHandler):
    """Soft deletes carry `deleted_on` and mark the cached copy; hard deletes drop it."""

    event_name = EventName.LOG_DELETED

    async def handle(self, event: DomainEvent) -> None:
        log_id = event.entity_id or ""
        snapshot = self._snapshot()
        index = next((i for i, e in enumerate(snapshot) if e.holds(log_id)), None)
        if index is None:
            logger.warning("log_not_cached", extra={"log_id": log_id, "event_name": event.event_name})
            return
        entry = snapshot[index]
        deleted_on = event.payload.get("deleted_on")
        if deleted_on is not None:
            cached = entry.find(log_id)
            snapshot[index] = entry.with_log(
                cached.model_copy(update={"deleted_on": _parse_timestamp(deleted_on)})  # type: ignore[union-attr]
            )
            logger.info("log_marked_deleted_in_cache", extra={"log_id": log_id})
        else:
            snapshot[index] = entry.model_copy(
                update={"logs": tuple(log for log in entry.logs if log.entity_id != log_id)}
            )
            logger.info("log_removed_from_cache", extra={"log_id": log_id})
        self._replace(snapshot)


class LogUndeletedHandler(DomainEventHandler):
    event_name = EventName.LOG_UNDELETED

    async def handle(self, event: DomainEvent) -> None:
        log_id = event.entity_id or ""
        entry = self.cache.entry_holding(log_id)
        cached = entry.find(log_id) if entry is not None else None
        if cached is None:
            logger.warning("log_not_cached", extra={"log_id": log_id, "event_name": event.event_name})
            return
        self._replace_log(cached.model_copy(update={"deleted_on": None}))
        logger.info("log_undeleted_in_cache", extra={"log_id": log_id})


class UserCreatedHandler(DomainEventHandler):
    event_name = EventName.USER_CREATED

    async def handle(self, event: DomainEvent) -> None:
        user = _user_from(event)
        if user is None:
            return
        logs = await self._fetch_logs(list(user.logs), user.user_id)
        entry = CacheEntry(user_id=user.user_id, logs=tuple(sort_logs(logs, "start")))
        snapshot = [e for e in self._snapshot() if e.user_id != user.user_id]
        snapshot.append(entry)
        self._replace(snapshot)
        logger.info(
            "user_added_to_cache", extra={"user_id": user.user_id, "logs": len(entry.logs)}
        )


class UserUpdatedHandler(DomainEventHandler):
    """Keeps cached logs the user still lists and fetches the newly listed ones."""

    event_name = EventName.USER_UPDATED

    async def handle(self, event: DomainEvent) -> None:
        user = _user_from(event)
        if user is None:
            return
        entry = self.cache.entry_for(user.user_id)
        if entry is None:
            logger.error("user_not_cached", extra={"user_id": user.user_id})
            return

        listed = list(user.logs)
        cached_ids = {log.entity_id for log in entry.logs}
        added = await self._fetch_logs(
            [log_id for log_id in listed if log_id not in cached_ids], user.user_id
        )

        # re-read: the entry may have changed while fetching
        snapshot = self._snapshot()
        index = next((i for i, e in enumerate(snapshot) if e.user_id == user.user_id), None)
        if index is None:
            logger.error("user_not_cached", extra={"user_id": user.user_id})
            return
        current = snapshot[index]
        kept = [log for log in current.logs if log.entity_id in listed]
        kept_ids = {log.entity_id for log in kept}
        merged = kept + [log for log in added if log.entity_id not in kept_ids]
        snapshot[index] = current.model_copy(
            update={"logs": tuple(sort_logs(merged, "start")), "last_accessed": utcnow()}
        )
        self._replace(snapshot)
        logger.info(
            "user_logs_updated_in_cache",
            extra={"user_id": user.user_id, "logs": len(merged), "added": len(added)},
        )


class UserDeletedHandler(DomainEventHandler):
    """Hard deleted users lose their entry, and their logs are purged from the repository."""

    event_name = EventName.USER_DELETED

    async def handle(self, event: DomainEvent) -> None:
        user = _user_from(event)
        if user is None:
            return
        if user.deleted_on is not None:
            # soft deleted users keep their logs so they can be restored
            logger.info("user_soft_deleted", extra={"user_id": user.user_id})
            return

        snapshot = self._snapshot()
        entry = next((e for e in snapshot if e.user_id == user.user_id), None)
        orphaned = list(user.logs)
        if entry is not None:
            orphaned += [
                log.entity_id
                for log in entry.logs
                if log.entity_id and log.entity_id not in orphaned
            ]
            self._replace([e for e in snapshot if e is not entry])
            logger.info("user_removed_from_cache", extra={"user_id": user.user_id})
        else:
            logger.warning("user_not_cached", extra={"user_id": user.user_id})

        for log_id in orphaned:
            if (await self.log_repo.fetch_by_id(log_id)).is_failure:
                logger.debug("orphaned_log_already_gone", extra={"log_id": log_id})
                continue
            await compensate(
                "purge_orphaned_log",
                lambda log_id=log_id: self.log_repo.delete(log_id, soft_delete=False),
                log_id=log_id,
                user_id=user.user_id,
            )


def _parse_timestamp(value: Any) -> datetime:
    try:
        return _TIMESTAMP.validate_python(value)
    except ValidationError:
        logger.warning("invalid_deleted_on", extra={"value": str(value)})
        return utcnow()


ALL_HANDLERS: tuple[type[DomainEventHandler], ...] = (
    LogCreatedHandler,
    LogUpdatedHandler,
    LogDeletedHandler,
    LogUndeletedHandler,
    UserCreatedHandler,
    UserUpdatedHandler,
    UserDeletedHandler,
)
