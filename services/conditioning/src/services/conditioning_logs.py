from __future__ import annotations

from typing import Any, Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.errors import NotFoundError, PersistenceError
from src.domain.models import ConditioningLog, User, UserContext
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository

from shared.metrics import get_counter

from .access import AccessGate
from .cache_store import CacheStore
from .initialization import InitializationGuard
from .rollback import compensate

logger = get_logger("conditioning.logs")

LOG_OPERATIONS_TOTAL = get_counter(
    "log_operations_total",
    "Conditioning log operations by kind and outcome.",
    settings.otel_service_name,
    labelnames=("operation", "outcome"),
)
LOG_PROMOTIONS_TOTAL = get_counter(
    "log_promotions_total",
    "Overview logs replaced by their detailed record in the cache.",
    settings.otel_service_name,
)


class ConditioningLogService:
    """Create, read, update, delete and undelete single conditioning logs.

    Writes go to the repositories in a fixed order; when the second write of
    a pair fails, the first is compensated (see `rollback.compensate`). The
    cache is only touched here for detail promotion; everything else reaches
    it through the repository change events.
    """

    def __init__(
        self,
        cache: CacheStore,
        guard: InitializationGuard,
        gate: AccessGate,
        log_repo: ConditioningLogRepository,
        user_repo: UserRepository,
    ):
        self.cache = cache
        self.guard = guard
        self.gate = gate
        self.log_repo = log_repo
        self.user_repo = user_repo

    async def create_log(
        self, ctx: UserContext, target_user_id: str, log: ConditioningLog
    ) -> str:
        await self.guard.ensure_ready()
        self.gate.authorize(ctx, target_user_id)

        user = await self._fetch_user(target_user_id)

        created = await self.log_repo.create(log)
        if created.is_failure or created.value is None:
            LOG_OPERATIONS_TOTAL.labels(operation="create", outcome="error").inc()
            raise PersistenceError(f"Error creating conditioning log: {created.error}")
        log_id = str(created.value.entity_id)

        user.add_log(log_id)
        updated = await self.user_repo.update(str(user.entity_id), {"logs": user.logs})
        if updated.is_failure:
            logger.error(
                "user_update_failed_after_log_create",
                extra={"user_id": user.user_id, "log_id": log_id, "error": updated.error},
            )
            await compensate(
                "delete_orphaned_log",
                lambda: self.log_repo.delete(log_id, soft_delete=False),
                log_id=log_id,
                user_id=user.user_id,
            )
            LOG_OPERATIONS_TOTAL.labels(operation="create", outcome="error").inc()
            raise PersistenceError(
                f"Error updating user {user.user_id}: {updated.error}"
            )

        LOG_OPERATIONS_TOTAL.labels(operation="create", outcome="ok").inc()
        logger.info("log_created", extra={"user_id": user.user_id, "log_id": log_id})
        return log_id

    async def fetch_log(
        self,
        ctx: UserContext,
        target_user_id: str,
        log_id: str,
        include_deleted: bool = False,
    ) -> ConditioningLog:
        await self.guard.ensure_ready()
        self.gate.authorize(ctx, target_user_id)

        # owner is whoever holds the log, not necessarily the target
        entry = self.cache.entry_holding(log_id)
        cached = entry.find(log_id) if entry is not None else None
        if entry is None or cached is None or (cached.is_deleted and not include_deleted):
            raise NotFoundError(f"Conditioning log {log_id} not found")
        self.gate.authorize(ctx, entry.user_id)

        if not cached.is_overview:
            return cached

        result = await self.log_repo.fetch_by_id(log_id)
        if result.is_failure or result.value is None:
            raise PersistenceError(
                f"Error fetching conditioning log {log_id}: {result.error}"
            )
        detailed = result.value.to_detailed()
        if self.cache.promote(entry.user_id, detailed) is None:
            logger.debug("promotion_skipped", extra={"log_id": log_id})
        else:
            LOG_PROMOTIONS_TOTAL.inc()
        return detailed

    async def update_log(
        self,
        ctx: UserContext,
        target_user_id: str,
        log_id: str,
        changes: dict[str, Any],
    ) -> None:
        await self.guard.ensure_ready()
        self.gate.authorize(ctx, target_user_id)

        existing = await self.log_repo.fetch_by_id(log_id)
        if existing.is_failure:
            raise NotFoundError(f"Conditioning log {log_id} not found")
        user = await self._fetch_user(target_user_id)
        self._check_owner(ctx, user, log_id)

        updated = await self.log_repo.update(log_id, changes)
        if updated.is_failure:
            LOG_OPERATIONS_TOTAL.labels(operation="update", outcome="error").inc()
            raise PersistenceError(
                f"Error updating conditioning log {log_id}: {updated.error}"
            )
        # cache follows via the LOG_UPDATED event
        LOG_OPERATIONS_TOTAL.labels(operation="update", outcome="ok").inc()
        logger.info("log_updated", extra={"log_id": log_id, "fields": sorted(changes)})

    async def delete_log(
        self,
        ctx: UserContext,
        target_user_id: str,
        log_id: str,
        soft_delete: bool = True,
    ) -> None:
        await self.guard.ensure_ready()
        self.gate.authorize(ctx, target_user_id)

        existing = await self.log_repo.fetch_by_id(log_id)
        if existing.is_failure:
            raise NotFoundError(f"Conditioning log {log_id} not found")
        user = await self._fetch_user(target_user_id)
        self._check_owner(ctx, user, log_id)

        if soft_delete:
            # the user keeps the id of a soft deleted log
            deleted = await self.log_repo.delete(log_id, soft_delete=True)
            if deleted.is_failure:
                LOG_OPERATIONS_TOTAL.labels(operation="delete", outcome="error").inc()
                raise PersistenceError(
                    f"Error deleting conditioning log {log_id}: {deleted.error}"
                )
            LOG_OPERATIONS_TOTAL.labels(operation="delete", outcome="ok").inc()
            logger.info("log_soft_deleted", extra={"log_id": log_id})
            return

        original_logs = list(user.logs)
        user.remove_log(log_id)
        updated = await self.user_repo.update(str(user.entity_id), {"logs": user.logs})
        if updated.is_failure:
            LOG_OPERATIONS_TOTAL.labels(operation="delete", outcome="error").inc()
            raise PersistenceError(
                f"Error updating user {user.user_id}: {updated.error}"
            )

        deleted = await self.log_repo.delete(log_id, soft_delete=False)
        if deleted.is_failure:
            logger.error(
                "log_delete_failed_after_user_update",
                extra={"user_id": user.user_id, "log_id": log_id, "error": deleted.error},
            )
            await compensate(
                "restore_user_logs",
                lambda: self.user_repo.update(
                    str(user.entity_id), {"logs": original_logs}
                ),
                log_id=log_id,
                user_id=user.user_id,
            )
            LOG_OPERATIONS_TOTAL.labels(operation="delete", outcome="rolled_back").inc()
            return

        LOG_OPERATIONS_TOTAL.labels(operation="delete", outcome="ok").inc()
        logger.info("log_deleted", extra={"user_id": user.user_id, "log_id": log_id})

    async def undelete_log(
        self, ctx: UserContext, target_user_id: str, log_id: str
    ) -> None:
        await self.guard.ensure_ready()
        self.gate.authorize(ctx, target_user_id)

        existing = await self.log_repo.fetch_by_id(log_id)
        if existing.is_failure or existing.value is None:
            raise NotFoundError(f"Conditioning log {log_id} not found")
        user = await self._fetch_user(target_user_id)
        self._check_owner(ctx, user, log_id)
        if not existing.value.is_deleted:
            logger.debug("undelete_skipped_not_deleted", extra={"log_id": log_id})
            return

        restored = await self.log_repo.undelete(log_id)
        if restored.is_failure:
            LOG_OPERATIONS_TOTAL.labels(operation="undelete", outcome="error").inc()
            raise PersistenceError(
                f"Error undeleting conditioning log {log_id}: {restored.error}"
            )
        LOG_OPERATIONS_TOTAL.labels(operation="undelete", outcome="ok").inc()
        logger.info("log_undeleted", extra={"log_id": log_id})

    def _check_owner(self, ctx: UserContext, user: User, log_id: str) -> None:
        """Writes must name the user that lists the log."""
        if log_id in user.logs:
            return
        owner = self.cache.entry_holding(log_id)
        if owner is not None:
            # denies non-admins reaching for another user's log
            self.gate.authorize(ctx, owner.user_id)
        logger.warning(
            "log_not_owned_by_target",
            extra={"log_id": log_id, "target_user_id": user.user_id},
        )
        raise NotFoundError(f"Conditioning log {log_id} not found for user {user.user_id}")

    async def _fetch_user(self, user_id: Optional[str]) -> User:
        result = await self.user_repo.fetch_all()
        if result.is_failure:
            raise PersistenceError(f"Error fetching users: {result.error}")
        user = next(
            (
                u
                for u in result.value or []
                if u.user_id == str(user_id) and u.deleted_on is None
            ),
            None,
        )
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user
