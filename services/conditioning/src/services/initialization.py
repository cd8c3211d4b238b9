from __future__ import annotations

import asyncio
from typing import Callable, Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.errors import PersistenceError
from src.domain.models import CacheEntry
from src.domain.query import sort_logs
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository

from shared.metrics import get_histogram

from .cache_store import CacheStore

logger = get_logger("conditioning.initialization")

CACHE_INIT_SECONDS = get_histogram(
    "cache_init_seconds",
    "Time spent populating the log cache from the repositories.",
    settings.otel_service_name,
)


class InitializationGuard:
    """Populates the cache from a full repository scan, once.

    Concurrent callers share the in-flight attempt. A failed attempt leaves
    the cache empty and is raised to every waiter; the next call retries.
    """

    def __init__(
        self,
        cache: CacheStore,
        log_repo: ConditioningLogRepository,
        user_repo: UserRepository,
        on_ready: Optional[Callable[[], None]] = None,
    ):
        self.cache = cache
        self.log_repo = log_repo
        self.user_repo = user_repo
        self._on_ready = on_ready
        self._task: Optional[asyncio.Task[bool]] = None
        self._loaded = False
        self.attempts = 0

    @property
    def is_ready(self) -> bool:
        return self._loaded

    async def ensure_ready(self) -> bool:
        if self.is_ready:
            return True
        if self._task is None:
            self._task = asyncio.create_task(self._initialize())
        task = self._task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._task is task:
                self._task = None

    async def _initialize(self) -> bool:
        self.attempts += 1
        with CACHE_INIT_SECONDS.time():
            try:
                logs_result, users_result = await asyncio.gather(
                    self.log_repo.fetch_all(), self.user_repo.fetch_all()
                )
            except Exception as e:  # noqa: BLE001
                logger.error("cache_initialization_failed", extra={"error": str(e)})
                raise PersistenceError(f"Cache initialization failed: {e}") from e
            for name, result in (("logs", logs_result), ("users", users_result)):
                if result.is_failure:
                    logger.error(
                        "cache_initialization_failed",
                        extra={"source": name, "error": result.error},
                    )
                    raise PersistenceError(
                        f"Cache initialization failed fetching {name}: {result.error}"
                    )

            logs = sort_logs(logs_result.value or [], "start")
            entries: list[CacheEntry] = []
            seen: set[str] = set()
            for user in users_result.value or []:
                if user.user_id in seen:
                    logger.warning(
                        "duplicate_user_skipped", extra={"user_id": user.user_id}
                    )
                    continue
                seen.add(user.user_id)
                owned = set(user.logs)
                entries.append(
                    CacheEntry(
                        user_id=user.user_id,
                        logs=tuple(log for log in logs if log.entity_id in owned),
                    )
                )
            self.cache.load(entries)

        first_load = not self._loaded
        self._loaded = True
        if first_load and self._on_ready is not None:
            self._on_ready()
        return True
