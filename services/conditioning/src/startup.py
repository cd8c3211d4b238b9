from __future__ import annotations

import asyncio
from typing import Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.events.dispatcher import EventDispatcher
from src.events.handlers import ALL_HANDLERS
from src.events.pump import RepositoryEventPump
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository
from src.services.access import AccessGate
from src.services.cache_store import CacheStore
from src.services.conditioning_logs import ConditioningLogService
from src.services.initialization import InitializationGuard
from src.services.log_query import LogQueryService

logger = get_logger("conditioning.startup")


class ServiceContainer:
    """Builds the conditioning core in dependency order.

    The cache store comes first and is handed to the handlers, which receive
    their write capability from it. Repository event pumps start once the
    cache has been populated.
    """

    def __init__(
        self,
        log_repo: Optional[ConditioningLogRepository] = None,
        user_repo: Optional[UserRepository] = None,
    ):
        self.log_repo = log_repo or ConditioningLogRepository()
        self.user_repo = user_repo or UserRepository()
        self.cache = CacheStore()
        self.dispatcher = EventDispatcher(
            handler(self.cache, self.log_repo, self.user_repo) for handler in ALL_HANDLERS
        )
        self.pumps = [
            RepositoryEventPump("logs", self.log_repo, self.dispatcher),
            RepositoryEventPump("users", self.user_repo, self.dispatcher),
        ]
        self.guard = InitializationGuard(
            self.cache, self.log_repo, self.user_repo, on_ready=self.start_pumps
        )
        self.gate = AccessGate(settings.admin_role)
        self.logs = ConditioningLogService(
            self.cache, self.guard, self.gate, self.log_repo, self.user_repo
        )
        self.queries = LogQueryService(
            self.cache,
            self.guard,
            self.gate,
            default_sort_key=settings.default_sort_key,
        )

    def start_pumps(self) -> None:
        for pump in self.pumps:
            pump.start()

    async def drain_events(self, rounds: int = 3) -> None:
        """Wait for queued change events, including those raised while handling."""
        for _ in range(rounds):
            await asyncio.gather(*(pump.drain() for pump in self.pumps))
            await asyncio.sleep(0)

    async def shutdown(self) -> None:
        for pump in self.pumps:
            await pump.stop()
        self.cache.clear()


async def initialize_application(container: ServiceContainer) -> None:
    logger.info(
        "conditioning_service_initializing",
        extra={"service": settings.otel_service_name},
    )
    if settings.warm_cache_on_startup:
        logger.info("cache_warming_enabled")
        try:
            await container.guard.ensure_ready()
        except Exception as e:  # noqa: BLE001
            # the guard retries on the first request
            logger.warning("cache_warming_failed", extra={"error": str(e)})
    else:
        logger.info("cache_warming_disabled")
    logger.info("conditioning_service_initialized")
