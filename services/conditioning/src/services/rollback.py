"""Compensating actions for writes that partially failed.

Retries a repository call at a fixed delay up to the configured number of
attempts. Exhaustion is logged and counted, never raised: the inconsistency
is left for an operator to resolve.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.errors import PersistenceError
from src.domain.result import Result

from shared.metrics import get_counter
from shared.utils.retry import retry_async

logger = get_logger("conditioning.rollback")

ROLLBACK_ATTEMPTS_TOTAL = get_counter(
    "rollback_attempts_total",
    "Compensating repository calls issued.",
    settings.otel_service_name,
    labelnames=("action",),
)
ROLLBACK_EXHAUSTED_TOTAL = get_counter(
    "rollback_exhausted_total",
    "Compensating actions abandoned after the final attempt.",
    settings.otel_service_name,
    labelnames=("action",),
)


async def compensate(
    action: str,
    operation: Callable[[], Awaitable[Result[Any]]],
    **context: Any,
) -> bool:
    """Run `operation` until it succeeds or attempts run out.

    Returns True when the compensation committed.
    """

    async def _attempt() -> Result[Any]:
        ROLLBACK_ATTEMPTS_TOTAL.labels(action=action).inc()
        result = await operation()
        if result.is_failure:
            raise PersistenceError(result.error)
        return result

    async def _on_retry(attempt: int, exc: BaseException, sleep_for: float):
        logger.warning(
            "rollback_retry",
            extra={
                "action": action,
                "attempt": attempt,
                "error": str(exc),
                "sleep_for": round(sleep_for, 3),
                **context,
            },
        )

    delay = settings.rollback_delay_ms / 1000
    try:
        await retry_async(
            _attempt,
            retries=settings.rollback_max_attempts,
            base_delay=delay,
            max_delay=delay,
            backoff=1.0,
            jitter=0.0,
            on_retry=_on_retry,
        )
    except Exception as e:  # noqa: BLE001
        ROLLBACK_EXHAUSTED_TOTAL.labels(action=action).inc()
        logger.error(
            "rollback_exhausted",
            extra={
                "action": action,
                "attempts": settings.rollback_max_attempts,
                "error": str(e),
                **context,
            },
        )
        return False
    logger.info("rollback_completed", extra={"action": action, **context})
    return True
