import asyncio
import logging
import random
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger("shared.retry")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    retries: int = 5,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff: float = 2.0,
    jitter: float = 0.1,
    retry_on: Iterable[type[BaseException]] = (Exception,),
    on_retry: Optional[
        Callable[[int, BaseException, float], Awaitable[None] | None]
    ] = None,
) -> T:
    """Await `func` up to `retries` times, sleeping between attempts.

    The delay grows by `backoff` after each attempt and is capped at
    `max_delay`; `backoff=1.0` with `jitter=0.0` gives a fixed delay. The last
    exception is re-raised once attempts are exhausted.
    """
    if retries < 1:
        raise ValueError("retries must be at least 1")
    retry_on = tuple(retry_on)
    delay = base_delay
    for attempt in range(retries):
        try:
            return await func()
        except retry_on as exc:  # type: ignore[misc]
            if attempt == retries - 1:
                raise
            sleep_for = min(delay, max_delay) + random.uniform(0, delay * jitter)
            if on_retry:
                try:
                    result = on_retry(attempt + 1, exc, sleep_for)
                    if result is not None:
                        await result  # support async callback
                except Exception:
                    logger.debug("retry_callback_failed", exc_info=True)
            await asyncio.sleep(sleep_for)
            delay = min(delay * backoff, max_delay)
    raise RuntimeError("async retry exhausted")
