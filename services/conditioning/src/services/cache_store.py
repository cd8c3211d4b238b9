from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.errors import UnauthorizedAccessError
from src.domain.models import CacheEntry, ConditioningLog, utcnow

from shared.metrics import get_gauge

logger = get_logger("conditioning.cache_store")

CACHE_ENTRIES = get_gauge(
    "cache_entries", "Users currently held in the log cache.", settings.otel_service_name
)
CACHE_LOGS = get_gauge(
    "cache_logs", "Logs currently held in the log cache.", settings.otel_service_name
)

Listener = Callable[[List[CacheEntry]], None]


@dataclass(frozen=True, eq=False)
class CacheCapability:
    """Proof that the holder may bulk-read and bulk-replace the cache.

    Compared by identity: only instances issued by `CacheStore.grant` pass.
    """

    holder: str
    issued_on: object = field(default_factory=utcnow, repr=False)


class CacheStore:
    """Observable table of cache entries, at most one per user.

    Every mutation swaps the whole collection and broadcasts the new snapshot
    to listeners. Bulk access (`snapshot`/`replace`) is limited to holders of
    a capability issued by `grant`; the initialization path uses `load` and
    detail promotion uses `promote`.
    """

    def __init__(self):
        self._entries: list[CacheEntry] = []
        self._listeners: list[Listener] = []
        self._grants: list[CacheCapability] = []

    # Access
    def grant(self, holder: str) -> CacheCapability:
        capability = CacheCapability(holder=holder)
        self._grants.append(capability)
        logger.debug("cache_write_granted", extra={"holder": holder})
        return capability

    def _check(self, capability: Optional[CacheCapability], operation: str) -> None:
        if not any(capability is g for g in self._grants):
            holder = getattr(capability, "holder", None)
            logger.warning(
                "cache_access_denied",
                extra={"operation": operation, "holder": holder},
            )
            raise UnauthorizedAccessError(
                f"{operation} requires a capability granted by the cache store"
            )

    # Observation
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def entries(self) -> list[CacheEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entry_for(self, user_id: str) -> Optional[CacheEntry]:
        return next((e for e in self._entries if e.user_id == str(user_id)), None)

    def entry_holding(self, log_id: str) -> Optional[CacheEntry]:
        return next((e for e in self._entries if e.holds(log_id)), None)

    def all_logs(self) -> list[ConditioningLog]:
        return [log for entry in self._entries for log in entry.logs]

    # Guarded bulk access
    def snapshot(self, capability: CacheCapability) -> list[CacheEntry]:
        self._check(capability, "snapshot")
        return list(self._entries)

    def replace(
        self, entries: Iterable[CacheEntry], capability: CacheCapability
    ) -> None:
        self._check(capability, "replace")
        self._commit(list(entries))

    # Orchestrator paths
    def load(self, entries: Iterable[CacheEntry]) -> None:
        self._commit(list(entries))
        logger.info(
            "cache_loaded",
            extra={"users": len(self._entries), "logs": len(self.all_logs())},
        )

    def promote(self, user_id: str, log: ConditioningLog) -> Optional[CacheEntry]:
        """Replace the cached copy of `log` in the user's entry and touch it."""
        entry = self.entry_for(user_id)
        if entry is None or not entry.holds(log.entity_id or ""):
            return None
        updated = entry.with_log(log, touch=True)
        self._commit([updated if e is entry else e for e in self._entries])
        return updated

    def clear(self) -> None:
        self._commit([])

    def _commit(self, entries: list[CacheEntry]) -> None:
        user_ids = [e.user_id for e in entries]
        if len(set(user_ids)) != len(user_ids):
            raise ValueError("cache entries must be unique per user")
        self._entries = entries
        CACHE_ENTRIES.set(len(entries))
        CACHE_LOGS.set(sum(len(e.logs) for e in entries))
        for listener in list(self._listeners):
            try:
                listener(list(entries))
            except Exception:  # noqa: BLE001
                logger.exception("cache_listener_failed")
