import asyncio

import pytest
from src.domain.errors import PersistenceError
from src.domain.models import CacheEntry
from src.domain.result import Result
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository
from src.services.cache_store import CacheStore
from src.services.initialization import InitializationGuard


class CountingRepo:
    def __init__(self, inner, fail_times=0):
        self.inner = inner
        self.fail_times = fail_times
        self.calls = 0

    async def fetch_all(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.calls <= self.fail_times:
            return Result.fail("store unavailable")
        return await self.inner.fetch_all()


@pytest.mark.asyncio
async def test_populates_entries_per_user_sorted_by_start(log_repo, user_repo):
    cache = CacheStore()
    guard = InitializationGuard(cache, log_repo, user_repo)

    assert await guard.ensure_ready() is True

    alice = cache.entry_for("alice")
    assert [log.entity_id for log in alice.logs] == ["a1", "a2"]
    assert all(log.is_overview for log in alice.logs)
    assert [log.entity_id for log in cache.entry_for("bob").logs] == ["b1"]


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_scan(log_repo, user_repo):
    logs = CountingRepo(log_repo)
    users = CountingRepo(user_repo)
    guard = InitializationGuard(CacheStore(), logs, users)

    results = await asyncio.gather(*(guard.ensure_ready() for _ in range(5)))

    assert results == [True] * 5
    assert logs.calls == 1
    assert users.calls == 1
    assert guard.attempts == 1

    await guard.ensure_ready()
    assert logs.calls == 1


@pytest.mark.asyncio
async def test_failure_leaves_cache_empty_and_next_call_retries(log_repo, user_repo):
    cache = CacheStore()
    logs = CountingRepo(log_repo, fail_times=1)
    guard = InitializationGuard(cache, logs, user_repo)

    with pytest.raises(PersistenceError):
        await guard.ensure_ready()
    assert len(cache) == 0
    assert guard.is_ready is False

    assert await guard.ensure_ready() is True
    assert guard.attempts == 2
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_raised_repository_error_becomes_persistence_error(user_repo):
    class Exploding:
        async def fetch_all(self):
            raise ConnectionError("gone")

    guard = InitializationGuard(CacheStore(), Exploding(), user_repo)

    with pytest.raises(PersistenceError):
        await guard.ensure_ready()


@pytest.mark.asyncio
async def test_on_ready_fires_once_even_without_users():
    fired = []
    guard = InitializationGuard(
        CacheStore(),
        ConditioningLogRepository(),
        UserRepository(),
        on_ready=lambda: fired.append(True),
    )

    await guard.ensure_ready()
    await guard.ensure_ready()

    assert fired == [True]
    assert guard.attempts == 1


@pytest.mark.asyncio
async def test_entries_written_before_first_load_do_not_count_as_ready(log_repo, user_repo):
    cache = CacheStore()
    fired = []
    guard = InitializationGuard(
        cache, log_repo, user_repo, on_ready=lambda: fired.append(True)
    )
    cache.load([CacheEntry(user_id="carol")])

    assert guard.is_ready is False
    assert await guard.ensure_ready() is True

    assert guard.attempts == 1
    assert fired == [True]
    assert [e.user_id for e in cache.entries] == ["alice", "bob"]
