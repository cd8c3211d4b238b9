import pytest

from shared.utils import retry as retry_mod
from shared.utils.retry import retry_async


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(retry_mod.asyncio, "sleep", fake_sleep)
    return recorded


@pytest.mark.asyncio
async def test_returns_first_success(sleeps):
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("nope")
        return "done"

    assert await retry_async(flaky, retries=5, base_delay=1, jitter=0) == "done"
    assert len(calls) == 3
    assert sleeps == [1, 2]


@pytest.mark.asyncio
async def test_fixed_delay_and_reraise(sleeps):
    seen = []

    async def always():
        raise ValueError("bad")

    async def on_retry(attempt, exc, sleep_for):
        seen.append((attempt, str(exc), sleep_for))

    with pytest.raises(ValueError):
        await retry_async(
            always, retries=3, base_delay=0.5, backoff=1.0, jitter=0.0, on_retry=on_retry
        )

    assert sleeps == [0.5, 0.5]
    assert seen == [(1, "bad", 0.5), (2, "bad", 0.5)]


@pytest.mark.asyncio
async def test_only_listed_exceptions_are_retried(sleeps):
    async def broken():
        raise KeyError("x")

    with pytest.raises(KeyError):
        await retry_async(broken, retries=4, retry_on=(ConnectionError,))
    assert sleeps == []


@pytest.mark.asyncio
async def test_delay_is_capped(sleeps):
    async def always():
        raise RuntimeError()

    with pytest.raises(RuntimeError):
        await retry_async(always, retries=5, base_delay=4, max_delay=6, jitter=0)

    assert sleeps == [4, 6, 6, 6]


@pytest.mark.asyncio
async def test_rejects_zero_retries():
    async def ok():
        return 1

    with pytest.raises(ValueError):
        await retry_async(ok, retries=0)
