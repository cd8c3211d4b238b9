import pytest
from src.core.config import settings
from src.domain.result import Result
from src.services.rollback import compensate


class FlakyOperation:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            return Result.fail("write rejected")
        return Result.ok()


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(caplog):
    op = FlakyOperation(failures=2)

    assert await compensate("restore_user_logs", op, log_id="l1") is True

    assert op.calls == 3
    assert "rollback_retry" in caplog.text
    assert "rollback_completed" in caplog.text


@pytest.mark.asyncio
async def test_gives_up_after_configured_attempts(caplog):
    op = FlakyOperation(failures=100)

    assert await compensate("delete_orphaned_log", op) is False

    assert op.calls == settings.rollback_max_attempts
    assert "rollback_exhausted" in caplog.text


@pytest.mark.asyncio
async def test_raised_errors_are_retried_too(monkeypatch):
    monkeypatch.setattr(settings, "rollback_max_attempts", 2)
    calls = []

    async def boom():
        calls.append(1)
        raise ConnectionError("down")

    assert await compensate("delete_orphaned_log", boom) is False
    assert len(calls) == 2
