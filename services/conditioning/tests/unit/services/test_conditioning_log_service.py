from datetime import datetime, timezone

import pytest
from src.domain.errors import NotFoundError, PersistenceError, UnauthorizedAccessError
from src.domain.events import DomainEvent, EventName
from src.domain.models import ActivityType, ConditioningLog
from src.domain.result import Result


async def _always_fail(*args, **kwargs):
    return Result.fail("write rejected")


def _fail_after(first_n, method):
    """Pass the first `first_n` calls through to `method`, fail the rest."""
    calls = []

    async def wrapper(*args, **kwargs):
        calls.append(args)
        if len(calls) <= first_n:
            return await method(*args, **kwargs)
        return Result.fail("write rejected")

    return wrapper


async def _log_ids(repo):
    return {log.entity_id for log in (await repo.fetch_all()).unwrap()}


async def _user_logs(repo, user_id):
    users = (await repo.fetch_all()).unwrap()
    return next(u.logs for u in users if u.user_id == user_id)


@pytest.mark.asyncio
async def test_create_links_log_to_user_and_reaches_cache(container, admin):
    new_log = ConditioningLog(activity=ActivityType.MTB, note="Trail loop")

    log_id = await container.logs.create_log(admin, "bob", new_log)
    await container.drain_events()

    assert log_id in await _user_logs(container.user_repo, "bob")
    cached = container.cache.entry_for("bob").find(log_id)
    assert cached is not None
    assert cached.note == "Trail loop"


@pytest.mark.asyncio
async def test_create_for_other_user_is_denied(container, alice):
    with pytest.raises(UnauthorizedAccessError):
        await container.logs.create_log(
            alice, "bob", ConditioningLog(activity=ActivityType.RUN)
        )
    assert await _log_ids(container.log_repo) == {"a1", "a2", "b1"}


@pytest.mark.asyncio
async def test_create_for_unknown_user(container, admin):
    with pytest.raises(NotFoundError):
        await container.logs.create_log(
            admin, "carol", ConditioningLog(activity=ActivityType.RUN)
        )


@pytest.mark.asyncio
async def test_create_rolls_back_log_when_user_update_fails(container, alice, monkeypatch):
    monkeypatch.setattr(container.user_repo, "update", _always_fail)

    with pytest.raises(PersistenceError):
        await container.logs.create_log(
            alice, "alice", ConditioningLog(activity=ActivityType.RUN)
        )

    assert await _log_ids(container.log_repo) == {"a1", "a2", "b1"}


@pytest.mark.asyncio
async def test_create_rollback_exhaustion_is_logged(container, alice, monkeypatch, caplog):
    monkeypatch.setattr(container.user_repo, "update", _always_fail)
    monkeypatch.setattr(container.log_repo, "delete", _always_fail)

    with pytest.raises(PersistenceError):
        await container.logs.create_log(
            alice, "alice", ConditioningLog(activity=ActivityType.RUN)
        )

    assert len(await _log_ids(container.log_repo)) == 4
    assert "rollback_exhausted" in caplog.text


@pytest.mark.asyncio
async def test_fetch_promotes_overview_once(container, alice, monkeypatch):
    calls = []
    original = container.log_repo.fetch_by_id

    async def counting(log_id):
        calls.append(log_id)
        return await original(log_id)

    monkeypatch.setattr(container.log_repo, "fetch_by_id", counting)

    first = await container.logs.fetch_log(alice, "alice", "a1")
    second = await container.logs.fetch_log(alice, "alice", "a1")

    assert first.is_overview is False
    assert first.laps
    assert second == first
    assert calls == ["a1"]
    assert container.cache.entry_for("alice").find("a1").is_overview is False
    assert container.cache.entry_for("alice").find("a2").is_overview is True


@pytest.mark.asyncio
async def test_fetch_missing_log(container, alice):
    with pytest.raises(NotFoundError):
        await container.logs.fetch_log(alice, "alice", "nope")


@pytest.mark.asyncio
async def test_fetch_log_owned_by_someone_else(container, alice):
    with pytest.raises(UnauthorizedAccessError):
        await container.logs.fetch_log(alice, "alice", "b1")


@pytest.mark.asyncio
async def test_update_reaches_cache(container, alice):
    await container.logs.update_log(alice, "alice", "a1", {"note": "Tempo"})
    await container.drain_events()

    cached = container.cache.entry_for("alice").find("a1")
    assert cached.note == "Tempo"
    assert (await container.log_repo.fetch_by_id("a1")).unwrap().note == "Tempo"


@pytest.mark.asyncio
async def test_update_missing_or_invalid(container, alice):
    with pytest.raises(NotFoundError):
        await container.logs.update_log(alice, "alice", "nope", {"note": "x"})
    with pytest.raises(PersistenceError):
        await container.logs.update_log(alice, "alice", "a1", {"activity": "SKATE"})


@pytest.mark.asyncio
async def test_soft_delete_hides_log_until_undeleted(container, alice):
    await container.logs.delete_log(alice, "alice", "a1")
    await container.drain_events()

    with pytest.raises(NotFoundError):
        await container.logs.fetch_log(alice, "alice", "a1")
    hidden = await container.logs.fetch_log(alice, "alice", "a1", include_deleted=True)
    assert hidden.is_deleted
    assert "a1" in await _user_logs(container.user_repo, "alice")

    await container.logs.undelete_log(alice, "alice", "a1")
    await container.drain_events()

    restored = await container.logs.fetch_log(alice, "alice", "a1")
    assert not restored.is_deleted


@pytest.mark.asyncio
async def test_undelete_of_live_log_is_a_no_op(container, alice):
    await container.logs.undelete_log(alice, "alice", "a1")

    assert not (await container.log_repo.fetch_by_id("a1")).unwrap().is_deleted


@pytest.mark.asyncio
async def test_hard_delete_removes_log_everywhere(container, alice):
    await container.logs.delete_log(alice, "alice", "a1", soft_delete=False)
    await container.drain_events()

    assert (await container.log_repo.fetch_by_id("a1")).is_failure
    assert await _user_logs(container.user_repo, "alice") == ["a2"]
    assert [log.entity_id for log in container.cache.entry_for("alice").logs] == ["a2"]


@pytest.mark.asyncio
async def test_hard_delete_restores_user_when_log_delete_fails(container, alice, monkeypatch):
    monkeypatch.setattr(container.log_repo, "delete", _always_fail)

    await container.logs.delete_log(alice, "alice", "a1", soft_delete=False)
    await container.drain_events()

    assert await _user_logs(container.user_repo, "alice") == ["a1", "a2"]
    assert (await container.log_repo.fetch_by_id("a1")).is_success
    cached_ids = {log.entity_id for log in container.cache.entry_for("alice").logs}
    assert cached_ids == {"a1", "a2"}


@pytest.mark.asyncio
async def test_hard_delete_rollback_exhaustion(container, alice, monkeypatch, caplog):
    monkeypatch.setattr(container.log_repo, "delete", _always_fail)
    monkeypatch.setattr(
        container.user_repo, "update", _fail_after(1, container.user_repo.update)
    )

    await container.logs.delete_log(alice, "alice", "a1", soft_delete=False)

    assert await _user_logs(container.user_repo, "alice") == ["a2"]
    assert "rollback_exhausted" in caplog.text


@pytest.mark.asyncio
async def test_hard_delete_fails_fast_when_user_update_fails(container, alice, monkeypatch):
    monkeypatch.setattr(container.user_repo, "update", _always_fail)

    with pytest.raises(PersistenceError):
        await container.logs.delete_log(alice, "alice", "a1", soft_delete=False)

    assert (await container.log_repo.fetch_by_id("a1")).is_success


@pytest.mark.asyncio
async def test_update_of_log_owned_by_someone_else_is_denied(container, alice):
    with pytest.raises(UnauthorizedAccessError):
        await container.logs.update_log(alice, "alice", "b1", {"note": "mine now"})

    assert (await container.log_repo.fetch_by_id("b1")).unwrap().note is None


@pytest.mark.asyncio
@pytest.mark.parametrize("soft_delete", [True, False])
async def test_delete_of_log_owned_by_someone_else_is_denied(container, alice, soft_delete):
    with pytest.raises(UnauthorizedAccessError):
        await container.logs.delete_log(alice, "alice", "b1", soft_delete=soft_delete)

    b1 = (await container.log_repo.fetch_by_id("b1")).unwrap()
    assert not b1.is_deleted
    assert await _user_logs(container.user_repo, "bob") == ["b1"]
    assert await _user_logs(container.user_repo, "alice") == ["a1", "a2"]


@pytest.mark.asyncio
async def test_undelete_of_log_owned_by_someone_else_is_denied(container, alice, admin):
    await container.logs.delete_log(admin, "bob", "b1")

    with pytest.raises(UnauthorizedAccessError):
        await container.logs.undelete_log(alice, "alice", "b1")

    assert (await container.log_repo.fetch_by_id("b1")).unwrap().is_deleted


@pytest.mark.asyncio
async def test_admin_write_naming_the_wrong_owner(container, admin):
    with pytest.raises(NotFoundError):
        await container.logs.update_log(admin, "alice", "b1", {"note": "x"})
    with pytest.raises(NotFoundError):
        await container.logs.delete_log(admin, "alice", "b1", soft_delete=False)

    assert (await container.log_repo.fetch_by_id("b1")).is_success
    assert await _user_logs(container.user_repo, "bob") == ["b1"]


@pytest.mark.asyncio
async def test_log_with_naive_start_sorts_with_the_rest(container, alice):
    log_id = await container.logs.create_log(
        alice,
        "alice",
        ConditioningLog(activity=ActivityType.RUN, start=datetime(2024, 5, 8, 7, 0)),
    )
    await container.drain_events()

    logs = await container.queries.fetch_logs(alice, "alice")

    assert [log.entity_id for log in logs] == ["a1", "a2", log_id]
    assert logs[-1].start == datetime(2024, 5, 8, 7, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_user_created_before_first_request_does_not_skip_load(container, alice):
    await container.dispatcher.dispatch(
        DomainEvent.of(EventName.USER_CREATED, user_id="carol", logs=[])
    )

    logs = await container.queries.fetch_logs(alice, "alice")

    assert [log.entity_id for log in logs] == ["a1", "a2"]
    assert container.guard.attempts == 1
    assert all(pump.running for pump in container.pumps)
