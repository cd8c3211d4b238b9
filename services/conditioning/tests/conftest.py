from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from src.core.config import settings
from src.domain.models import (
    ActivityType,
    ConditioningLap,
    ConditioningLog,
    Quantity,
    User,
    UserContext,
)
from src.repositories.logs import ConditioningLogRepository
from src.repositories.users import UserRepository
from src.startup import ServiceContainer

DAY_ONE = datetime(2024, 5, 6, 7, 0, tzinfo=timezone.utc)


def make_log(
    log_id: str,
    activity: ActivityType = ActivityType.RUN,
    start: datetime | None = DAY_ONE,
    minutes: float | None = 60,
    km: float | None = None,
    note: str | None = None,
) -> ConditioningLog:
    duration = Quantity(value=minutes, unit="min") if minutes is not None else None
    laps = None
    if start is not None and minutes is not None:
        laps = [
            ConditioningLap(
                start=start,
                end=start + timedelta(minutes=minutes),
                duration=duration,
            )
        ]
    return ConditioningLog(
        entity_id=log_id,
        activity=activity,
        start=start,
        end=start + timedelta(minutes=minutes) if start and minutes else None,
        duration=duration,
        distance=Quantity(value=km, unit="km") if km is not None else None,
        note=note,
        laps=laps,
        is_overview=False,
    )


@pytest.fixture
def log_factory():
    return make_log


@pytest.fixture(autouse=True)
def fast_rollback(monkeypatch):
    monkeypatch.setattr(settings, "rollback_delay_ms", 0)


@pytest.fixture
def alice() -> UserContext:
    return UserContext(user_id="alice", roles=["user"])


@pytest.fixture
def bob() -> UserContext:
    return UserContext(user_id="bob", roles=["user"])


@pytest.fixture
def admin() -> UserContext:
    return UserContext(user_id="root", roles=["admin"])


@pytest.fixture
def seeded_logs() -> list[ConditioningLog]:
    return [
        make_log("a2", ActivityType.SWIM, start=DAY_ONE + timedelta(days=1), minutes=45),
        make_log("a1", ActivityType.RUN, start=DAY_ONE, minutes=60, km=12),
        make_log("b1", ActivityType.BIKE, start=DAY_ONE, minutes=90, km=40),
    ]


@pytest.fixture
def seeded_users() -> list[User]:
    return [
        User(entity_id="u-alice", user_id="alice", logs=["a1", "a2"]),
        User(entity_id="u-bob", user_id="bob", logs=["b1"]),
    ]


@pytest.fixture
def log_repo(seeded_logs) -> ConditioningLogRepository:
    return ConditioningLogRepository(seeded_logs)


@pytest.fixture
def user_repo(seeded_users) -> UserRepository:
    return UserRepository(seeded_users)


@pytest_asyncio.fixture
async def container(log_repo, user_repo):
    c = ServiceContainer(log_repo, user_repo)
    yield c
    await c.shutdown()
