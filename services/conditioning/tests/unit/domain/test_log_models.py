from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from src.domain.models import (
    ActivityType,
    CacheEntry,
    ConditioningLog,
    Quantity,
    User,
    UserContext,
    utcnow,
)


class TestQuantity:
    def test_converts_between_compatible_units(self):
        assert Quantity(value=90, unit="min").to("h").value == pytest.approx(1.5)
        assert Quantity(value=1.5, unit="km").to("m").value == pytest.approx(1500)
        assert Quantity(value=2, unit="s").to("ms").value == pytest.approx(2000)

    def test_incompatible_units_raise(self):
        with pytest.raises(ValueError):
            Quantity(value=1, unit="km").to("min")

    def test_unknown_unit_rejected(self):
        with pytest.raises(ValidationError):
            Quantity(value=1, unit="furlong")


class TestConditioningLog:
    def test_overview_drops_laps(self):
        log = ConditioningLog(
            entity_id="l1", activity=ActivityType.RUN, laps=[], is_overview=False
        )

        overview = log.to_overview()

        assert overview.is_overview is True
        assert overview.laps is None
        assert log.is_overview is False  # original untouched

    def test_deleted_marker(self):
        log = ConditioningLog(entity_id="l1", activity=ActivityType.SWIM)
        assert log.is_deleted is False
        assert log.model_copy(update={"deleted_on": utcnow()}).is_deleted is True

    def test_naive_timestamps_are_read_as_utc(self):
        log = ConditioningLog(
            activity=ActivityType.RUN,
            start=datetime(2024, 5, 8, 7, 0),
            end=datetime(2024, 5, 8, 8, 0, tzinfo=timezone.utc),
        )

        assert log.start == datetime(2024, 5, 8, 7, 0, tzinfo=timezone.utc)
        assert log.end.tzinfo is timezone.utc


class TestUserAndContext:
    def test_numeric_user_ids_become_strings(self):
        assert User(user_id=42).user_id == "42"
        assert UserContext(user_id=7).user_id == "7"

    def test_add_and_remove_log(self):
        user = User(user_id="alice", logs=["a"])
        user.add_log("b")
        user.add_log("b")
        user.remove_log("a")

        assert user.logs == ["b"]

    def test_is_admin(self):
        assert UserContext(user_id="1", roles=["admin"]).is_admin("admin")
        assert not UserContext(user_id="1", roles=["user"]).is_admin("admin")


class TestCacheEntry:
    def test_with_log_replaces_same_id_and_touches(self):
        old = ConditioningLog(entity_id="l1", activity=ActivityType.RUN)
        other = ConditioningLog(entity_id="l2", activity=ActivityType.BIKE)
        entry = CacheEntry(user_id="alice", logs=(old, other))
        detailed = old.to_detailed()

        updated = entry.with_log(detailed, touch=True)

        assert updated.find("l1").is_overview is False
        assert updated.find("l2") is other
        assert updated.last_accessed >= entry.last_accessed
        assert entry.find("l1").is_overview is True

    def test_holds(self):
        entry = CacheEntry(
            user_id="alice",
            logs=(ConditioningLog(entity_id="l1", activity=ActivityType.RUN),),
        )
        assert entry.holds("l1")
        assert not entry.holds("nope")
