"""Tests for the warning state engine: deduplication, resolution, escalation plans."""
import asyncio
import logging
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from device_warnings.core.exceptions import WarningNotActiveError
from device_warnings.models import (
    DeviceWarning,
    NotificationEntry,
    NotificationStatus,
    WarningSeverity,
    WarningStatus,
    make_fingerprint,
)
from device_warnings.schemas import ChangeType, RuleDefinition

from tests.conftest import T0, DELAYS, violation, clear


async def fetch_warnings(session_maker):
    async with session_maker() as session:
        result = await session.execute(select(DeviceWarning).order_by(DeviceWarning.id))
        return result.scalars().all()


async def fetch_entries(session_maker, warning_id=None):
    async with session_maker() as session:
        stmt = select(NotificationEntry).order_by(NotificationEntry.warning_id, NotificationEntry.level)
        if warning_id is not None:
            stmt = stmt.where(NotificationEntry.warning_id == warning_id)
        result = await session.execute(stmt)
        return result.scalars().all()


class TestCreateAndRefresh:
    async def test_violation_creates_warning_with_plan(self, state_engine, session_maker):
        changes = await state_engine.observe("dev-1", "sensor", "Greenhouse", [violation()])

        assert [c.change_type for c in changes] == [ChangeType.CREATED]
        warnings = await fetch_warnings(session_maker)
        assert len(warnings) == 1
        warning = warnings[0]
        assert warning.status == WarningStatus.ACTIVE
        assert warning.active_fingerprint == make_fingerprint("dev-1", "temperature_high")
        assert warning.device_name == "Greenhouse"
        assert warning.created_at == T0

        entries = await fetch_entries(session_maker, warning.id)
        assert [e.level for e in entries] == [1, 2, 3, 4, 5]
        assert [e.scheduled_for for e in entries] == [T0 + timedelta(minutes=d) for d in DELAYS]
        assert all(e.status == NotificationStatus.SCHEDULED for e in entries)

    async def test_repeated_violations_refresh_in_place(self, state_engine, session_maker, clock):
        await state_engine.observe("dev-1", "sensor", None, [violation(value=30.0)])
        for minute, value in ((1, 31.0), (2, 32.0), (3, 33.0)):
            clock.set(minutes=minute)
            changes = await state_engine.observe("dev-1", "sensor", None, [violation(value=value)])
            assert [c.change_type for c in changes] == [ChangeType.REFRESHED]

        warnings = await fetch_warnings(session_maker)
        assert len(warnings) == 1
        assert warnings[0].measured_value == 33.0
        assert warnings[0].last_observed_at == T0 + timedelta(minutes=3)
        assert warnings[0].created_at == T0

        entries = await fetch_entries(session_maker)
        assert len(entries) == len(DELAYS)
        assert entries[0].scheduled_for == T0

    async def test_first_writer_keeps_severity(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation(severity=WarningSeverity.MINOR)])
        await state_engine.observe("dev-1", None, None, [violation(severity=WarningSeverity.CRITICAL, value=40.0)])

        warning = (await fetch_warnings(session_maker))[0]
        assert warning.severity == WarningSeverity.MINOR
        assert warning.measured_value == 40.0

    async def test_kinds_are_independent(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation("temperature_high"), violation("humidity_high", 90.0)])
        changes = await state_engine.observe(
            "dev-1", None, None, [clear("temperature_high"), violation("humidity_high", 91.0)]
        )

        assert {(c.warning_kind, c.change_type) for c in changes} == {
            ("temperature_high", ChangeType.RESOLVED),
            ("humidity_high", ChangeType.REFRESHED),
        }
        by_kind = {w.warning_kind: w for w in await fetch_warnings(session_maker)}
        assert by_kind["temperature_high"].status == WarningStatus.RESOLVED
        assert by_kind["humidity_high"].status == WarningStatus.ACTIVE

    async def test_devices_are_independent(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation()])
        await state_engine.observe("dev-2", None, None, [violation()])

        assert len(await fetch_warnings(session_maker)) == 2

    async def test_colons_in_ids_do_not_collide(self, state_engine, session_maker):
        first = await state_engine.observe("a", None, None, [violation("b:c")])
        second = await state_engine.observe("a:b", None, None, [violation("c")])

        assert [c.change_type for c in first] == [ChangeType.CREATED]
        assert [c.change_type for c in second] == [ChangeType.CREATED]
        warnings = await fetch_warnings(session_maker)
        assert [(w.device_id, w.warning_kind, w.status) for w in warnings] == [
            ("a", "b:c", WarningStatus.ACTIVE),
            ("a:b", "c", WarningStatus.ACTIVE),
        ]
        assert make_fingerprint("a", "b:c") != make_fingerprint("a:b", "c")

    async def test_any_violating_rule_violates_the_kind(self, state_engine, session_maker):
        results = [
            clear("humidity", 50.0),
            violation("humidity", 85.0, severity=WarningSeverity.MAJOR),
            violation("humidity", 90.0, severity=WarningSeverity.CRITICAL),
        ]
        changes = await state_engine.observe("dev-1", None, None, results)

        assert [c.change_type for c in changes] == [ChangeType.CREATED]
        warning = (await fetch_warnings(session_maker))[0]
        assert warning.severity == WarningSeverity.MAJOR
        assert warning.measured_value == 85.0


class TestResolution:
    async def test_clear_resolves_active_warning(self, state_engine, session_maker, clock):
        await state_engine.observe("dev-1", None, None, [violation()])
        clock.set(minutes=7)
        changes = await state_engine.observe("dev-1", None, None, [clear()])

        assert [c.change_type for c in changes] == [ChangeType.RESOLVED]
        warning = (await fetch_warnings(session_maker))[0]
        assert warning.status == WarningStatus.RESOLVED
        assert warning.resolved_at == T0 + timedelta(minutes=7)
        assert warning.active_fingerprint is None

    async def test_clear_without_active_warning_is_noop(self, state_engine, session_maker):
        assert await state_engine.observe("dev-1", None, None, [clear()]) == []
        assert await fetch_warnings(session_maker) == []

    async def test_resolution_leaves_plan_untouched(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation()])
        await state_engine.observe("dev-1", None, None, [clear()])

        entries = await fetch_entries(session_maker)
        assert all(e.status == NotificationStatus.SCHEDULED for e in entries)

    async def test_violation_after_resolution_creates_new_warning(self, state_engine, session_maker, clock):
        await state_engine.observe("dev-1", None, None, [violation()])
        await state_engine.observe("dev-1", None, None, [clear()])
        clock.set(minutes=20)
        changes = await state_engine.observe("dev-1", None, None, [violation()])

        assert [c.change_type for c in changes] == [ChangeType.CREATED]
        warnings = await fetch_warnings(session_maker)
        assert [w.status for w in warnings] == [WarningStatus.RESOLVED, WarningStatus.ACTIVE]
        new_entries = await fetch_entries(session_maker, warnings[1].id)
        assert new_entries[0].scheduled_for == T0 + timedelta(minutes=20)
        assert len(await fetch_entries(session_maker)) == 2 * len(DELAYS)

    async def test_operator_resolution(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation()])
        warning_id = (await fetch_warnings(session_maker))[0].id

        change = await state_engine.resolve_warning(warning_id, "fan replaced")

        assert change.change_type == ChangeType.RESOLVED
        warning = (await fetch_warnings(session_maker))[0]
        assert warning.status == WarningStatus.RESOLVED
        assert warning.resolution_notes == "fan replaced"

        with pytest.raises(WarningNotActiveError):
            await state_engine.resolve_warning(warning_id)

    async def test_operator_resolution_of_unknown_warning(self, state_engine):
        assert await state_engine.resolve_warning(999) is None


class TestConcurrency:
    async def test_concurrent_violations_create_one_warning(self, state_engine, session_maker):
        results = await asyncio.gather(*[
            state_engine.observe("dev-1", None, None, [violation(value=30.0 + i)])
            for i in range(10)
        ])

        change_types = [changes[0].change_type for changes in results]
        assert change_types.count(ChangeType.CREATED) == 1
        assert change_types.count(ChangeType.REFRESHED) == 9
        assert len(await fetch_warnings(session_maker)) == 1
        assert len(await fetch_entries(session_maker)) == len(DELAYS)

    async def test_lost_creation_race_becomes_refresh(self, state_engine, session_maker, monkeypatch, caplog):
        await state_engine.observe("dev-1", None, None, [violation(value=30.0)])

        # Simulate another process whose lookup missed the row that now exists
        original = state_engine._find_active
        calls = {"n": 0}

        async def stale_find_active(session, device_id, warning_kind):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await original(session, device_id, warning_kind)

        monkeypatch.setattr(state_engine, "_find_active", stale_find_active)

        with caplog.at_level(logging.WARNING):
            changes = await state_engine.observe("dev-1", None, None, [violation(value=35.0)])

        assert [c.change_type for c in changes] == [ChangeType.REFRESHED]
        assert "retrying as refresh" in caplog.text
        warnings = await fetch_warnings(session_maker)
        assert len(warnings) == 1
        assert warnings[0].measured_value == 35.0
        assert len(await fetch_entries(session_maker)) == len(DELAYS)

    async def test_database_rejects_second_active_row(self, state_engine, session_maker):
        await state_engine.observe("dev-1", None, None, [violation()])

        async with session_maker() as session:
            session.add(DeviceWarning(
                device_id="dev-1",
                warning_kind="temperature_high",
                active_fingerprint=make_fingerprint("dev-1", "temperature_high"),
                severity=WarningSeverity.MAJOR,
                status=WarningStatus.ACTIVE,
                created_at=T0,
                last_observed_at=T0,
            ))
            with pytest.raises(IntegrityError):
                await session.commit()


class TestFailureIsolation:
    async def test_failing_kind_does_not_block_others(self, state_engine, session_maker, monkeypatch, caplog):
        original = state_engine._apply

        async def flaky_apply(device_id, device_type, device_name, result):
            if result.warning_kind == "broken":
                raise RuntimeError("storage unavailable")
            return await original(device_id, device_type, device_name, result)

        monkeypatch.setattr(state_engine, "_apply", flaky_apply)

        with caplog.at_level(logging.ERROR):
            changes = await state_engine.observe("dev-1", None, None, [violation("broken"), violation("temperature_high")])

        assert [c.warning_kind for c in changes] == ["temperature_high"]
        assert "broken" in caplog.text
        assert len(await fetch_warnings(session_maker)) == 1


class TestChangeFeed:
    async def test_committed_changes_are_published(self, state_engine, change_feed):
        received = []

        async def subscriber(change):
            received.append(change)

        change_feed.subscribe(subscriber)
        await state_engine.observe("dev-1", None, None, [violation()])
        await state_engine.observe("dev-1", None, None, [clear()])
        await change_feed.drain()

        assert [c.change_type for c in received] == [ChangeType.CREATED, ChangeType.RESOLVED]

    async def test_failing_subscriber_does_not_affect_engine(self, state_engine, change_feed, session_maker, caplog):
        async def broken(change):
            raise RuntimeError("dashboard gone")

        change_feed.subscribe(broken)
        with caplog.at_level(logging.ERROR):
            changes = await state_engine.observe("dev-1", None, None, [violation()])
            await change_feed.drain()

        assert len(changes) == 1
        assert len(await fetch_warnings(session_maker)) == 1
        assert "subscriber failed" in caplog.text


class TestObserveData:
    async def test_rules_against_field_values(self, state_engine, session_maker):
        rules = [
            RuleDefinition(field="temperature", condition="> 25", warning_type="temperature_high",
                           message="{device_name}: {value} > {threshold}"),
            RuleDefinition(field="humidity", condition=">= 70 OR < 30", warning_type="humidity"),
            RuleDefinition(field="ph", condition="supposed > ", warning_type="ph"),
        ]
        result = await state_engine.observe_data(
            "dev-1", "sensor", "Tent", {"temperature": 31, "humidity": 50, "ph": 6.0}, rules
        )

        assert result.evaluated_rules == 2
        assert result.skipped_rules == 1
        assert [c.warning_kind for c in result.changes] == ["temperature_high"]
        warning = (await fetch_warnings(session_maker))[0]
        assert warning.message == "Tent: 31 > 25.0"
        assert warning.threshold_value == 25.0

    async def test_identical_readings_collapse_into_one_warning(self, state_engine, session_maker):
        rules = [RuleDefinition(field="temperature", condition="> 25", warning_type="temperature_high")]
        for _ in range(3):
            await state_engine.observe_data("dev-1", "sensor", "Tent", {"temperature": 28}, rules)

        warnings = await fetch_warnings(session_maker)
        assert len(warnings) == 1
        assert warnings[0].measured_value == 28
        assert warnings[0].status == WarningStatus.ACTIVE
        assert len(await fetch_entries(session_maker)) == len(DELAYS)
