"""
Shared fixtures: a throwaway SQLite database per test, a controllable clock
and a recording delivery channel.
"""
import asyncio
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from device_warnings.core.database import make_engine, make_session_maker, create_db_and_tables
from device_warnings.models import WarningSeverity
from device_warnings.schemas import RuleResult
from device_warnings.services.change_feed import ChangeFeed
from device_warnings.services.dispatcher import NotificationDispatcher
from device_warnings.services.escalation import EscalationScheduler
from device_warnings.services.warning_engine import WarningStateEngine

T0 = datetime(2024, 3, 1, 12, 0, 0)
DELAYS = [0, 5, 15, 30, 60]


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, **kwargs) -> datetime:
        """Set the clock to T0 plus an offset."""
        self.now = T0 + timedelta(**kwargs)
        return self.now


class FakeDelivery:
    """Records deliveries; ``outcome`` may be True, False, an exception, or a callable."""

    def __init__(self, outcome=True, delay: float = 0):
        self.outcome = outcome
        self.delay = delay
        self.calls = []

    async def deliver(self, snapshot, level):
        self.calls.append((snapshot.id, level))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        if callable(self.outcome):
            return self.outcome(snapshot, level)
        return self.outcome

    @property
    def levels(self):
        return [level for _, level in self.calls]


def violation(kind="temperature_high", value=30.0, severity=WarningSeverity.MAJOR, threshold=25.0, message=None):
    return RuleResult(
        warning_kind=kind,
        severity=severity,
        measured_value=value,
        threshold_value=threshold,
        message=message or f"{kind}: {value}",
        violated=True,
    )


def clear(kind="temperature_high", value=20.0, threshold=25.0):
    return RuleResult(
        warning_kind=kind,
        severity=WarningSeverity.MAJOR,
        measured_value=value,
        threshold_value=threshold,
        message=f"{kind}: {value}",
        violated=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'warnings.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return make_session_maker(db_engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return EscalationScheduler(DELAYS)


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def state_engine(session_maker, scheduler, change_feed, clock):
    return WarningStateEngine(session_maker, scheduler, change_feed, clock=clock)


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def dispatcher(session_maker, delivery, clock):
    return NotificationDispatcher(session_maker, delivery, timeout=1, claim_timeout=300, clock=clock)
