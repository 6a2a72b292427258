# device_warnings/services/dispatcher.py
"""
Notification dispatcher.

Runs on a fixed tick. Each tick:

1. closes entries a crashed dispatcher left in flight too long (never re-sent),
2. voids scheduled entries whose warning has been resolved,
3. claims each due entry with a conditional update (scheduled -> sending),
   re-reads the owning warning's live status, and delivers it.

A claim only succeeds for one dispatcher, so overlapping ticks or several
dispatcher instances never send the same entry twice. Delivery failures and
timeouts mark the entry failed and the tick moves on.
"""
import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from device_warnings.core.config import DELIVERY_TIMEOUT_SECONDS, CLAIM_TIMEOUT_SECONDS
from device_warnings.core.timeutil import utcnow
from device_warnings.models import DeviceWarning, NotificationEntry, NotificationStatus, WarningStatus
from device_warnings.schemas.warning import WarningSnapshot

logger = logging.getLogger(__name__)

VOIDED_BY_RESOLUTION = "voided by resolution"
CLAIM_EXPIRED = "claim expired"


@dataclass
class DispatchReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    due: int = 0
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    voided: int = 0
    expired: int = 0
    lost_claims: int = 0

    def as_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class NotificationDispatcher:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        delivery,
        timeout: float = DELIVERY_TIMEOUT_SECONDS,
        claim_timeout: float = CLAIM_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_maker = session_maker
        self.delivery = delivery
        self.timeout = timeout
        self.claim_timeout = claim_timeout
        self.clock = clock
        self._tick_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._tick_lock.locked()

    async def tick(self) -> Optional[DispatchReport]:
        """Run one dispatch pass. Returns None if a previous pass is still running."""
        if self._tick_lock.locked():
            logger.warning("Previous dispatch tick still running, skipping this one")
            return None
        async with self._tick_lock:
            return await self._run_tick()

    async def _run_tick(self) -> DispatchReport:
        now = self.clock()
        report = DispatchReport(started_at=now)

        try:
            report.expired = await self._expire_stale_claims(now)
            report.voided += await self._void_resolved(now)
            due_ids = await self._due_entry_ids(now)
        except Exception:
            logger.exception("Dispatch tick could not select due notifications")
            report.finished_at = self.clock()
            return report

        report.due = len(due_ids)
        for entry_id in due_ids:
            try:
                await self._dispatch_entry(entry_id, report)
            except Exception:
                logger.exception("Failed to dispatch notification entry %s", entry_id)

        report.finished_at = self.clock()
        if report.due or report.voided or report.expired:
            logger.info(
                "Dispatch tick: %d due, %d sent, %d failed, %d voided, %d expired",
                report.due, report.sent, report.failed, report.voided, report.expired,
            )
        return report

    async def _expire_stale_claims(self, now: datetime) -> int:
        cutoff = now - timedelta(seconds=self.claim_timeout)
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(NotificationEntry)
                    .where(
                        NotificationEntry.status == NotificationStatus.SENDING,
                        NotificationEntry.claimed_at < cutoff,
                    )
                    .values(status=NotificationStatus.FAILED, failure_reason=CLAIM_EXPIRED, completed_at=now)
                    .execution_options(synchronize_session=False)
                )
        if result.rowcount:
            logger.warning("Closed %d notification(s) left in flight past the claim timeout", result.rowcount)
        return result.rowcount or 0

    async def _void_resolved(self, now: datetime) -> int:
        resolved_ids = select(DeviceWarning.id).where(DeviceWarning.status == WarningStatus.RESOLVED)
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(NotificationEntry)
                    .where(
                        NotificationEntry.status == NotificationStatus.SCHEDULED,
                        NotificationEntry.warning_id.in_(resolved_ids),
                    )
                    .values(status=NotificationStatus.FAILED, failure_reason=VOIDED_BY_RESOLUTION, completed_at=now)
                    .execution_options(synchronize_session=False)
                )
        if result.rowcount:
            logger.info("Voided %d notification(s) of resolved warnings", result.rowcount)
        return result.rowcount or 0

    async def _due_entry_ids(self, now: datetime) -> List[int]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(NotificationEntry.id)
                .where(
                    NotificationEntry.status == NotificationStatus.SCHEDULED,
                    NotificationEntry.scheduled_for <= now,
                )
                .order_by(NotificationEntry.scheduled_for, NotificationEntry.level, NotificationEntry.id)
            )
            return list(result.scalars().all())

    async def _claim(self, entry_id: int) -> bool:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(NotificationEntry)
                    .where(
                        NotificationEntry.id == entry_id,
                        NotificationEntry.status == NotificationStatus.SCHEDULED,
                    )
                    .values(status=NotificationStatus.SENDING, claimed_at=self.clock())
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount == 1

    async def _load_live(self, entry_id: int) -> Tuple[Optional[int], Optional[WarningSnapshot]]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(NotificationEntry.level, DeviceWarning)
                .join(DeviceWarning, NotificationEntry.warning_id == DeviceWarning.id)
                .where(NotificationEntry.id == entry_id)
            )
            row = result.first()
            if row is None:
                return None, None
            level, warning = row
            return level, WarningSnapshot.model_validate(warning)

    async def _finish(self, entry_id: int, status: NotificationStatus, reason: Optional[str] = None) -> None:
        now = self.clock()
        values = {"status": status, "completed_at": now, "failure_reason": reason}
        if status == NotificationStatus.SENT:
            values["sent_at"] = now
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(NotificationEntry)
                    .where(
                        NotificationEntry.id == entry_id,
                        NotificationEntry.status == NotificationStatus.SENDING,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

    async def _dispatch_entry(self, entry_id: int, report: DispatchReport) -> None:
        if not await self._claim(entry_id):
            report.lost_claims += 1
            return
        report.claimed += 1

        # Live status, read after the claim and right before sending
        level, snapshot = await self._load_live(entry_id)
        if snapshot is None:
            return

        if snapshot.status != WarningStatus.ACTIVE:
            await self._finish(entry_id, NotificationStatus.FAILED, VOIDED_BY_RESOLUTION)
            report.voided += 1
            logger.info("Voided level %d notification for resolved warning %s", level, snapshot.id)
            return

        reason = None
        try:
            delivered = await asyncio.wait_for(self.delivery.deliver(snapshot, level), timeout=self.timeout)
            if not delivered:
                reason = "delivery rejected"
        except asyncio.TimeoutError:
            delivered = False
            reason = f"delivery timed out after {self.timeout:g}s"
        except Exception as e:
            delivered = False
            reason = (str(e) or e.__class__.__name__)[:255]

        if delivered:
            await self._finish(entry_id, NotificationStatus.SENT)
            report.sent += 1
            logger.info("Sent level %d notification for warning %s", level, snapshot.id)
        else:
            await self._finish(entry_id, NotificationStatus.FAILED, reason)
            report.failed += 1
            logger.warning("Level %d notification for warning %s failed: %s", level, snapshot.id, reason)
