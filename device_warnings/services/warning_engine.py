# device_warnings/services/warning_engine.py
"""
Warning state engine.

For every (device, warning kind) fingerprint this keeps at most one active
warning. A violating observation creates the warning (with its escalation
plan) or refreshes the existing one in place; the first non-violating
observation resolves it. Repeated violations never add rows, which keeps
operators from being flooded while a condition persists.

Serialization per fingerprint is two-layered: an in-process asyncio lock
orders observations handled by this process, and the unique
``active_fingerprint`` column rejects a second active row created by
another process. A create that loses that race is retried as a refresh of
the winner's row.
"""
import asyncio
import logging
import weakref
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from device_warnings.core.exceptions import WarningNotActiveError
from device_warnings.core.timeutil import utcnow
from device_warnings.models import DeviceWarning, WarningStatus, make_fingerprint
from device_warnings.schemas.warning import (
    ChangeType,
    ObservationResult,
    RuleDefinition,
    RuleResult,
    WarningChange,
)
from .change_feed import ChangeFeed
from .escalation import EscalationScheduler
from .rules import evaluate_rules

logger = logging.getLogger(__name__)


def collapse_results(rule_results: List[RuleResult]) -> Dict[str, RuleResult]:
    """
    Reduce rule results to one verdict per warning kind, in first-seen order.

    A kind is violated if any of its rules is violated; the first violating
    rule supplies severity, values and message.
    """
    verdicts: Dict[str, RuleResult] = OrderedDict()
    for result in rule_results:
        current = verdicts.get(result.warning_kind)
        if current is None or (result.violated and not current.violated):
            verdicts[result.warning_kind] = result
    return verdicts


class WarningStateEngine:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        scheduler: EscalationScheduler,
        change_feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_maker = session_maker
        self.scheduler = scheduler
        self.change_feed = change_feed
        self.clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, fingerprint: str) -> asyncio.Lock:
        lock = self._locks.get(fingerprint)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[fingerprint] = lock
        return lock

    async def observe_data(
        self,
        device_id: str,
        device_type: Optional[str],
        device_name: Optional[str],
        data: Dict[str, Any],
        rules: List[RuleDefinition],
    ) -> ObservationResult:
        """Evaluate a device's rules against decoded field values and apply the verdicts."""
        results, skipped = evaluate_rules(rules, data, device_id, device_name)
        changes = await self.observe(device_id, device_type, device_name, results)
        return ObservationResult(changes=changes, evaluated_rules=len(results), skipped_rules=skipped)

    async def observe(
        self,
        device_id: str,
        device_type: Optional[str],
        device_name: Optional[str],
        rule_results: List[RuleResult],
    ) -> List[WarningChange]:
        """
        Apply rule verdicts for one device.

        Each warning kind is processed in its own transaction; a failure in
        one kind is logged and does not stop the others.
        """
        changes = []
        for warning_kind, result in collapse_results(rule_results).items():
            try:
                change = await self._apply(device_id, device_type, device_name, result)
            except Exception:
                logger.exception("Failed to apply %s verdict for device %s", warning_kind, device_id)
                continue
            if change is not None:
                changes.append(change)

        if changes and self.change_feed is not None:
            self.change_feed.publish(changes)
        return changes

    async def _apply(self, device_id, device_type, device_name, result: RuleResult) -> Optional[WarningChange]:
        fingerprint = make_fingerprint(device_id, result.warning_kind)
        lock = self._lock_for(fingerprint)
        async with lock:
            if not result.violated:
                return await self._resolve_active(device_id, result.warning_kind)
            try:
                return await self._create_or_refresh(device_id, device_type, device_name, result)
            except IntegrityError:
                # Another writer created the active row first; refresh theirs
                logger.warning("Concurrent creation for %s, retrying as refresh", fingerprint)
                return await self._create_or_refresh(
                    device_id, device_type, device_name, result, allow_create=False
                )

    async def _find_active(self, session: AsyncSession, device_id: str, warning_kind: str) -> Optional[DeviceWarning]:
        result = await session.execute(
            select(DeviceWarning).where(
                DeviceWarning.device_id == device_id,
                DeviceWarning.warning_kind == warning_kind,
                DeviceWarning.status == WarningStatus.ACTIVE,
            )
        )
        return result.scalars().first()

    async def _create_or_refresh(
        self,
        device_id: str,
        device_type: Optional[str],
        device_name: Optional[str],
        result: RuleResult,
        allow_create: bool = True,
    ) -> Optional[WarningChange]:
        now = self.clock()
        async with self.session_maker() as session:
            async with session.begin():
                warning = await self._find_active(session, device_id, result.warning_kind)

                if warning is not None:
                    # Severity, identity and created_at stay as first written
                    warning.measured_value = result.measured_value
                    warning.threshold_value = result.threshold_value
                    warning.message = result.message
                    warning.last_observed_at = now
                    change = self._change(ChangeType.REFRESHED, warning, now)
                    logger.debug("Refreshed warning %s (%s)", warning.id, warning.fingerprint)
                    return change

                if not allow_create:
                    logger.warning(
                        "No active %s warning for device %s after creation conflict",
                        result.warning_kind, device_id,
                    )
                    return None

                warning = DeviceWarning(
                    device_id=device_id,
                    warning_kind=result.warning_kind,
                    active_fingerprint=make_fingerprint(device_id, result.warning_kind),
                    device_type=device_type,
                    device_name=device_name,
                    severity=result.severity,
                    status=WarningStatus.ACTIVE,
                    measured_value=result.measured_value,
                    threshold_value=result.threshold_value,
                    message=result.message,
                    created_at=now,
                    last_observed_at=now,
                )
                session.add(warning)
                await session.flush()
                session.add_all(self.scheduler.schedule(warning.id, warning.created_at))
                change = self._change(ChangeType.CREATED, warning, now)

        logger.info(
            "Created %s warning %s for device %s (%s)",
            warning.severity.value, warning.id, device_id, warning.warning_kind,
        )
        return change

    async def _resolve_active(
        self, device_id: str, warning_kind: str, resolution_notes: Optional[str] = None
    ) -> Optional[WarningChange]:
        now = self.clock()
        async with self.session_maker() as session:
            async with session.begin():
                warning = await self._find_active(session, device_id, warning_kind)
                if warning is None:
                    return None
                change = await self._close(session, warning, now, resolution_notes)
        if change is not None:
            logger.info("Resolved warning %s for device %s (%s)", change.warning_id, device_id, warning_kind)
        return change

    async def _close(
        self, session: AsyncSession, warning: DeviceWarning, now: datetime, resolution_notes: Optional[str]
    ) -> Optional[WarningChange]:
        values = {
            "status": WarningStatus.RESOLVED,
            "resolved_at": now,
            "active_fingerprint": None,
        }
        if resolution_notes is not None:
            values["resolution_notes"] = resolution_notes

        # Conditional on still being active so a resolution is committed once
        result = await session.execute(
            update(DeviceWarning)
            .where(DeviceWarning.id == warning.id, DeviceWarning.status == WarningStatus.ACTIVE)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return WarningChange(
            change_type=ChangeType.RESOLVED,
            warning_id=warning.id,
            device_id=warning.device_id,
            warning_kind=warning.warning_kind,
            severity=warning.severity,
            measured_value=warning.measured_value,
            message=warning.message,
            occurred_at=now,
        )

    async def resolve_warning(self, warning_id: int, resolution_notes: Optional[str] = None) -> Optional[WarningChange]:
        """
        Operator-initiated resolution.

        Returns None if the warning does not exist.

        Raises:
            WarningNotActiveError: if the warning is already resolved
        """
        async with self.session_maker() as session:
            warning = await session.get(DeviceWarning, warning_id)
            if warning is None:
                return None
            fingerprint = warning.fingerprint

        lock = self._lock_for(fingerprint)
        async with lock:
            now = self.clock()
            async with self.session_maker() as session:
                async with session.begin():
                    warning = await session.get(DeviceWarning, warning_id)
                    if warning is None:
                        return None
                    if warning.status != WarningStatus.ACTIVE:
                        raise WarningNotActiveError(f"Warning {warning_id} is already resolved")
                    change = await self._close(session, warning, now, resolution_notes)

        if change is None:
            raise WarningNotActiveError(f"Warning {warning_id} is already resolved")
        logger.info("Warning %s resolved by operator", warning_id)
        if self.change_feed is not None:
            self.change_feed.publish([change])
        return change

    @staticmethod
    def _change(change_type: ChangeType, warning: DeviceWarning, now: datetime) -> WarningChange:
        return WarningChange(
            change_type=change_type,
            warning_id=warning.id,
            device_id=warning.device_id,
            warning_kind=warning.warning_kind,
            severity=warning.severity,
            measured_value=warning.measured_value,
            message=warning.message,
            occurred_at=now,
        )
