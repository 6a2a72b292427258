# device_warnings/services/statistics.py
"""
Warning and notification queue statistics for dashboards.
"""
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from device_warnings.core.timeutil import utcnow
from device_warnings.models import (
    DeviceWarning,
    NotificationEntry,
    NotificationStatus,
    WarningSeverity,
    WarningStatus,
)


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def get_warning_stats(session: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Counts of warnings created and notifications scheduled since the start
    of the current UTC day.
    """
    since = _start_of_day(now or utcnow())

    warnings_row = (await session.execute(
        select(
            func.count(DeviceWarning.id),
            _count_where(DeviceWarning.status == WarningStatus.ACTIVE),
            _count_where(DeviceWarning.status == WarningStatus.RESOLVED),
            *[_count_where(DeviceWarning.severity == severity) for severity in WarningSeverity],
        ).where(DeviceWarning.created_at >= since)
    )).one()

    notifications_row = (await session.execute(
        select(
            func.count(NotificationEntry.id),
            _count_where(NotificationEntry.status == NotificationStatus.SENT),
            _count_where(NotificationEntry.status == NotificationStatus.FAILED),
            _count_where(NotificationEntry.status == NotificationStatus.SCHEDULED),
            func.avg(NotificationEntry.level),
        ).where(NotificationEntry.scheduled_for >= since)
    )).one()

    total, active, resolved, *per_severity = warnings_row
    n_total, n_sent, n_failed, n_scheduled, avg_level = notifications_row

    return {
        "since": since.isoformat(),
        "warnings": {
            "total": int(total or 0),
            "active": int(active),
            "resolved": int(resolved),
            "by_severity": {
                severity.value: int(count) for severity, count in zip(WarningSeverity, per_severity)
            },
        },
        "notifications": {
            "total": int(n_total or 0),
            "sent": int(n_sent),
            "failed": int(n_failed),
            "scheduled": int(n_scheduled),
            "avg_escalation_level": float(avg_level) if avg_level is not None else None,
        },
    }


async def get_queue_status(session: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Notification entries grouped by status and level, plus the overdue count."""
    now = now or utcnow()

    rows = (await session.execute(
        select(
            NotificationEntry.status,
            NotificationEntry.level,
            func.count(NotificationEntry.id),
            func.min(NotificationEntry.scheduled_for),
            func.max(NotificationEntry.scheduled_for),
        )
        .group_by(NotificationEntry.status, NotificationEntry.level)
        .order_by(NotificationEntry.status, NotificationEntry.level)
    )).all()

    overdue = (await session.execute(
        select(func.count(NotificationEntry.id)).where(
            NotificationEntry.status == NotificationStatus.SCHEDULED,
            NotificationEntry.scheduled_for < now,
        )
    )).scalar() or 0

    return {
        "queue": [
            {
                "status": status.value if hasattr(status, "value") else status,
                "level": level,
                "count": count,
                "earliest_scheduled_for": earliest.isoformat() if earliest else None,
                "latest_scheduled_for": latest.isoformat() if latest else None,
            }
            for status, level, count, earliest, latest in rows
        ],
        "overdue": overdue,
    }
