# device_warnings/services/data_retention.py
"""
Data retention and purge service.

Handles periodic cleanup of resolved warnings and of finished (sent or
failed) notification entries once they are past their retention windows.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from device_warnings.core.config import RESOLVED_WARNING_RETENTION_DAYS, NOTIFICATION_RETENTION_DAYS
from device_warnings.core.timeutil import utcnow
from device_warnings.models import DeviceWarning, NotificationEntry, NotificationStatus, WarningStatus

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (NotificationStatus.SENT, NotificationStatus.FAILED)


def _old_resolved_warnings(cutoff: datetime):
    return select(DeviceWarning.id).where(
        DeviceWarning.status == WarningStatus.RESOLVED,
        DeviceWarning.resolved_at < cutoff,
    )


async def get_purge_candidates(
    session: AsyncSession,
    warning_retention_days: int = RESOLVED_WARNING_RETENTION_DAYS,
    notification_retention_days: int = NOTIFICATION_RETENTION_DAYS,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Count data that can be purged.

    Args:
        session: Database session
        warning_retention_days: Days to keep resolved warnings after resolution
        notification_retention_days: Days to keep sent/failed notification entries

    Returns:
        Dictionary with purge candidate counts and cutoffs
    """
    now = now or utcnow()
    warning_cutoff = now - timedelta(days=warning_retention_days)
    notification_cutoff = now - timedelta(days=notification_retention_days)

    warnings_count = await session.execute(
        select(func.count()).select_from(_old_resolved_warnings(warning_cutoff).subquery())
    )
    notifications_count = await session.execute(
        select(func.count(NotificationEntry.id)).where(
            NotificationEntry.status.in_(FINISHED_STATUSES),
            NotificationEntry.completed_at < notification_cutoff,
        )
    )

    return {
        "resolved_warnings": warnings_count.scalar() or 0,
        "finished_notifications": notifications_count.scalar() or 0,
        "warning_cutoff": warning_cutoff.isoformat(),
        "notification_cutoff": notification_cutoff.isoformat(),
    }


async def purge_old_data(
    session: AsyncSession,
    warning_retention_days: int = RESOLVED_WARNING_RETENTION_DAYS,
    notification_retention_days: int = NOTIFICATION_RETENTION_DAYS,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Purge resolved warnings (with all their notification entries) and
    finished notification entries past retention.

    Args:
        session: Database session
        warning_retention_days: Days to keep resolved warnings after resolution
        notification_retention_days: Days to keep sent/failed notification entries
        dry_run: If True, only report what would be deleted without actually deleting

    Returns:
        Dictionary with purge results
    """
    now = now or utcnow()
    candidates = await get_purge_candidates(
        session, warning_retention_days, notification_retention_days, now=now
    )

    results = {
        "dry_run": dry_run,
        "warning_retention_days": warning_retention_days,
        "notification_retention_days": notification_retention_days,
        "warnings_deleted": 0,
        "notifications_deleted": 0,
        "details": candidates,
    }

    if dry_run:
        results["warnings_deleted"] = candidates["resolved_warnings"]
        results["notifications_deleted"] = candidates["finished_notifications"]
        return results

    warning_cutoff = now - timedelta(days=warning_retention_days)
    notification_cutoff = now - timedelta(days=notification_retention_days)

    # Entries of purged warnings go first; bulk deletes do not cascade through the ORM
    cascade_result = await session.execute(
        delete(NotificationEntry)
        .where(NotificationEntry.warning_id.in_(_old_resolved_warnings(warning_cutoff)))
        .execution_options(synchronize_session=False)
    )
    warnings_result = await session.execute(
        delete(DeviceWarning)
        .where(
            DeviceWarning.status == WarningStatus.RESOLVED,
            DeviceWarning.resolved_at < warning_cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    notifications_result = await session.execute(
        delete(NotificationEntry)
        .where(
            NotificationEntry.status.in_(FINISHED_STATUSES),
            NotificationEntry.completed_at < notification_cutoff,
        )
        .execution_options(synchronize_session=False)
    )

    await session.commit()

    results["warnings_deleted"] = warnings_result.rowcount or 0
    results["notifications_deleted"] = (cascade_result.rowcount or 0) + (notifications_result.rowcount or 0)
    return results


class RetentionSweeper:
    """Periodic housekeeping; failures are logged and never propagate."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        warning_retention_days: int = RESOLVED_WARNING_RETENTION_DAYS,
        notification_retention_days: int = NOTIFICATION_RETENTION_DAYS,
    ):
        self.session_maker = session_maker
        self.warning_retention_days = warning_retention_days
        self.notification_retention_days = notification_retention_days

    async def sweep(self, dry_run: bool = False) -> Optional[Dict[str, Any]]:
        try:
            async with self.session_maker() as session:
                results = await purge_old_data(
                    session,
                    self.warning_retention_days,
                    self.notification_retention_days,
                    dry_run=dry_run,
                )
        except Exception:
            logger.exception("Retention sweep failed")
            return None

        if results["warnings_deleted"] or results["notifications_deleted"]:
            logger.info(
                "Retention sweep%s: %d resolved warning(s), %d notification entr(ies)",
                " (dry run)" if dry_run else "",
                results["warnings_deleted"],
                results["notifications_deleted"],
            )
        return results
