# device_warnings/routers/admin/database.py
"""
Data retention endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from device_warnings.dependencies import get_db_dependency, get_sweeper_dependency
from device_warnings.services.data_retention import RetentionSweeper, get_purge_candidates

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/data-retention/preview")
async def preview_data_purge(
    session: AsyncSession = Depends(get_db_dependency()),
    sweeper: RetentionSweeper = Depends(get_sweeper_dependency())
):
    """Preview what data would be purged based on retention policy."""
    candidates = await get_purge_candidates(
        session, sweeper.warning_retention_days, sweeper.notification_retention_days
    )
    return {
        "preview": True,
        "warning_retention_days": sweeper.warning_retention_days,
        "notification_retention_days": sweeper.notification_retention_days,
        "summary": candidates,
    }


@router.post("/data-retention/purge")
async def execute_data_purge(
    sweeper: RetentionSweeper = Depends(get_sweeper_dependency()),
    confirm: bool = False
):
    """Execute data purge based on retention policy."""
    if not confirm:
        return {
            "error": "Must set confirm=true to execute purge",
            "message": "Use /admin/data-retention/preview to see what would be deleted first"
        }

    results = await sweeper.sweep()
    if results is None:
        raise HTTPException(status_code=500, detail="Retention sweep failed, see server log")

    logger.info(
        "Manual purge: %d resolved warnings, %d notification entries deleted",
        results["warnings_deleted"], results["notifications_deleted"],
    )

    return {
        "status": "success",
        "deleted": {
            "warnings": results["warnings_deleted"],
            "notifications": results["notifications_deleted"]
        },
        "details": results["details"]
    }
