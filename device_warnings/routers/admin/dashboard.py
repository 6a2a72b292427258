# device_warnings/routers/admin/dashboard.py
"""
Notification processor and queue endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from device_warnings.dependencies import get_db_dependency, get_processor_dependency
from device_warnings.services.processor import NotificationProcessor
from device_warnings.services.statistics import get_queue_status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/processor")
async def get_processor_status(
    processor: NotificationProcessor = Depends(get_processor_dependency())
):
    """Get notification processor status"""
    return processor.status()


@router.post("/processor/run")
async def run_processor(
    processor: NotificationProcessor = Depends(get_processor_dependency())
):
    """Run one dispatch pass now instead of waiting for the next tick."""
    report = await processor.process_now()
    if report is None:
        raise HTTPException(status_code=409, detail="A dispatch pass is already in progress")

    logger.info("Manual dispatch: %d sent, %d failed, %d voided", report.sent, report.failed, report.voided)
    return {"status": "success", "report": report.as_dict()}


@router.get("/notifications/queue")
async def get_notification_queue(
    session: AsyncSession = Depends(get_db_dependency())
):
    """Get notification entries grouped by status and escalation level"""
    return await get_queue_status(session)
