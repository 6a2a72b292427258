# device_warnings/routers/warnings.py
"""
Warning endpoints: listing, detail, operator acknowledgement and
resolution, statistics.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from device_warnings.core.exceptions import WarningNotActiveError
from device_warnings.core.timeutil import utcnow
from device_warnings.dependencies import get_db_dependency, get_state_engine_dependency
from device_warnings.models import DeviceWarning, WarningSeverity, WarningStatus
from device_warnings.schemas import (
    WarningRead,
    WarningDetail,
    WarningChange,
    WarningAcknowledge,
    WarningResolve,
)
from device_warnings.services.statistics import get_warning_stats
from device_warnings.services.warning_engine import WarningStateEngine

router = APIRouter(prefix="/api", tags=["warnings"])


@router.get("/warnings", response_model=List[WarningRead])
async def get_warnings(
    device_id: Optional[str] = Query(None, description="Filter by device ID"),
    warning_kind: Optional[str] = Query(None, description="Filter by warning kind"),
    severity: Optional[WarningSeverity] = Query(None, description="Filter by severity"),
    status: Optional[WarningStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of warnings to return"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
    session: AsyncSession = Depends(get_db_dependency())
):
    """List warnings, newest first."""
    conditions = []
    if device_id:
        conditions.append(DeviceWarning.device_id == device_id)
    if warning_kind:
        conditions.append(DeviceWarning.warning_kind == warning_kind)
    if severity:
        conditions.append(DeviceWarning.severity == severity)
    if status:
        conditions.append(DeviceWarning.status == status)

    stmt = select(DeviceWarning)
    if conditions:
        stmt = stmt.where(and_(*conditions))
    stmt = stmt.order_by(DeviceWarning.created_at.desc(), DeviceWarning.id.desc()).limit(limit).offset(offset)

    result = await session.execute(stmt)
    return result.scalars().all()


@router.get("/warnings/active", response_model=List[WarningRead])
async def get_active_warnings(
    device_id: Optional[str] = Query(None, description="Filter by device ID"),
    session: AsyncSession = Depends(get_db_dependency())
):
    """Active warnings, most recently observed first."""
    stmt = select(DeviceWarning).where(DeviceWarning.status == WarningStatus.ACTIVE)
    if device_id:
        stmt = stmt.where(DeviceWarning.device_id == device_id)
    result = await session.execute(stmt.order_by(DeviceWarning.last_observed_at.desc()))
    return result.scalars().all()


@router.get("/warnings/statistics")
async def get_warnings_statistics(
    session: AsyncSession = Depends(get_db_dependency())
):
    """Warning and notification counts for the current day."""
    return await get_warning_stats(session)


async def _get_warning_or_404(session: AsyncSession, warning_id: int, with_notifications: bool = False) -> DeviceWarning:
    stmt = select(DeviceWarning).where(DeviceWarning.id == warning_id)
    if with_notifications:
        stmt = stmt.options(selectinload(DeviceWarning.notifications))
    result = await session.execute(stmt)
    warning = result.scalar_one_or_none()
    if not warning:
        raise HTTPException(status_code=404, detail="Warning not found")
    return warning


@router.get("/warnings/{warning_id}", response_model=WarningDetail)
async def get_warning(
    warning_id: int,
    session: AsyncSession = Depends(get_db_dependency())
):
    """Warning with its escalation plan."""
    return await _get_warning_or_404(session, warning_id, with_notifications=True)


@router.post("/warnings/{warning_id}/acknowledge", response_model=WarningRead)
async def acknowledge_warning(
    warning_id: int,
    body: WarningAcknowledge,
    session: AsyncSession = Depends(get_db_dependency())
):
    """
    Operator acknowledges a warning.
    Status is unchanged; escalation continues until the warning resolves.
    """
    warning = await _get_warning_or_404(session, warning_id)
    warning.acknowledged_by = body.acknowledged_by
    warning.acknowledged_at = utcnow()
    if body.resolution_notes is not None:
        warning.resolution_notes = body.resolution_notes
    await session.commit()
    await session.refresh(warning)
    return warning


@router.post("/warnings/{warning_id}/resolve", response_model=WarningChange)
async def resolve_warning(
    warning_id: int,
    body: WarningResolve,
    engine: WarningStateEngine = Depends(get_state_engine_dependency())
):
    """Operator resolves an active warning."""
    try:
        change = await engine.resolve_warning(warning_id, body.resolution_notes)
    except WarningNotActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if change is None:
        raise HTTPException(status_code=404, detail="Warning not found")
    return change


@router.delete("/warnings/{warning_id}")
async def delete_warning(
    warning_id: int,
    session: AsyncSession = Depends(get_db_dependency())
):
    """Delete a warning and its notification entries."""
    warning = await _get_warning_or_404(session, warning_id, with_notifications=True)
    await session.delete(warning)
    await session.commit()
    return {"success": True, "message": "Warning deleted"}
