# device_warnings/routers/admin/config.py
"""
System configuration endpoints for admin portal.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException

from device_warnings.core.config import system_config
from device_warnings.core.exceptions import EscalationConfigurationError
from device_warnings.dependencies import get_state_engine_dependency
from device_warnings.schemas import EscalationConfigUpdate
from device_warnings.services.warning_engine import WarningStateEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config/escalation")
async def get_escalation_config() -> Dict:
    """Get current escalation configuration"""
    return system_config["escalation"]


@router.post("/config/escalation")
async def update_escalation_config(
    config: EscalationConfigUpdate,
    engine: WarningStateEngine = Depends(get_state_engine_dependency())
) -> Dict:
    """
    Update escalation delays.
    Applies to warnings created afterwards; existing plans are unchanged.
    """
    try:
        delays = engine.scheduler.update_delays(config.delays_minutes)
    except EscalationConfigurationError as e:
        raise HTTPException(400, str(e))

    system_config["escalation"]["delays_minutes"] = delays

    logger.info("Escalation delays updated: %s", delays)

    return {
        "status": "success",
        "message": "Escalation configuration updated",
        "config": system_config["escalation"]
    }
