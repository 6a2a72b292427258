# device_warnings/routers/devices.py
"""
Device-active hook: decoded telemetry from the ingestion layer.
"""
import logging

from fastapi import APIRouter, Depends

from device_warnings.dependencies import get_state_engine_dependency, get_rule_resolver_dependency
from device_warnings.schemas import ObservationCreate, ObservationResult
from device_warnings.services.rules import RuleSetResolver, parse_warning_config
from device_warnings.services.warning_engine import WarningStateEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.post("/{device_id}/observations", response_model=ObservationResult)
async def post_observation(
    device_id: str,
    observation: ObservationCreate,
    engine: WarningStateEngine = Depends(get_state_engine_dependency()),
    resolver: RuleSetResolver = Depends(get_rule_resolver_dependency())
):
    """
    Evaluate the device's rules against the reported values.
    A warning config sent with the observation takes precedence over the
    configured rule set for the device.
    """
    if observation.warning_config is not None:
        rules = parse_warning_config(observation.warning_config, f"observation from {device_id}")
    else:
        rules = resolver.resolve(device_id, observation.device_type)

    if not rules:
        logger.debug("No warning rules for device %s", device_id)

    return await engine.observe_data(
        device_id,
        observation.device_type,
        observation.device_name,
        observation.data,
        rules,
    )
