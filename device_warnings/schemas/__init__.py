"""
Pydantic schemas for request/response validation.
"""
from .warning import (
    RuleDefinition,
    WarningConfig,
    RuleResult,
    ChangeType,
    WarningChange,
    WarningSnapshot,
    NotificationEntryRead,
    WarningRead,
    WarningDetail,
    ObservationCreate,
    ObservationResult,
    WarningAcknowledge,
    WarningResolve,
    EscalationConfigUpdate,
)

__all__ = [
    "RuleDefinition",
    "WarningConfig",
    "RuleResult",
    "ChangeType",
    "WarningChange",
    "WarningSnapshot",
    "NotificationEntryRead",
    "WarningRead",
    "WarningDetail",
    "ObservationCreate",
    "ObservationResult",
    "WarningAcknowledge",
    "WarningResolve",
    "EscalationConfigUpdate",
]
