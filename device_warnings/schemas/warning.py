"""
Warning-related Pydantic schemas.
"""
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
import enum

from pydantic import BaseModel, Field

from device_warnings.models.warning import WarningSeverity, WarningStatus, NotificationStatus

MeasuredValue = Union[float, int, str, None]


class RuleDefinition(BaseModel):
    """One threshold rule from a device's warning config"""
    field: str
    condition: str  # e.g. "> 25", ">= 70 OR < 30", '== "error"'
    warning_kind: str = Field(alias="warning_type")
    severity: WarningSeverity = WarningSeverity.MODERATE
    message: Optional[str] = None  # template, may use {field} {value} {threshold} {device_name} {warning_kind}

    class Config:
        populate_by_name = True


class WarningConfig(BaseModel):
    """Rule set document as stored by the device configuration store.
    Rules stay raw here so one bad rule can be dropped without losing the rest."""
    enabled: bool = True
    rules: Optional[List[Any]] = None


class RuleResult(BaseModel):
    """Verdict of one rule against one observation"""
    warning_kind: str
    severity: WarningSeverity
    measured_value: MeasuredValue = None
    threshold_value: MeasuredValue = None
    message: Optional[str] = None
    violated: bool


class ChangeType(str, enum.Enum):
    CREATED = "created"
    REFRESHED = "refreshed"
    RESOLVED = "resolved"


class WarningChange(BaseModel):
    """State transition committed by the warning state engine"""
    change_type: ChangeType
    warning_id: int
    device_id: str
    warning_kind: str
    severity: WarningSeverity
    measured_value: MeasuredValue = None
    message: Optional[str] = None
    occurred_at: datetime


class WarningSnapshot(BaseModel):
    """Live view of a warning handed to delivery channels"""
    id: int
    device_id: str
    warning_kind: str
    device_type: Optional[str] = None
    device_name: Optional[str] = None
    severity: WarningSeverity
    status: WarningStatus
    measured_value: MeasuredValue = None
    threshold_value: MeasuredValue = None
    message: Optional[str] = None
    created_at: datetime
    last_observed_at: datetime

    class Config:
        from_attributes = True


class NotificationEntryRead(BaseModel):
    id: int
    warning_id: int
    level: int
    scheduled_for: datetime
    status: NotificationStatus
    claimed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    class Config:
        from_attributes = True


class WarningRead(WarningSnapshot):
    resolved_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None


class WarningDetail(WarningRead):
    notifications: List[NotificationEntryRead] = []


class ObservationCreate(BaseModel):
    """Device-active event: decoded field values plus optional rule set"""
    device_type: Optional[str] = None
    device_name: Optional[str] = None
    data: Dict[str, Any]
    warning_config: Optional[Dict[str, Any]] = None  # WarningConfig shape, parsed rule by rule


class ObservationResult(BaseModel):
    changes: List[WarningChange]
    evaluated_rules: int
    skipped_rules: int


class WarningAcknowledge(BaseModel):
    acknowledged_by: str
    resolution_notes: Optional[str] = None


class WarningResolve(BaseModel):
    resolution_notes: Optional[str] = None


class EscalationConfigUpdate(BaseModel):
    delays_minutes: List[float]
