"""
Warning and notification entry models for device threshold alerts.
"""
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text, Index, ForeignKey, JSON
from sqlalchemy.orm import relationship
import enum

from device_warnings.core.timeutil import utcnow
from .base import Base


class WarningSeverity(str, enum.Enum):
    """Warning severity levels"""
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"


class WarningStatus(str, enum.Enum):
    """Warning status"""
    ACTIVE = "active"
    RESOLVED = "resolved"


class NotificationStatus(str, enum.Enum):
    """Notification entry status"""
    SCHEDULED = "scheduled"
    SENDING = "sending"  # claimed by a dispatcher tick, delivery in flight
    SENT = "sent"
    FAILED = "failed"


def make_fingerprint(device_id: str, warning_kind: str) -> str:
    """
    Key identifying one logical alert condition.
    The device id is length-prefixed so ids and kinds containing ":" never collide.
    """
    return f"{len(device_id)}:{device_id}:{warning_kind}"


class DeviceWarning(Base):
    """
    Threshold warnings raised for devices.
    At most one active row exists per (device_id, warning_kind); the
    active_fingerprint column carries that key while the warning is active
    and is cleared on resolution, so its unique index enforces the rule.
    """
    __tablename__ = "device_warnings"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(100), nullable=False)
    warning_kind = Column(String(100), nullable=False)  # e.g. "temperature_high"
    active_fingerprint = Column(String(210), nullable=True, unique=True)
    device_type = Column(String(100), nullable=True)
    device_name = Column(String(255), nullable=True)
    severity = Column(Enum(WarningSeverity), nullable=False, default=WarningSeverity.MODERATE)
    status = Column(Enum(WarningStatus), nullable=False, default=WarningStatus.ACTIVE)
    measured_value = Column(JSON, nullable=True)  # number or text, as reported
    threshold_value = Column(JSON, nullable=True)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_observed_at = Column(DateTime, default=utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    acknowledged_by = Column(String(255), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    notifications = relationship(
        "NotificationEntry",
        back_populates="warning",
        cascade="all, delete-orphan",
        order_by="NotificationEntry.level",
    )

    __table_args__ = (
        Index('idx_warning_device_kind', 'device_id', 'warning_kind'),
        Index('idx_warning_status_resolved', 'status', 'resolved_at'),
        Index('idx_warning_created_at', 'created_at'),
    )

    @property
    def fingerprint(self) -> str:
        return make_fingerprint(self.device_id, self.warning_kind)


class NotificationEntry(Base):
    """
    One step of a warning's escalation plan.
    """
    __tablename__ = "warning_notifications"

    id = Column(Integer, primary_key=True, index=True)
    warning_id = Column(Integer, ForeignKey("device_warnings.id", ondelete="CASCADE"), nullable=False)
    level = Column(Integer, nullable=False)  # 1..K, ascending urgency
    scheduled_for = Column(DateTime, nullable=False)
    status = Column(Enum(NotificationStatus), nullable=False, default=NotificationStatus.SCHEDULED)
    claimed_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)  # set when sent or failed
    failure_reason = Column(String(255), nullable=True)

    warning = relationship("DeviceWarning", back_populates="notifications")

    __table_args__ = (
        Index('unique_warning_level', 'warning_id', 'level', unique=True),
        Index('idx_notification_due', 'status', 'scheduled_for'),
        Index('idx_notification_completed', 'status', 'completed_at'),
    )
