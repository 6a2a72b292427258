"""
SQLAlchemy models for the device warnings service.
"""
from .base import Base
from .warning import (
    DeviceWarning,
    NotificationEntry,
    WarningSeverity,
    WarningStatus,
    NotificationStatus,
    make_fingerprint,
)

__all__ = [
    "Base",
    "DeviceWarning",
    "NotificationEntry",
    "WarningSeverity",
    "WarningStatus",
    "NotificationStatus",
    "make_fingerprint",
]
