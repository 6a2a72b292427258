# device_warnings/services/escalation.py
"""
Escalation plan for newly created warnings.

Each warning gets one notification entry per configured level, scheduled
at a fixed offset from the warning's creation time. Entries are only ever
created together with the warning; refreshes and resolutions never touch
the plan.
"""
from datetime import datetime, timedelta
from typing import List, Sequence

from device_warnings.core.config import system_config
from device_warnings.core.exceptions import EscalationConfigurationError
from device_warnings.models import NotificationEntry, NotificationStatus


def validate_delays(delays_minutes: Sequence[float]) -> List[float]:
    """
    Check an escalation delay sequence.

    Raises:
        EscalationConfigurationError: empty, negative start, or not strictly ascending
    """
    delays = [float(d) for d in delays_minutes]
    if not delays:
        raise EscalationConfigurationError("At least one escalation level is required")
    if delays[0] < 0:
        raise EscalationConfigurationError("First escalation delay must not be negative")
    for previous, current in zip(delays, delays[1:]):
        if current <= previous:
            raise EscalationConfigurationError(
                f"Escalation delays must be strictly ascending (got {previous} then {current})"
            )
    return delays


class EscalationScheduler:
    """Builds the notification plan for a warning."""

    def __init__(self, delays_minutes: Sequence[float] = None):
        self._delays = validate_delays(
            delays_minutes if delays_minutes is not None
            else system_config["escalation"]["delays_minutes"]
        )

    @property
    def delays_minutes(self) -> List[float]:
        return list(self._delays)

    @property
    def level_count(self) -> int:
        return len(self._delays)

    def update_delays(self, delays_minutes: Sequence[float]) -> List[float]:
        """Replace the plan used for warnings created from now on."""
        self._delays = validate_delays(delays_minutes)
        return self.delays_minutes

    def schedule(self, warning_id: int, created_at: datetime) -> List[NotificationEntry]:
        """
        Build one scheduled entry per level. The caller adds them to the
        same unit of work that creates the warning.
        """
        return [
            NotificationEntry(
                warning_id=warning_id,
                level=level,
                scheduled_for=created_at + timedelta(minutes=delay),
                status=NotificationStatus.SCHEDULED,
            )
            for level, delay in enumerate(self._delays, start=1)
        ]
