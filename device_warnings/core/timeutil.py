"""Time helpers.

All timestamps are stored as naive UTC datetimes, matching the DateTime
columns of the models.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
