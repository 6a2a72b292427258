"""
Device warning deduplication and escalation notification service.
"""
__version__ = "1.0.0"
