"""
Business logic services.
"""
from .conditions import evaluate, parse_condition
from .rules import RuleSetResolver, evaluate_rules, parse_warning_config
from .escalation import EscalationScheduler, validate_delays
from .change_feed import ChangeFeed
from .warning_engine import WarningStateEngine
from .delivery import LogDelivery, EmailDelivery, WebhookDelivery, build_delivery_from_config
from .dispatcher import NotificationDispatcher, DispatchReport
from .data_retention import get_purge_candidates, purge_old_data, RetentionSweeper
from .processor import NotificationProcessor
from .statistics import get_warning_stats, get_queue_status

__all__ = [
    "evaluate",
    "parse_condition",
    "RuleSetResolver",
    "evaluate_rules",
    "parse_warning_config",
    "EscalationScheduler",
    "validate_delays",
    "ChangeFeed",
    "WarningStateEngine",
    "LogDelivery",
    "EmailDelivery",
    "WebhookDelivery",
    "build_delivery_from_config",
    "NotificationDispatcher",
    "DispatchReport",
    "get_purge_candidates",
    "purge_old_data",
    "RetentionSweeper",
    "NotificationProcessor",
    "get_warning_stats",
    "get_queue_status",
]
