"""
Common dependency functions for FastAPI routes.
"""


def get_db_dependency():
    """Import and return get_db dependency from main"""
    from device_warnings.main import get_db
    return get_db


def get_state_engine_dependency():
    """Import and return the warning state engine dependency from main"""
    from device_warnings.main import get_state_engine
    return get_state_engine


def get_rule_resolver_dependency():
    """Import and return the rule set resolver dependency from main"""
    from device_warnings.main import get_rule_resolver
    return get_rule_resolver


def get_processor_dependency():
    """Import and return the notification processor dependency from main"""
    from device_warnings.main import get_processor
    return get_processor


def get_sweeper_dependency():
    """Import and return the retention sweeper dependency from main"""
    from device_warnings.main import get_sweeper
    return get_sweeper
