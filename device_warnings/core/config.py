"""Configuration and environment variables."""
from dotenv import load_dotenv
import os

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_list(name: str, default=None, separator: str = ","):
    value = os.getenv(name)
    if value:
        return [item.strip() for item in value.split(separator) if item.strip()]
    return list(default) if default else []


def parse_delays(raw: str):
    """Parse a comma-separated list of minute offsets, e.g. "0,5,15"."""
    return [float(part) for part in raw.split(",") if part.strip()]


# Database
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite+aiosqlite:///./device_warnings.db"
DATABASE_URL = DATABASE_URL.replace("mariadb+mariadbconnector", "mariadb+aiomysql")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Escalation plan (minutes after the warning is created)
DEFAULT_ESCALATION_DELAYS_MINUTES = [0, 5, 15, 30, 60]
ESCALATION_DELAYS_MINUTES = (
    parse_delays(os.getenv("ESCALATION_DELAYS_MINUTES"))
    if os.getenv("ESCALATION_DELAYS_MINUTES")
    else list(DEFAULT_ESCALATION_DELAYS_MINUTES)
)

# Dispatcher
DISPATCH_INTERVAL_SECONDS = float(os.getenv("DISPATCH_INTERVAL_SECONDS", "60"))
DELIVERY_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_TIMEOUT_SECONDS", "30"))
CLAIM_TIMEOUT_SECONDS = float(os.getenv("CLAIM_TIMEOUT_SECONDS", "300"))

# Retention
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))
RESOLVED_WARNING_RETENTION_DAYS = int(os.getenv("RESOLVED_WARNING_RETENTION_DAYS", "30"))
NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "7"))

# Rule sets owned by the device configuration store
WARNING_RULES_PATH = os.getenv("WARNING_RULES_PATH")

# Delivery
DELIVERY_CHANNEL = os.getenv("DELIVERY_CHANNEL", "log").lower()  # 'log', 'email' or 'webhook'
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = _get_bool("SMTP_USE_TLS", True)
MAIL_FROM = os.getenv("MAIL_FROM") or SMTP_USER
MAIL_RECIPIENTS = _get_list("MAIL_RECIPIENTS")
WEBHOOK_URL = os.getenv("WEBHOOK_URL")

# Background jobs
START_PROCESSOR = _get_bool("START_PROCESSOR", True)

# Settings adjustable at runtime through the admin endpoints.
# In-memory only; restart falls back to the environment values above.
system_config = {
    "escalation": {
        "delays_minutes": list(ESCALATION_DELAYS_MINUTES),
    }
}
