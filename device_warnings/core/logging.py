"""Logging setup."""
import logging

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    if any(getattr(h, "_device_warnings", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._device_warnings = True
    root.addHandler(handler)
    root.setLevel(level)
