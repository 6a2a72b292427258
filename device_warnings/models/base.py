"""Declarative base shared by all models."""
from device_warnings.core.database import Base

__all__ = ["Base"]
