# device_warnings/routers/__init__.py
"""
API route handlers organized by domain.
"""
from .admin import router as admin_router
from .devices import router as devices_router
from .warnings import router as warnings_router
from .websocket import router as websocket_router, dashboard_connections, broadcast_change

__all__ = [
    "admin_router",
    "devices_router",
    "warnings_router",
    "websocket_router",
    "dashboard_connections",
    "broadcast_change",
]
