# device_warnings/routers/admin/__init__.py
"""
Admin router package - modular admin endpoints.

This package contains:
- dashboard: Processor status, manual dispatch and notification queue
- config: Escalation configuration
- database: Data retention preview and purge
"""
from fastapi import APIRouter

# Create main admin router
router = APIRouter(prefix="/admin", tags=["admin"])


# Import and include sub-routers
from device_warnings.routers.admin.dashboard import router as dashboard_router
from device_warnings.routers.admin.config import router as config_router
from device_warnings.routers.admin.database import router as database_router

router.include_router(dashboard_router)
router.include_router(config_router)
router.include_router(database_router)
