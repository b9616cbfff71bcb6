"""
API package for the VoltWatch backend.

This package aggregates all API routers to be included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter, Depends
from .v1.rules import router as rules_router
from .v1.history import router as history_router
from .v1.devices import router as devices_router
from .v1.health import router as health_router
from ..core.auth import get_current_user

api_router = APIRouter()
protected = [Depends(get_current_user)]
api_router.include_router(rules_router, dependencies=protected)
api_router.include_router(history_router, dependencies=protected)
api_router.include_router(devices_router, dependencies=protected)
api_router.include_router(health_router)
