"""
API Router configuration
"""

from fastapi import APIRouter

from companion.api.v1 import health, ws_session
from companion.core.config import settings

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
if settings.enable_websocket:
    api_router.include_router(ws_session.router, prefix="/ws", tags=["websocket"])
