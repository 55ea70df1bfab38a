"""Main API router - aggregates all sub-routers.

Application routes live under /api; health checks are public and unprefixed.
"""

from __future__ import annotations

from fastapi import APIRouter

from smart_router.api import analytics, chat, health, preferences

public_router = APIRouter()
public_router.include_router(health.router)

api_router = APIRouter(prefix="/api")
api_router.include_router(chat.router)
api_router.include_router(preferences.router)
api_router.include_router(analytics.router)
