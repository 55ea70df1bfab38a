"""FastAPI dependencies.

Shared services are built once in the application lifespan and stored on
``app.state``; these getters hand them to route handlers so tests can swap
any of them by assigning to ``app.state`` directly.
"""

from __future__ import annotations

from fastapi import Request

from smart_router.analytics import AnalyticsTracker
from smart_router.config import Settings
from smart_router.preferences import PreferencesManager
from smart_router.routing import ModelRouter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_router(request: Request) -> ModelRouter:
    return request.app.state.model_router


def get_preferences(request: Request) -> PreferencesManager:
    return request.app.state.preferences


def get_analytics(request: Request) -> AnalyticsTracker:
    return request.app.state.analytics
