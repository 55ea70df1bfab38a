"""Routing preference endpoints.

GET    /api/preferences?userId=  - Current preferences (defaults if unset)
POST   /api/preferences          - Merge a partial update
DELETE /api/preferences?userId=  - Reset to defaults
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from smart_router.api.deps import get_preferences
from smart_router.errors import ValidationError
from smart_router.preferences import DEFAULT_USER_ID, PreferencesManager

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/preferences", tags=["preferences"])


class PreferencesUpdateBody(BaseModel):
    user_id: str | None = Field(default=None, alias="userId")
    preferences: dict[str, Any] | None = None


def _now() -> str:
    return datetime.now(UTC).isoformat()


@router.get("")
async def get_preferences_for_user(
    user_id: str | None = Query(default=None, alias="userId"),
    manager: PreferencesManager = Depends(get_preferences),
) -> dict[str, Any]:
    user_id = user_id or DEFAULT_USER_ID
    preferences = await manager.get(user_id)
    return {"userId": user_id, "preferences": preferences.to_dict(), "timestamp": _now()}


@router.post("")
async def update_preferences(
    body: PreferencesUpdateBody,
    manager: PreferencesManager = Depends(get_preferences),
) -> dict[str, Any]:
    if body.preferences is None:
        raise ValidationError("Preferences object is required")

    user_id = body.user_id or DEFAULT_USER_ID
    log.info("preferences.update_requested", user_id=user_id, fields=sorted(body.preferences))
    updated = await manager.set(user_id, body.preferences)
    return {
        "userId": user_id,
        "preferences": updated.to_dict(),
        "message": "Preferences updated successfully",
        "timestamp": _now(),
    }


@router.delete("")
async def reset_preferences(
    user_id: str | None = Query(default=None, alias="userId"),
    manager: PreferencesManager = Depends(get_preferences),
) -> dict[str, Any]:
    user_id = user_id or DEFAULT_USER_ID
    defaults = await manager.reset(user_id)
    return {
        "userId": user_id,
        "preferences": defaults.to_dict(),
        "message": "Preferences reset to defaults",
        "timestamp": _now(),
    }
