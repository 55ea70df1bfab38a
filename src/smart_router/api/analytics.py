"""Analytics endpoints.

GET    /api/analytics?type=summary|full|usage|preferences
DELETE /api/analytics  - Wipe all counters and the decision log
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query

from smart_router.analytics import AnalyticsTracker
from smart_router.api.deps import get_analytics, get_preferences
from smart_router.errors import ValidationError
from smart_router.preferences import PreferencesManager

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


class AnalyticsView(StrEnum):
    SUMMARY = "summary"
    FULL = "full"
    USAGE = "usage"
    PREFERENCES = "preferences"


@router.get("")
async def get_analytics_view(
    view: str | None = Query(default=None, alias="type"),
    tracker: AnalyticsTracker = Depends(get_analytics),
    preferences: PreferencesManager = Depends(get_preferences),
) -> dict[str, Any]:
    view = view or AnalyticsView.SUMMARY.value
    log.info("analytics.requested", type=view)

    if view == AnalyticsView.SUMMARY:
        data = tracker.summary()
    elif view == AnalyticsView.FULL:
        data = tracker.full()
    elif view == AnalyticsView.USAGE:
        data = tracker.usage()
    elif view == AnalyticsView.PREFERENCES:
        data = await preferences.stats()
    else:
        raise ValidationError("Invalid type parameter. Use: summary, full, usage, or preferences")

    return {"type": view, "data": data, "timestamp": datetime.now(UTC).isoformat()}


@router.delete("")
async def reset_analytics(tracker: AnalyticsTracker = Depends(get_analytics)) -> dict[str, Any]:
    tracker.reset()
    return {
        "message": "Analytics data reset successfully",
        "timestamp": datetime.now(UTC).isoformat(),
    }
