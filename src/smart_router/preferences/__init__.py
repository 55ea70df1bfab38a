"""Per-user routing preferences and their storage backends."""

from __future__ import annotations

from smart_router.preferences.manager import (
    DEFAULT_USER_ID,
    PRIORITY_WEIGHTS,
    PreferencesManager,
    PriorityWeights,
    RoutingPreferences,
    RoutingPriority,
    validate_preferences,
)
from smart_router.preferences.store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    build_store,
)

__all__ = [
    "DEFAULT_USER_ID",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "PRIORITY_WEIGHTS",
    "PreferencesManager",
    "PriorityWeights",
    "RedisKeyValueStore",
    "RoutingPreferences",
    "RoutingPriority",
    "build_store",
    "validate_preferences",
]
