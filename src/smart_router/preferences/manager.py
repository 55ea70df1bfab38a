"""Per-user routing preferences with validation and defaults.

A record is never partial: writes merge the supplied fields onto the
current (or default) record, validate the merged result, and only then
persist it. Reads of unknown users return a fresh copy of the default record.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from smart_router.errors import ValidationError
from smart_router.preferences.store import KeyValueStore

log = structlog.get_logger(__name__)

DEFAULT_USER_ID = "default"


class RoutingPriority(StrEnum):
    AUTO = "auto"
    COST = "cost"  # legacy; every model is free, rejected by validation
    LATENCY = "latency"
    QUALITY = "quality"
    BALANCED = "balanced"


@dataclass(frozen=True)
class PriorityWeights:
    latency: float
    quality: float


# Cost is not a factor since all models are free
PRIORITY_WEIGHTS: dict[str, PriorityWeights] = {
    RoutingPriority.AUTO: PriorityWeights(latency=0.5, quality=0.5),
    RoutingPriority.LATENCY: PriorityWeights(latency=0.8, quality=0.2),
    RoutingPriority.QUALITY: PriorityWeights(latency=0.2, quality=0.8),
    RoutingPriority.BALANCED: PriorityWeights(latency=0.5, quality=0.5),
}

# Accepted spellings of partial-update keys -> attribute name
_FIELD_ALIASES: dict[str, str] = {
    "priority": "priority",
    "allowedCategories": "allowed_categories",
    "allowed_categories": "allowed_categories",
    "excludedModels": "excluded_models",
    "excluded_models": "excluded_models",
}


@dataclass
class RoutingPreferences:
    """Routing preferences for one user.

    Attributes:
        priority: One of the keys of PRIORITY_WEIGHTS
        allowed_categories: If non-empty, only these model categories are eligible
        excluded_models: Model ids that are never eligible
    """

    priority: str = RoutingPriority.AUTO.value
    allowed_categories: list[str] = field(default_factory=list)
    excluded_models: list[str] = field(default_factory=list)

    @property
    def weights(self) -> PriorityWeights:
        return PRIORITY_WEIGHTS[self.priority]

    @property
    def has_custom_filters(self) -> bool:
        return bool(self.allowed_categories) or bool(self.excluded_models)

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "allowedCategories": list(self.allowed_categories),
            "excludedModels": list(self.excluded_models),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RoutingPreferences:
        return cls(
            priority=str(data.get("priority", RoutingPriority.AUTO.value)),
            allowed_categories=list(data.get("allowedCategories") or []),
            excluded_models=list(data.get("excludedModels") or []),
        )


def validate_preferences(preferences: RoutingPreferences) -> None:
    """Raise ValidationError unless the record is fully valid."""
    if preferences.priority not in PRIORITY_WEIGHTS:
        allowed = ", ".join(str(p) for p in PRIORITY_WEIGHTS)
        raise ValidationError(
            f"Invalid priority: {preferences.priority}. Must be one of: {allowed}"
        )
    for name in ("allowed_categories", "excluded_models"):
        values = getattr(preferences, name)
        if not all(isinstance(v, str) for v in values):
            raise ValidationError(f"{name} must be a list of strings")


def _merge(current: RoutingPreferences, partial: Mapping[str, Any]) -> RoutingPreferences:
    merged = RoutingPreferences(
        priority=current.priority,
        allowed_categories=list(current.allowed_categories),
        excluded_models=list(current.excluded_models),
    )
    for key, value in partial.items():
        attr = _FIELD_ALIASES.get(key)
        if attr is None:
            raise ValidationError(f"Unknown preference field: {key}")
        if attr == "priority":
            merged.priority = value if isinstance(value, str) else repr(value)
            continue
        if value is None:
            value = []
        if not isinstance(value, list):
            raise ValidationError(f"{key} must be a list of strings")
        setattr(merged, attr, list(value))
    return merged


class PreferencesManager:
    """Reads and writes routing preferences through a KeyValueStore.

    Read-modify-write in set() and reset() is serialised by an asyncio.Lock;
    the store itself is the only shared state.
    """

    def __init__(self, store: KeyValueStore, default_priority: str = RoutingPriority.AUTO) -> None:
        self._store = store
        self._default = RoutingPreferences(priority=str(default_priority))
        validate_preferences(self._default)
        self._lock = asyncio.Lock()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def defaults(self) -> RoutingPreferences:
        """A fresh copy of the default record."""
        return RoutingPreferences(priority=self._default.priority)

    async def get(self, user_id: str = DEFAULT_USER_ID) -> RoutingPreferences:
        stored = await self._store.get(user_id)
        if stored is None:
            return self.defaults()
        return RoutingPreferences.from_dict(stored)

    async def set(self, user_id: str, partial: Mapping[str, Any]) -> RoutingPreferences:
        """Merge ``partial`` onto the user's record, validate, persist.

        Raises:
            ValidationError: If the merged record is invalid. Nothing is stored.
        """
        async with self._lock:
            current = await self.get(user_id)
            updated = _merge(current, partial)
            validate_preferences(updated)
            await self._store.set(user_id, updated.to_dict())

        log.info(
            "preferences.updated",
            user_id=user_id,
            priority=updated.priority,
            allowed_categories=len(updated.allowed_categories),
            excluded_models=len(updated.excluded_models),
        )
        return updated

    async def reset(self, user_id: str) -> RoutingPreferences:
        async with self._lock:
            await self._store.delete(user_id)
        log.info("preferences.reset", user_id=user_id)
        return self.defaults()

    async def all(self) -> dict[str, RoutingPreferences]:
        """Every stored record, keyed by user id (admin view)."""
        return {
            user_id: RoutingPreferences.from_dict(data)
            for user_id, data in await self._store.items()
        }

    async def stats(self) -> dict[str, Any]:
        priorities = {p.value: 0 for p in RoutingPriority}
        total_users = 0
        custom_users = 0

        for _, data in await self._store.items():
            prefs = RoutingPreferences.from_dict(data)
            priorities[prefs.priority] = priorities.get(prefs.priority, 0) + 1
            total_users += 1
            if prefs.has_custom_filters:
                custom_users += 1

        return {
            "totalUsers": total_users,
            "usersWithCustomSettings": custom_users,
            "priorityDistribution": priorities,
            "defaultUsers": total_users - custom_users,
        }
