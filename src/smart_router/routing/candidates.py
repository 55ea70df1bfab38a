"""Context estimation and candidate-set construction.

The candidate set is every model whose context window covers the estimated
requirement, narrowed by the caller's preferences unless priority is "auto".
A preference filter that would leave nothing is ignored, so the selection
step always sees at least one option when the registry can provide one.
"""

from __future__ import annotations

import math

import structlog

from smart_router.preferences import RoutingPreferences, RoutingPriority
from smart_router.registry import ModelDescriptor, ModelRegistry

log = structlog.get_logger(__name__)

CHARS_PER_TOKEN = 4
CONTEXT_MULTIPLIER_THRESHOLD = 1000
CONTEXT_MULTIPLIER = 2
MAX_CONTEXT_REQUIREMENT = 100_000
LARGEST_CONTEXT_FALLBACK_SIZE = 5


def estimate_context_tokens(message_length: int) -> int:
    """Context tokens required for a message of ``message_length`` characters.

    Longer prompts get double headroom; the result is capped so a huge
    message still matches the largest-context models.
    """
    estimated = math.ceil(message_length / CHARS_PER_TOKEN)
    if estimated > CONTEXT_MULTIPLIER_THRESHOLD:
        estimated *= CONTEXT_MULTIPLIER
    return min(estimated, MAX_CONTEXT_REQUIREMENT)


def context_candidates(registry: ModelRegistry, required_tokens: int) -> list[ModelDescriptor]:
    candidates = registry.by_min_context(required_tokens)
    if not candidates:
        candidates = registry.largest_context(LARGEST_CONTEXT_FALLBACK_SIZE)
        log.debug(
            "candidates.largest_context_fallback",
            required_tokens=required_tokens,
            count=len(candidates),
        )
    return candidates


def apply_preferences(
    candidates: list[ModelDescriptor],
    preferences: RoutingPreferences,
) -> list[ModelDescriptor]:
    """Narrow ``candidates`` by allow-list and exclude-list.

    "auto" bypasses filtering entirely. An empty result reverts to the
    unfiltered list.
    """
    if preferences.priority == RoutingPriority.AUTO:
        return candidates

    filtered = candidates
    if preferences.allowed_categories:
        allowed = set(preferences.allowed_categories)
        filtered = [m for m in filtered if m.category in allowed]
    if preferences.excluded_models:
        excluded = set(preferences.excluded_models)
        filtered = [m for m in filtered if m.id not in excluded]

    if not filtered:
        log.info(
            "candidates.preference_filter_ignored",
            priority=preferences.priority,
            allowed_categories=preferences.allowed_categories,
            excluded_models=preferences.excluded_models,
        )
        return candidates
    return filtered


def build_candidates(
    registry: ModelRegistry,
    message: str,
    preferences: RoutingPreferences,
) -> list[ModelDescriptor]:
    required = estimate_context_tokens(len(message))
    candidates = apply_preferences(context_candidates(registry, required), preferences)
    log.debug(
        "candidates.built",
        required_tokens=required,
        candidate_ids=[m.id for m in candidates],
    )
    return candidates
