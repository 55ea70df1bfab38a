"""Per-message model selection, dispatch and the fallback chain.

The router estimates the context a message needs, narrows the registry to
eligible candidates, asks a selection strategy (the router model by
default) to choose one, and falls back to the fastest model whenever a
step fails or the rate limiter denies the selection call.
"""

from __future__ import annotations

from smart_router.routing.candidates import build_candidates, estimate_context_tokens
from smart_router.routing.decision import ChatResult, FallbackReason, RouterDecision, Selection
from smart_router.routing.router import ModelRouter, build_router
from smart_router.routing.strategies import (
    LLMSelectionStrategy,
    RuleBasedSelectionStrategy,
    SelectionStrategy,
    build_strategy,
)

__all__ = [
    "ChatResult",
    "FallbackReason",
    "LLMSelectionStrategy",
    "ModelRouter",
    "RouterDecision",
    "RuleBasedSelectionStrategy",
    "Selection",
    "SelectionStrategy",
    "build_candidates",
    "build_router",
    "build_strategy",
    "estimate_context_tokens",
]
