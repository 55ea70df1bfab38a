"""Routing decision types and the closed set of degraded-decision reasons."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from smart_router.registry import ModelDescriptor

DEFAULT_SELECTION_CONFIDENCE = 0.8


class FallbackReason(Enum):
    """Why a decision was produced locally instead of by the selection call.

    Each member carries the fixed reasoning text returned to the caller and
    the confidence recorded for the decision.
    """

    RATE_LIMITED = (
        "Rate limit exceeded, using fastest available model for quick response",
        0.5,
    )
    UNKNOWN_MODEL = (
        "Router selected unknown model, using fastest available fallback",
        0.3,
    )
    SELECTION_FAILED = (
        "Router analysis failed, using fastest available model as fallback",
        0.2,
    )
    NO_CANDIDATES = (
        "No candidate models could handle this request, using fastest available model",
        0.1,
    )
    PRIMARY_ROUTING_FAILED = (
        "Primary routing failed, used fastest available model as fallback",
        0.1,
    )

    def __init__(self, reasoning: str, confidence: float) -> None:
        self.reasoning = reasoning
        self.confidence = confidence


@dataclass(frozen=True)
class Selection:
    """Raw answer of a selection strategy, before registry validation."""

    model_id: str
    reasoning: str
    confidence: float | None = None


@dataclass
class RouterDecision:
    """Final model choice for one request.

    Attributes:
        selected_model: Model that will answer the user
        reasoning: Explanation returned to the caller
        confidence: Selection confidence (0.0-1.0)
        alternatives: Up to three other eligible models, for observability
        fallback_reason: Set when the decision is degraded
    """

    selected_model: ModelDescriptor
    reasoning: str
    confidence: float
    alternatives: list[ModelDescriptor] = field(default_factory=list)
    fallback_reason: FallbackReason | None = None


@dataclass
class ChatResult:
    """Response of a routed chat call plus its routing metadata."""

    content: str
    model_id: str
    model_name: str
    reasoning: str
    confidence: float
    processing_time_ms: int
    tokens_used: int | None = None
    alternatives: list[str] = field(default_factory=list)
