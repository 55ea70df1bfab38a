"""Analytics for routing decisions.

The AnalyticsTracker keeps running aggregates (request count, per-model and
per-category usage, average processing time, total tokens) plus a bounded
log of the most recent decisions, newest first. State lives for the process
and is only cleared by an explicit reset().

All methods are synchronous and guarded by a threading.Lock, so each call is
atomic whether it runs on the event loop or in a worker thread.
"""

from __future__ import annotations

import math
import secrets
import string
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _decision_id(timestamp_ms: int) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"decision_{timestamp_ms}_{suffix}"


@dataclass(frozen=True)
class RoutingDecisionRecord:
    """Immutable record of one completed routing decision.

    Attributes:
        id: Unique decision id
        timestamp: Epoch milliseconds when the decision was recorded
        user_message: First characters of the user message
        selected_model: Id of the model that answered
        model_category: Category of that model
        reasoning: Why the model was chosen
        confidence: Selection confidence (0.0-1.0)
        processing_time: End-to-end time in milliseconds
        tokens_used: Total tokens reported by the backend (0 if unknown)
        estimated_cost: Always 0 - every model in the catalog is free
        priority: Routing priority in effect
    """

    id: str
    timestamp: int
    user_message: str
    selected_model: str
    model_category: str
    reasoning: str
    confidence: float
    processing_time: float
    tokens_used: int
    estimated_cost: float
    priority: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "userMessage": self.user_message,
            "selectedModel": self.selected_model,
            "modelCategory": self.model_category,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "processingTime": self.processing_time,
            "tokensUsed": self.tokens_used,
            "estimatedCost": self.estimated_cost,
            "priority": self.priority,
        }


class AnalyticsTracker:
    """In-memory aggregates and capped decision log."""

    def __init__(
        self,
        max_logged: int = 1000,
        *,
        recent_count: int = 10,
        message_preview_chars: int = 200,
    ) -> None:
        if max_logged < 1:
            raise ValueError("max_logged must be positive")
        self._max_logged = max_logged
        self._recent_count = recent_count
        self._preview_chars = message_preview_chars
        self._lock = threading.Lock()
        self._reset_state()
        log.info("analytics.initialized", max_logged=max_logged)

    def _reset_state(self) -> None:
        self._total_requests = 0
        self._model_usage: dict[str, int] = {}
        self._category_usage: dict[str, int] = {}
        self._average_processing_time = 0.0
        self._total_tokens_used = 0
        # Newest first; maxlen drops the oldest entry on overflow
        self._decisions: deque[RoutingDecisionRecord] = deque(maxlen=self._max_logged)

    def record(
        self,
        *,
        user_message: str,
        selected_model: str,
        model_category: str,
        reasoning: str,
        confidence: float,
        processing_time: float,
        tokens_used: int = 0,
        priority: str,
    ) -> RoutingDecisionRecord:
        """Append one decision and update the running aggregates."""
        timestamp = int(time.time() * 1000)
        entry = RoutingDecisionRecord(
            id=_decision_id(timestamp),
            timestamp=timestamp,
            user_message=user_message[: self._preview_chars],
            selected_model=selected_model,
            model_category=model_category,
            reasoning=reasoning,
            confidence=confidence,
            processing_time=processing_time,
            tokens_used=tokens_used,
            estimated_cost=0.0,
            priority=priority,
        )

        with self._lock:
            self._total_requests += 1
            n = self._total_requests
            self._model_usage[selected_model] = self._model_usage.get(selected_model, 0) + 1
            self._category_usage[model_category] = (
                self._category_usage.get(model_category, 0) + 1
            )
            self._total_tokens_used += tokens_used
            self._average_processing_time = (
                self._average_processing_time * (n - 1) + processing_time
            ) / n
            self._decisions.appendleft(entry)

        log.debug(
            "analytics.decision_recorded",
            model=selected_model,
            category=model_category,
            processing_time=processing_time,
            tokens_used=tokens_used,
        )
        return entry

    @staticmethod
    def _most_used(counter: dict[str, int]) -> tuple[str, int] | None:
        if not counter:
            return None
        # max() keeps the first maximum, i.e. the earliest-seen key on ties
        return max(counter.items(), key=lambda item: item[1])

    def summary(self) -> dict[str, Any]:
        with self._lock:
            top_model = self._most_used(self._model_usage)
            top_category = self._most_used(self._category_usage)
            recent = [d.to_dict() for d in list(self._decisions)[: self._recent_count]]
            return {
                "totalRequests": self._total_requests,
                "mostUsedModel": (
                    {"model": top_model[0], "count": top_model[1]} if top_model else None
                ),
                "mostUsedCategory": (
                    {"category": top_category[0], "count": top_category[1]}
                    if top_category
                    else None
                ),
                "averageProcessingTime": _round_half_up(self._average_processing_time),
                "totalTokensUsed": self._total_tokens_used,
                "recentDecisions": recent,
            }

    def full(self) -> dict[str, Any]:
        with self._lock:
            return {
                "totalRequests": self._total_requests,
                "modelUsage": dict(self._model_usage),
                "categoryUsage": dict(self._category_usage),
                "averageProcessingTime": self._average_processing_time,
                "totalTokensUsed": self._total_tokens_used,
                "routingDecisions": [d.to_dict() for d in self._decisions],
            }

    def usage(self) -> dict[str, Any]:
        with self._lock:
            return {
                "byModel": dict(self._model_usage),
                "byCategory": dict(self._category_usage),
                "totalModelsUsed": len(self._model_usage),
                "totalCategoriesUsed": len(self._category_usage),
            }

    def decisions(self) -> list[RoutingDecisionRecord]:
        """The whole capped log, newest first."""
        with self._lock:
            return list(self._decisions)

    @property
    def average_processing_time(self) -> float:
        return self._average_processing_time

    def reset(self) -> None:
        with self._lock:
            self._reset_state()
        log.info("analytics.reset")
