"""Selection strategies - pick one model out of the candidate set.

- LLMSelectionStrategy delegates the choice to the designated router model
  with a structured (JSON mode) prompt.
- RuleBasedSelectionStrategy scores candidates locally with the priority
  weights. Deterministic and network-free.

Strategies may raise; the router converts every failure into a degraded
decision so a strategy never decides the fate of the request on its own.
"""

from __future__ import annotations

import json
import math
import re
from abc import ABC, abstractmethod
from typing import Any

import structlog

from smart_router.config import SelectionStrategyName, Settings
from smart_router.errors import SelectionError, UnparseableSelectionError
from smart_router.llm import LLMClient, LLMError
from smart_router.preferences import RoutingPreferences
from smart_router.registry import Category, ModelDescriptor, ModelRegistry, Speed
from smart_router.routing.decision import Selection
from smart_router.routing.prompts import build_selection_messages

log = structlog.get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class SelectionStrategy(ABC):
    """Chooses a model for a message out of a non-empty candidate list."""

    name: str = "base"

    @abstractmethod
    async def select_model(
        self,
        candidates: list[ModelDescriptor],
        message: str,
        preferences: RoutingPreferences,
    ) -> Selection:
        """Return the chosen model id with reasoning and confidence.

        Raises:
            UnparseableSelectionError: The answer could not be interpreted
            SelectionError: The selection could not be made at all
        """


def parse_selection(raw: str) -> Selection:
    """Parse a ``{"modelId", "reasoning", "confidence"}`` JSON answer.

    Tolerates surrounding prose or code fences around the object.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(raw)
        if match is None:
            raise UnparseableSelectionError("Router response is not JSON") from None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise UnparseableSelectionError(f"Router response is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise UnparseableSelectionError("Router response is not a JSON object")

    model_id = data.get("modelId")
    if not isinstance(model_id, str) or not model_id:
        raise UnparseableSelectionError("Router response has no modelId")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str):
        reasoning = "" if reasoning is None else str(reasoning)

    return Selection(
        model_id=model_id,
        reasoning=reasoning,
        confidence=_coerce_confidence(data.get("confidence")),
    )


def _coerce_confidence(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value):
        return None
    return min(1.0, max(0.0, float(value)))


class LLMSelectionStrategy(SelectionStrategy):
    """Delegates the choice to the router model."""

    name = "llm"

    def __init__(self, llm_client: LLMClient, router_model: ModelDescriptor, settings: Settings) -> None:
        self._llm = llm_client
        self._router_model = router_model
        self._temperature = settings.router_temperature
        self._max_tokens = settings.router_max_tokens

    async def select_model(
        self,
        candidates: list[ModelDescriptor],
        message: str,
        preferences: RoutingPreferences,
    ) -> Selection:
        messages = build_selection_messages(message, candidates, preferences)
        try:
            response = await self._llm.complete(
                messages=messages,
                model=self._router_model.id,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_mode=True,
            )
        except LLMError as exc:
            raise SelectionError(f"Router model call failed: {exc}") from exc

        raw = self._llm.extract_text(response)
        if not raw:
            raise SelectionError("No response from router model")

        return parse_selection(raw)


# ------------------------------------------------------------------ #
# Rule-based scoring
# ------------------------------------------------------------------ #

_SPEED_SCORES: dict[Speed, float] = {
    Speed.FAST: 1.0,
    Speed.MEDIUM: 0.6,
    Speed.SLOW: 0.3,
}

_CATEGORY_HINTS: dict[Category, tuple[str, ...]] = {
    Category.CODING: (
        "code", "function", "bug", "debug", "python", "javascript", "refactor",
        "compile", "script", "api", "class", "implement",
    ),
    Category.REASONING: (
        "prove", "proof", "math", "solve", "equation", "calculate", "logic", "puzzle",
    ),
    Category.CREATIVE: (
        "story", "poem", "haiku", "creative", "lyrics", "fiction", "imagine",
    ),
    Category.ANALYSIS: (
        "analyze", "analyse", "research", "summarize", "summarise", "compare",
        "document", "report",
    ),
}


def infer_category(message: str) -> Category:
    """Best-guess task category from keyword hints (GENERAL if none match)."""
    text = message.lower()
    best = Category.GENERAL
    best_hits = 0
    for category, hints in _CATEGORY_HINTS.items():
        hits = sum(1 for hint in hints if hint in text)
        if hits > best_hits:
            best, best_hits = category, hits
    return best


class RuleBasedSelectionStrategy(SelectionStrategy):
    """Scores every candidate as latency_w * speed + quality_w * quality.

    Quality blends category affinity with the candidate's context window
    relative to the largest candidate (log-scaled).
    """

    name = "rules"

    async def select_model(
        self,
        candidates: list[ModelDescriptor],
        message: str,
        preferences: RoutingPreferences,
    ) -> Selection:
        if not candidates:
            raise SelectionError("No candidates to score")

        weights = preferences.weights
        task = infer_category(message)
        max_log_ctx = max(math.log2(m.context_window) for m in candidates) or 1.0

        def score(model: ModelDescriptor) -> float:
            affinity = 1.0 if model.category == task else 0.0
            ctx_score = math.log2(model.context_window) / max_log_ctx
            quality = 0.6 * affinity + 0.4 * ctx_score
            return weights.latency * _SPEED_SCORES[model.speed] + weights.quality * quality

        # max() keeps the first of equal scores, i.e. registry order
        best = max(candidates, key=score)
        best_score = score(best)
        return Selection(
            model_id=best.id,
            reasoning=(
                f"Rule-based selection: {task.value} task, priority "
                f"{preferences.priority}, {best.name} scored {best_score:.2f}"
            ),
            confidence=round(min(1.0, best_score), 2),
        )


def build_strategy(
    settings: Settings,
    llm_client: LLMClient,
    registry: ModelRegistry,
) -> SelectionStrategy:
    if settings.selection_strategy == SelectionStrategyName.RULES:
        strategy: SelectionStrategy = RuleBasedSelectionStrategy()
    else:
        strategy = LLMSelectionStrategy(llm_client, registry.router_model, settings)
    log.info("selection_strategy.selected", strategy=strategy.name)
    return strategy
