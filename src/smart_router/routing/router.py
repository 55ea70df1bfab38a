"""Model router - picks a backend for each message and fetches its answer.

Per request:
1. Admission check against the global rate limiter. Denied -> degraded
   decision (first fastest model), no selection call.
2. Load the caller's routing preferences.
3. Build the candidate set (context estimate + preference filter).
4. Ask the selection strategy to choose. Any failure or unknown model id
   becomes a degraded decision; nothing from this step propagates.
5. Dispatch: second admission check, then the generation call.
6. Record the decision in analytics and return the answer.
7. If anything in 1-6 raises, dispatch exactly once more to the first
   fastest model. If that fails too, raise AllRoutesFailedError (or
   RateLimitExceededError when the window is what blocked it).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from smart_router.analytics import AnalyticsTracker
from smart_router.config import Settings
from smart_router.core.rate_limit import RateLimiter
from smart_router.errors import (
    AllRoutesFailedError,
    DispatchError,
    EmptyResponseError,
    RateLimitExceededError,
    UnparseableSelectionError,
)
from smart_router.llm import LLMClient, LLMError
from smart_router.preferences import DEFAULT_USER_ID, PreferencesManager, RoutingPreferences
from smart_router.registry import ModelDescriptor, ModelRegistry
from smart_router.routing.candidates import build_candidates
from smart_router.routing.decision import (
    DEFAULT_SELECTION_CONFIDENCE,
    ChatResult,
    FallbackReason,
    RouterDecision,
)
from smart_router.routing.strategies import SelectionStrategy
from smart_router.telemetry import routing_context

log = structlog.get_logger(__name__)

MAX_ALTERNATIVES = 3


@dataclass
class _Generation:
    content: str
    tokens_used: int | None


class ModelRouter:
    """Orchestrates selection, dispatch and the fallback chain.

    Holds no per-request state; all shared state lives in the injected
    rate limiter, preferences manager and analytics tracker.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        registry: ModelRegistry,
        rate_limiter: RateLimiter,
        preferences: PreferencesManager,
        analytics: AnalyticsTracker,
        llm_client: LLMClient,
        strategy: SelectionStrategy,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._preferences = preferences
        self._analytics = analytics
        self._llm = llm_client
        self._strategy = strategy
        self._clock = clock

        if not registry.fastest_models():
            raise ValueError("Registry must contain at least one fast model for fallbacks")

        log.info(
            "model_router.initialized",
            strategy=strategy.name,
            router_model=registry.router_model.id,
            model_count=len(registry),
        )

    # ------------------------------------------------------------------ #
    # Decisions
    # ------------------------------------------------------------------ #

    def _fallback_model(self) -> ModelDescriptor:
        return self._registry.fastest_models()[0]

    def _degraded(self, reason: FallbackReason) -> RouterDecision:
        fastest = self._registry.fastest_models()
        return RouterDecision(
            selected_model=fastest[0],
            reasoning=reason.reasoning,
            confidence=reason.confidence,
            alternatives=fastest[1 : 1 + MAX_ALTERNATIVES],
            fallback_reason=reason,
        )

    async def analyze_and_route(
        self,
        message: str,
        preferences: RoutingPreferences,
    ) -> RouterDecision:
        """Steps 1, 3 and 4: admission, candidates, selection."""
        if not await self._rate_limiter.can_make_request():
            log.warning("model_router.rate_limited", fallback=self._fallback_model().id)
            return self._degraded(FallbackReason.RATE_LIMITED)

        candidates = build_candidates(self._registry, message, preferences)
        if not candidates:
            log.error("model_router.no_candidates", message_length=len(message))
            return self._degraded(FallbackReason.NO_CANDIDATES)

        try:
            selection = await self._strategy.select_model(candidates, message, preferences)
        except UnparseableSelectionError as exc:
            log.warning(
                "model_router.selection_unparseable",
                strategy=self._strategy.name,
                error=str(exc),
            )
            return self._degraded(FallbackReason.UNKNOWN_MODEL)
        except Exception as exc:
            log.error(
                "model_router.selection_failed",
                strategy=self._strategy.name,
                router_model=self._registry.router_model.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return self._degraded(FallbackReason.SELECTION_FAILED)

        selected = self._registry.get(selection.model_id)
        if selected is None:
            log.warning("model_router.unknown_model_selected", model_id=selection.model_id)
            return self._degraded(FallbackReason.UNKNOWN_MODEL)

        confidence = (
            selection.confidence
            if selection.confidence is not None
            else DEFAULT_SELECTION_CONFIDENCE
        )
        alternatives = [m for m in candidates if m.id != selected.id][:MAX_ALTERNATIVES]

        log.info(
            "model_router.decision_made",
            model_id=selected.id,
            model_name=selected.name,
            confidence=confidence,
            candidate_count=len(candidates),
        )
        return RouterDecision(
            selected_model=selected,
            reasoning=selection.reasoning,
            confidence=confidence,
            alternatives=alternatives,
        )

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def _response_token_cap(self, model: ModelDescriptor) -> int:
        # Half the window is reserved for the prompt
        return max(1, min(self._settings.max_response_tokens, model.context_window // 2))

    async def _dispatch(self, message: str, model: ModelDescriptor) -> _Generation:
        """Step 5: admission re-check and the generation call.

        Raises:
            RateLimitExceededError: The window is exhausted
            DispatchError: The backend failed or returned no content
        """
        if not await self._rate_limiter.can_make_request():
            raise RateLimitExceededError(
                retry_after_ms=self._rate_limiter.time_until_reset_ms(),
            )

        with routing_context(model_id=model.id):
            try:
                response = await self._llm.complete(
                    messages=[{"role": "user", "content": message}],
                    model=model.id,
                    temperature=self._settings.response_temperature,
                    max_tokens=self._response_token_cap(model),
                )
            except LLMError as exc:
                log.error("model_router.dispatch_failed", error=str(exc))
                raise DispatchError(str(exc), model_id=model.id) from exc

            content = self._llm.extract_text(response)
            if not content:
                log.error("model_router.empty_response")
                raise EmptyResponseError("No response from selected model", model_id=model.id)

        return _Generation(content=content, tokens_used=self._llm.extract_total_tokens(response))

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def _finish(
        self,
        *,
        message: str,
        model: ModelDescriptor,
        reasoning: str,
        confidence: float,
        priority: str,
        generation: _Generation,
        started: float,
        alternatives: list[ModelDescriptor],
    ) -> ChatResult:
        elapsed = self._elapsed_ms(started)
        self._analytics.record(
            user_message=message,
            selected_model=model.id,
            model_category=model.category.value,
            reasoning=reasoning,
            confidence=confidence,
            processing_time=elapsed,
            tokens_used=generation.tokens_used or 0,
            priority=priority,
        )
        return ChatResult(
            content=generation.content,
            model_id=model.id,
            model_name=model.name,
            reasoning=reasoning,
            confidence=confidence,
            processing_time_ms=elapsed,
            tokens_used=generation.tokens_used,
            alternatives=[m.id for m in alternatives],
        )

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def route_and_respond(self, message: str, user_id: str = DEFAULT_USER_ID) -> ChatResult:
        """Route ``message`` and return the chosen model's answer.

        Raises:
            RateLimitExceededError: Even the fallback dispatch was rate limited
            AllRoutesFailedError: Primary and fallback dispatch both failed
        """
        with routing_context(user_id=user_id):
            return await self._route_and_respond(message, user_id)

    async def _route_and_respond(self, message: str, user_id: str) -> ChatResult:
        started = self._clock()
        priority = self._preferences.defaults().priority

        try:
            preferences = await self._preferences.get(user_id)
            priority = preferences.priority
            decision = await self.analyze_and_route(message, preferences)
            generation = await self._dispatch(message, decision.selected_model)
            return self._finish(
                message=message,
                model=decision.selected_model,
                reasoning=decision.reasoning,
                confidence=decision.confidence,
                priority=priority,
                generation=generation,
                started=started,
                alternatives=decision.alternatives,
            )
        except Exception as exc:
            log.error(
                "model_router.routing_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

        reason = FallbackReason.PRIMARY_ROUTING_FAILED
        fallback = self._fallback_model()
        try:
            generation = await self._dispatch(message, fallback)
        except RateLimitExceededError:
            log.error("model_router.fallback_rate_limited", model_id=fallback.id)
            raise
        except Exception as exc:
            log.error(
                "model_router.fallback_failed",
                model_id=fallback.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise AllRoutesFailedError() from exc

        log.info("model_router.fallback_succeeded", model_id=fallback.id)
        return self._finish(
            message=message,
            model=fallback,
            reasoning=reason.reasoning,
            confidence=reason.confidence,
            priority=priority,
            generation=generation,
            started=started,
            alternatives=[],
        )

    def get_status(self) -> dict[str, Any]:
        """Read-only diagnostics. Does not consume a rate-limit slot."""
        return {
            "rateLimit": self._rate_limiter.status().to_dict(),
            "availableModels": len(self._registry),
            "routerModel": self._registry.router_model.name,
        }


def build_router(
    settings: Settings,
    *,
    registry: ModelRegistry,
    rate_limiter: RateLimiter,
    preferences: PreferencesManager,
    analytics: AnalyticsTracker,
    llm_client: LLMClient | None = None,
    strategy: SelectionStrategy | None = None,
) -> ModelRouter:
    """Wire a ModelRouter, defaulting the LLM client and strategy from settings."""
    from smart_router.routing.strategies import build_strategy

    client = llm_client or LLMClient(settings)
    return ModelRouter(
        settings=settings,
        registry=registry,
        rate_limiter=rate_limiter,
        preferences=preferences,
        analytics=analytics,
        llm_client=client,
        strategy=strategy or build_strategy(settings, client, registry),
    )
