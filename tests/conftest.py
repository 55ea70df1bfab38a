"""
Shared test fixtures for pytest.

Provides common fakes and wiring for all test modules:
- fake_settings: Test environment configuration
- clock: Manually advanced millisecond clock for the rate limiter
- llm: Scripted LLM client (no network), answers queued per call kind
- registry: The built-in model catalog
- make_router: Factory for a fully wired ModelRouter over fakes
- test_app / client: FastAPI app with fake services and an httpx client
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from types import SimpleNamespace
from typing import Any

import httpx
import pytest
import structlog
from fastapi import FastAPI

from smart_router.analytics import AnalyticsTracker
from smart_router.config import Environment, Settings, get_settings
from smart_router.core.rate_limit import RateLimiter
from smart_router.llm import LLMClient, LLMError
from smart_router.preferences import InMemoryKeyValueStore, PreferencesManager
from smart_router.registry import ModelRegistry, build_default_registry
from smart_router.routing import ModelRouter, SelectionStrategy, build_router

ROUTER_MODEL_ID = "mistralai/mistral-small-24b-instruct-2501:free"
FASTEST_MODEL_NAME = "Mistral Small 3"
CODING_MODEL_ID = "qwen/qwen3-coder:free"
CODING_MODEL_NAME = "Qwen3 Coder 480B A35B"
DEFAULT_ANSWER = "Here is your answer."


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #

@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Fakes
# ------------------------------------------------------------------ #

class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_response(content: str | None, total_tokens: int | None = 42) -> SimpleNamespace:
    """Build an object shaped like a LiteLLM ModelResponse."""
    usage = None
    if total_tokens is not None:
        usage = SimpleNamespace(
            prompt_tokens=total_tokens // 2,
            completion_tokens=total_tokens - total_tokens // 2,
            total_tokens=total_tokens,
        )
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


class ScriptedLLMClient(LLMClient):
    """LLMClient that replays queued outcomes instead of calling LiteLLM.

    Selection calls (json_mode=True) and generation calls are scripted
    separately. A queued item may be a response object, a plain string
    (wrapped into a response) or an exception (raised). An empty selection
    queue raises LLMError; an empty generation queue answers DEFAULT_ANSWER.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        selections: list[Any] | None = None,
        generations: list[Any] | None = None,
    ) -> None:
        super().__init__(settings)
        self.selections: list[Any] = list(selections or [])
        self.generations: list[Any] = list(generations or [])
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        *,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> Any:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
                "log_context": dict(structlog.contextvars.get_contextvars()),
            }
        )
        queue = self.selections if json_mode else self.generations
        if not queue:
            if json_mode:
                raise LLMError("no scripted selection")
            return make_response(DEFAULT_ANSWER)

        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, str):
            return make_response(outcome)
        return outcome

    @property
    def selection_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["json_mode"]]

    @property
    def generation_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["json_mode"]]


class ScriptedRateLimiter(RateLimiter):
    """RateLimiter whose first admissions follow a script, then behave normally."""

    def __init__(self, script: list[bool], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.script = list(script)
        self.checks = 0

    async def can_make_request(self) -> bool:
        self.checks += 1
        if self.script:
            return self.script.pop(0)
        return await super().can_make_request()


# ------------------------------------------------------------------ #
# Settings & Core Fixtures
# ------------------------------------------------------------------ #

@pytest.fixture
def fake_settings() -> Settings:
    """Test environment settings with safe defaults."""
    return Settings(
        environment=Environment.TEST,
        llm_api_base="http://localhost:4000",
        llm_api_key="sk-test-key",
        router_model_id=ROUTER_MODEL_ID,
        rate_limit_max_requests=100,
        rate_limit_window_ms=60_000,
        redis_url="redis://localhost:6379/1",
        debug=True,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def llm(fake_settings: Settings) -> ScriptedLLMClient:
    return ScriptedLLMClient(fake_settings)


@pytest.fixture
def registry(fake_settings: Settings) -> ModelRegistry:
    return build_default_registry(fake_settings.router_model_id)


@pytest.fixture
def preferences() -> PreferencesManager:
    return PreferencesManager(InMemoryKeyValueStore())


@pytest.fixture
def analytics() -> AnalyticsTracker:
    return AnalyticsTracker()


@pytest.fixture
def make_router(
    fake_settings: Settings,
    registry: ModelRegistry,
    preferences: PreferencesManager,
    analytics: AnalyticsTracker,
    llm: ScriptedLLMClient,
) -> Callable[..., ModelRouter]:
    """Factory for a ModelRouter over the shared fakes.

    Keyword overrides: rate_limiter, strategy.
    """

    def _make(
        *,
        rate_limiter: RateLimiter | None = None,
        strategy: SelectionStrategy | None = None,
    ) -> ModelRouter:
        return build_router(
            fake_settings,
            registry=registry,
            rate_limiter=rate_limiter or RateLimiter(100, 60_000),
            preferences=preferences,
            analytics=analytics,
            llm_client=llm,
            strategy=strategy,
        )

    return _make


# ------------------------------------------------------------------ #
# App & HTTP Client Fixtures
# ------------------------------------------------------------------ #

@pytest.fixture
def test_app(
    fake_settings: Settings,
    llm: ScriptedLLMClient,
    monkeypatch: pytest.MonkeyPatch,
) -> FastAPI:
    """FastAPI app wired to fake services.

    httpx's ASGITransport does not run the lifespan, so services are
    attached to app.state directly.
    """
    from smart_router.main import create_app, init_app_state

    monkeypatch.setattr("smart_router.main.get_settings", lambda: fake_settings)
    app = create_app()
    init_app_state(app, fake_settings, llm_client=llm, store=InMemoryKeyValueStore())
    return app


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client for testing the FastAPI application.

    Uses httpx.AsyncClient with ASGITransport to test the app without
    spinning up a real HTTP server.
    """
    transport = httpx.ASGITransport(app=test_app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
    ) as ac:
        yield ac
