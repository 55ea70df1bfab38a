"""Tests for the chat endpoints and error mapping."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi import FastAPI

from conftest import (
    CODING_MODEL_ID,
    CODING_MODEL_NAME,
    DEFAULT_ANSWER,
    FASTEST_MODEL_NAME,
    ScriptedLLMClient,
    ScriptedRateLimiter,
)
from smart_router.config import Settings
from smart_router.llm import LLMError
from smart_router.main import init_app_state
from smart_router.preferences import InMemoryKeyValueStore


def _selection(model_id: str) -> str:
    return json.dumps({"modelId": model_id, "reasoning": "best for code", "confidence": 0.9})


# ------------------------------------------------------------------ #
# POST /api/chat
# ------------------------------------------------------------------ #


async def test_chat_success(client: httpx.AsyncClient, llm: ScriptedLLMClient):
    llm.selections.append(_selection(CODING_MODEL_ID))

    response = await client.post("/api/chat", json={"message": "  Write a parser  "})

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == DEFAULT_ANSWER
    assert body["model"] == CODING_MODEL_NAME
    assert body["reasoning"] == "best for code"
    assert body["tokensUsed"] == 42
    assert isinstance(body["processingTime"], int)
    assert "timestamp" in body
    assert response.headers["x-request-id"].startswith("req_")
    # Message is trimmed before routing
    assert llm.generation_calls[0]["messages"][0]["content"] == "Write a parser"


async def test_chat_reuses_inbound_request_id(client: httpx.AsyncClient, llm: ScriptedLLMClient):
    llm.selections.append(_selection(CODING_MODEL_ID))

    response = await client.post(
        "/api/chat",
        json={"message": "hi", "userId": "alice"},
        headers={"x-request-id": "edge-42"},
    )

    assert response.headers["x-request-id"] == "edge-42"
    context = llm.generation_calls[0]["log_context"]
    assert context["request_id"] == "edge-42"
    assert context["path"] == "/api/chat"
    assert context["user_id"] == "alice"


async def test_chat_replaces_malformed_request_id(client: httpx.AsyncClient):
    response = await client.post(
        "/api/chat",
        json={"message": "hi"},
        headers={"x-request-id": "bad id with spaces"},
    )

    assert response.headers["x-request-id"].startswith("req_")


async def test_chat_omits_tokens_when_unreported(client: httpx.AsyncClient, llm: ScriptedLLMClient):
    from conftest import make_response

    llm.generations.append(make_response("ok", total_tokens=None))

    response = await client.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 200
    assert "tokensUsed" not in response.json()


@pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": "   \n\t "}])
async def test_chat_rejects_empty_message(client: httpx.AsyncClient, payload):
    response = await client.post("/api/chat", json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Message is required and must be a non-empty string"}


async def test_chat_rejects_non_string_message(client: httpx.AsyncClient):
    response = await client.post("/api/chat", json={"message": 42})

    assert response.status_code == 400
    assert "error" in response.json()


async def test_chat_rejects_invalid_json(client: httpx.AsyncClient):
    response = await client.post(
        "/api/chat", content=b"{not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 400


async def test_chat_rejects_long_message(client: httpx.AsyncClient):
    response = await client.post("/api/chat", json={"message": "x" * 10_001})

    assert response.status_code == 400
    assert response.json() == {"error": "Message is too long (max 10000 characters)"}


async def test_chat_length_checked_after_trimming(client: httpx.AsyncClient):
    response = await client.post("/api/chat", json={"message": " " + "x" * 10_000 + " "})

    assert response.status_code == 200


async def test_chat_uses_caller_preferences(client: httpx.AsyncClient, test_app: FastAPI, llm):
    await test_app.state.preferences.set("u1", {"priority": "quality"})

    response = await client.post("/api/chat", json={"message": "hi", "userId": "u1"})

    assert response.status_code == 200
    assert test_app.state.analytics.decisions()[0].priority == "quality"


async def test_chat_rate_limited_returns_429(
    test_app: FastAPI, fake_settings: Settings, llm: ScriptedLLMClient
):
    init_app_state(
        test_app,
        fake_settings,
        llm_client=llm,
        store=InMemoryKeyValueStore(),
        rate_limiter=ScriptedRateLimiter([False, False, False], max_requests=100, window_ms=60_000),
    )
    transport = httpx.ASGITransport(app=test_app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        response = await ac.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.json() == {
        "error": "Rate limit exceeded. Please wait a moment before sending another message.",
        "retryAfter": 60,
    }


async def test_chat_all_routes_failed_returns_503(client: httpx.AsyncClient, llm: ScriptedLLMClient):
    llm.generations.extend([LLMError("down"), LLMError("still down")])

    response = await client.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 503
    assert response.json() == {"error": "Service temporarily unavailable. Please try again later."}


async def test_chat_unexpected_error_returns_500(
    test_app: FastAPI, monkeypatch: pytest.MonkeyPatch
):
    async def explode(message: str, user_id: str = "default"):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(test_app.state.model_router, "route_and_respond", explode)
    transport = httpx.ASGITransport(app=test_app, raise_app_exceptions=False)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        response = await ac.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}
    assert "kaboom" not in response.text


# ------------------------------------------------------------------ #
# GET /api/chat
# ------------------------------------------------------------------ #


async def test_status(client: httpx.AsyncClient):
    response = await client.get("/api/chat")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["availableModels"] == 12
    assert body["routerModel"] == FASTEST_MODEL_NAME
    assert body["rateLimit"] == {
        "currentCount": 0,
        "maxRequests": 100,
        "timeUntilReset": 0,
        "isLimited": False,
    }
    assert "timestamp" in body


async def test_status_does_not_consume_slots(client: httpx.AsyncClient):
    for _ in range(3):
        await client.get("/api/chat")

    response = await client.get("/api/chat")
    assert response.json()["rateLimit"]["currentCount"] == 0


async def test_health_live(client: httpx.AsyncClient):
    response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
