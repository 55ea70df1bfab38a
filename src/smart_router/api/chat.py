"""Chat endpoints.

POST /api/chat - Route a message to the best model and return its answer
GET  /api/chat - Router status (rate limit window, registry size, router model)

Errors raised by the router (rate limit, all routes failed) are mapped to
HTTP responses by the exception handlers registered in smart_router.main.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from smart_router.api.deps import get_app_settings, get_router
from smart_router.config import Settings
from smart_router.errors import ValidationError
from smart_router.preferences import DEFAULT_USER_ID
from smart_router.routing import ModelRouter

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequestBody(BaseModel):
    message: str | None = Field(default=None, description="User message to route")
    user_id: str | None = Field(
        default=None,
        alias="userId",
        description="Whose routing preferences apply. Defaults to 'default'.",
    )


def _validated_message(raw: str | None, max_length: int) -> str:
    if raw is None or not raw.strip():
        raise ValidationError("Message is required and must be a non-empty string")
    message = raw.strip()
    if len(message) > max_length:
        raise ValidationError(f"Message is too long (max {max_length} characters)")
    return message


@router.post("", summary="Send a message to the best-suited model")
async def chat(
    body: ChatRequestBody,
    settings: Settings = Depends(get_app_settings),
    model_router: ModelRouter = Depends(get_router),
) -> dict[str, Any]:
    message = _validated_message(body.message, settings.max_message_length)
    user_id = body.user_id or DEFAULT_USER_ID

    log.info("chat.request_started", user_id=user_id, message_length=len(message))
    result = await model_router.route_and_respond(message, user_id)
    log.info(
        "chat.request_completed",
        model=result.model_name,
        processing_time=result.processing_time_ms,
        tokens_used=result.tokens_used,
    )

    response: dict[str, Any] = {
        "content": result.content,
        "model": result.model_name,
        "reasoning": result.reasoning,
        "processingTime": result.processing_time_ms,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if result.tokens_used is not None:
        response["tokensUsed"] = result.tokens_used
    return response


@router.get("", summary="Router status")
async def status(model_router: ModelRouter = Depends(get_router)) -> dict[str, Any]:
    """Read-only; does not consume a rate-limit slot."""
    return {
        "status": "operational",
        **model_router.get_status(),
        "timestamp": datetime.now(UTC).isoformat(),
    }
