"""LiteLLM wrapper for model-agnostic chat completion calls.

All model calls (selection and generation) go through LiteLLM to an
OpenAI-compatible backend (OpenRouter by default), which gives us:
1. One call signature for every provider in the catalog
2. Structured-output mode via response_format
3. Uniform error types we can normalise to our own

This module:
- Wraps litellm.acompletion()
- Optionally retries transient failures via tenacity (off by default, the
  router owns the single fallback retry)
- Normalizes errors to our domain exceptions
- Logs token usage
"""

from __future__ import annotations

from typing import Any

import litellm
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smart_router.config import Settings, get_settings

log = structlog.get_logger(__name__)

# Types of errors worth retrying (transient network/rate-limit failures)
_RETRYABLE = (
    litellm.exceptions.RateLimitError,
    litellm.exceptions.ServiceUnavailableError,
    litellm.exceptions.Timeout,
    ConnectionError,
)


class LLMError(Exception):
    """Base exception for all LLM call failures."""


class LLMRateLimitError(LLMError):
    """Upstream LLM rate limit exceeded."""


class LLMUnavailableError(LLMError):
    """LLM service is unavailable."""


class LLMClient:
    """Thin wrapper around LiteLLM with optional retry and structured logging."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def _qualified(self, model: str) -> str:
        prefix = self._settings.llm_model_prefix
        if prefix and not model.startswith(prefix):
            return f"{prefix}{model}"
        return model

    async def complete(
        self,
        *,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> litellm.ModelResponse:
        """Send a chat completion request via LiteLLM.

        Args:
            messages: List of role/content dicts (OpenAI format)
            model: Registry model id (provider prefix is added here)
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            json_mode: Request a JSON object response
            **kwargs: Additional kwargs passed to litellm.acompletion()

        Returns:
            LiteLLM ModelResponse object

        Raises:
            LLMRateLimitError: Upstream rate limit
            LLMUnavailableError: Service unavailable
            LLMError: Any other LLM failure
        """
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        log.debug(
            "llm.completion_request",
            model=model,
            message_count=len(messages),
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_RETRYABLE),
                stop=stop_after_attempt(self._settings.llm_retry_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                reraise=True,
            ):
                with attempt:
                    response: litellm.ModelResponse = await litellm.acompletion(
                        model=self._qualified(model),
                        messages=messages,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        api_base=self._settings.llm_api_base,
                        api_key=self._settings.llm_api_key.get_secret_value(),
                        timeout=self._settings.llm_timeout_seconds,
                        **kwargs,
                    )
        except litellm.exceptions.RateLimitError as exc:
            raise LLMRateLimitError(f"Rate limit from upstream LLM: {exc}") from exc
        except litellm.exceptions.ServiceUnavailableError as exc:
            raise LLMUnavailableError(f"LLM service unavailable: {exc}") from exc
        except Exception as exc:
            raise LLMError(f"LLM completion failed: {exc}") from exc

        usage = getattr(response, "usage", None)
        if usage:
            log.info(
                "llm.completion_done",
                model=model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )

        return response

    def extract_text(self, response: Any) -> str:
        """Extract the assistant text content from a completion response."""
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError, KeyError, TypeError):
            return ""

    def extract_total_tokens(self, response: Any) -> int | None:
        """Total tokens reported by the backend, or None if not reported."""
        usage = getattr(response, "usage", None)
        if usage is None:
            return None
        total = getattr(usage, "total_tokens", None)
        return int(total) if total is not None else None
