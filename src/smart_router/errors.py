"""Domain exceptions for the routing service.

HTTP mapping (see smart_router.main):
- ValidationError          -> 400
- RateLimitExceededError   -> 429 with Retry-After
- AllRoutesFailedError     -> 503
- anything else            -> 500

SelectionError never leaves the router: it is always converted into a
degraded decision. DispatchError is retried once against the fallback model
and only surfaces wrapped in AllRoutesFailedError.
"""

from __future__ import annotations


class RouterError(Exception):
    """Base exception for all routing failures."""


class ValidationError(RouterError):
    """Bad input shape, length or enum value. User-correctable."""


class RateLimitExceededError(RouterError):
    """The global request window is exhausted."""

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after_ms: int = 0) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class SelectionError(RouterError):
    """The delegated selection call failed."""


class UnparseableSelectionError(SelectionError):
    """The selection call answered, but not with a usable decision."""


class DispatchError(RouterError):
    """The chosen backend failed to produce a response."""

    def __init__(self, message: str, *, model_id: str | None = None) -> None:
        super().__init__(message)
        self.model_id = model_id


class EmptyResponseError(DispatchError):
    """The chosen backend returned no content."""


class AllRoutesFailedError(RouterError):
    """Both the primary dispatch and the fallback dispatch failed."""

    def __init__(self, message: str = "All routing attempts failed. Please try again later.") -> None:
        super().__init__(message)
