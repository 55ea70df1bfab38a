"""Telemetry package: structured logging with request correlation."""

from __future__ import annotations

from smart_router.telemetry.logging import (
    RequestIdMiddleware,
    configure_logging,
    routing_context,
)

__all__ = [
    "RequestIdMiddleware",
    "configure_logging",
    "routing_context",
]
