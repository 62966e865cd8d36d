"""
Health check endpoint for the JobWatch alert service.

Exposes a /health endpoint returning service status, the throttle
backend in use and the configured channels.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Return ``{"status": "ok", ...}`` when the service is alive."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        return {"status": "starting"}
    return {
        "status": "ok",
        "throttle": dispatcher.throttle.backend,
        "channels": [channel.name for channel in dispatcher.channels],
    }
