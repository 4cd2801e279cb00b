"""Liveness and identity endpoints.

  GET /health  — plain ``OK``; not gated on readiness, so liveness checks see the
                 process as soon as it accepts connections.
  GET /        — plain-text service banner.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

SERVICE_BANNER = "Molt-Guard Secure Proxy"


@router.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "OK"


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    """Root endpoint — service identity."""
    return SERVICE_BANNER
