"""Liveness, health, status and metrics endpoints.

These read relay state and never mutate it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from avatar_relay import __version__
from avatar_relay.metrics import render_prometheus
from avatar_relay.schemas import HealthResponse, StatusResponse
from avatar_relay.service import RelayService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def get_relay(request: Request) -> RelayService:
    return request.app.state.relay


@router.get("/ping", response_class=PlainTextResponse, summary="Liveness probe")
async def ping(request: Request) -> str:
    client = request.client.host if request.client else "unknown"
    logger.info(f"Ping received from {client}")
    return "pong"


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(relay: RelayService = Depends(get_relay)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(relay.context.stats.uptime_seconds, 2),
    )


@router.get("/status", response_model=StatusResponse, summary="Relay status")
async def status(request: Request, relay: RelayService = Depends(get_relay)) -> StatusResponse:
    """Current turn state plus the connection hint for observer clients."""
    scheme = "wss" if request.url.scheme == "https" else "ws"
    host = request.headers.get("host", request.url.netloc)
    return StatusResponse(ws_endpoint=f"{scheme}://{host}", **relay.status())


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics(relay: RelayService = Depends(get_relay)) -> PlainTextResponse:
    return PlainTextResponse(
        render_prometheus(relay.context),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
