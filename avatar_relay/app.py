"""FastAPI application entry-point for the avatar relay.

Serves the websocket relay at ``/`` (and ``/ws``), the health/status/metrics
routes and the static client pages.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from avatar_relay import __version__
from avatar_relay.config import Settings, get_settings
from avatar_relay.logging_config import configure_logging
from avatar_relay.routers import health
from avatar_relay.service import RelayService
from avatar_relay.transport import WebSocketTransport

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    settings: Settings = application.state.settings
    configure_logging(settings.log_level, settings.env)
    _logger.info(f"Starting avatar relay on {settings.host}:{settings.port}")
    yield
    _logger.info("Shutting down avatar relay")


async def relay_endpoint(websocket: WebSocket) -> None:
    """Accept one client and feed its frames to the relay service."""
    relay: RelayService = websocket.app.state.relay
    await websocket.accept()

    transport = WebSocketTransport(websocket, outbox_limit=relay.settings.outbox_limit)
    remote = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    connection = relay.connect(transport, remote)
    writer = asyncio.create_task(transport.run())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is not None:
                relay.receive(connection, raw)
    finally:
        relay.disconnect(connection)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if settings is None:
        settings = get_settings()

    application = FastAPI(
        title="Avatar Relay",
        description="Turn-taking relay between web clients, avatar observers and operators.",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.relay = RelayService(settings)

    # -- CORS ------------------------------------------------------------------
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    # -- Routes ----------------------------------------------------------------
    application.include_router(health.router)
    application.add_api_websocket_route("/ws", relay_endpoint)
    application.add_api_websocket_route("/", relay_endpoint)

    # -- Exception handlers ----------------------------------------------------
    @application.exception_handler(Exception)
    async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch unhandled exceptions and return a clean JSON error response."""
        _logger.exception(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

        # Don't expose internal details in production
        if settings.is_production:
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": str(exc),
                "type": type(exc).__name__,
            },
        )

    # -- Static client pages (mounted last so the routes above win) ------------
    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        application.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        _logger.warning(f"Static directory {static_dir} not found, client pages disabled")

    return application


app = create_app()
