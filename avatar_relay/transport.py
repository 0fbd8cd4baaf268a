"""
WebSocket transport adapter.

Puts a Starlette ``WebSocket`` behind the synchronous ``Transport`` protocol
used by the relay core. ``send`` and ``close`` only enqueue; a writer task
started by the endpoint drains the outbox in order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from avatar_relay.errors import TransportBackpressureError

logger = logging.getLogger(__name__)


class _Close:
    __slots__ = ("code", "reason")

    def __init__(self, code: int, reason: str) -> None:
        self.code = code
        self.reason = reason


_Frame = Union[str, _Close]


class WebSocketTransport:
    """Outbox-backed transport for one accepted websocket."""

    def __init__(self, websocket: WebSocket, outbox_limit: int = 256) -> None:
        self._websocket = websocket
        self._outbox: asyncio.Queue[_Frame] = asyncio.Queue()
        self._outbox_limit = outbox_limit
        self._closing = False
        self._failed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closing
            and not self._failed
            and self._websocket.client_state == WebSocketState.CONNECTED
        )

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def send(self, text: str) -> None:
        if not self.is_open:
            raise TransportBackpressureError("transport is closed")
        if self._outbox.qsize() >= self._outbox_limit:
            raise TransportBackpressureError(f"outbox full ({self._outbox_limit} frames pending)")
        self._outbox.put_nowait(text)

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Close after every frame already queued has been written."""
        if self._closing:
            return
        self._closing = True
        self._outbox.put_nowait(_Close(code, reason))

    async def run(self) -> None:
        """Writer loop; returns after the close frame or a failed write."""
        while True:
            frame = await self._outbox.get()
            if isinstance(frame, _Close):
                await self._close_socket(frame.code, frame.reason)
                return
            try:
                await self._websocket.send_text(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                self._failed = True
                logger.debug(f"Websocket write failed, stopping writer: {e}")
                return

    async def _close_socket(self, code: int, reason: Optional[str]) -> None:
        if self._websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self._websocket.close(code=code, reason=reason or None)
        except (RuntimeError, OSError) as e:
            logger.debug(f"Websocket close failed: {e}")
