"""Tests for the outbox-backed websocket transport."""

import asyncio

import pytest
from starlette.websockets import WebSocketState

from avatar_relay.errors import TransportBackpressureError
from avatar_relay.transport import WebSocketTransport


class FakeWebSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.written = []
        self.closed_with = None

    async def send_text(self, text):
        self.written.append(text)

    async def close(self, code=1000, reason=None):
        self.closed_with = (code, reason)
        self.client_state = WebSocketState.DISCONNECTED


@pytest.mark.asyncio
async def test_frames_written_in_order_then_closed():
    ws = FakeWebSocket()
    transport = WebSocketTransport(ws, outbox_limit=10)

    transport.send("one")
    transport.send("two")
    transport.close(4010, "bye")
    await asyncio.wait_for(transport.run(), timeout=1)

    assert ws.written == ["one", "two"]
    assert ws.closed_with == (4010, "bye")


@pytest.mark.asyncio
async def test_full_outbox_raises():
    transport = WebSocketTransport(FakeWebSocket(), outbox_limit=2)
    transport.send("a")
    transport.send("b")
    with pytest.raises(TransportBackpressureError):
        transport.send("c")
    assert transport.pending == 2


@pytest.mark.asyncio
async def test_send_after_close_rejected():
    transport = WebSocketTransport(FakeWebSocket())
    transport.close()
    assert not transport.is_open
    with pytest.raises(TransportBackpressureError):
        transport.send("late")


@pytest.mark.asyncio
async def test_failed_write_stops_writer():
    class BrokenWebSocket(FakeWebSocket):
        async def send_text(self, text):
            raise RuntimeError("socket gone")

    transport = WebSocketTransport(BrokenWebSocket())
    transport.send("x")
    await asyncio.wait_for(transport.run(), timeout=1)
    assert not transport.is_open
