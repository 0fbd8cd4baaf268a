"""Shared pytest fixtures for the relay test suite.

The core is synchronous, so most tests drive ``RelayService`` directly with
in-memory ``FakeTransport`` recorders instead of real sockets.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from avatar_relay.app import create_app
from avatar_relay.config import Settings
from avatar_relay.context import RelayContext
from avatar_relay.registry import Connection, Role
from avatar_relay.service import RelayService
from avatar_relay.turn_queue import ResourceState

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeTransport:
    """Records every frame the relay writes and every close request."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.close_calls: list[tuple[int, str]] = []
        self.open = True
        self.fail_sends = False

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, text: str) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(text))

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        self.open = False

    def of_type(self, kind: str) -> list[dict]:
        return [msg for msg in self.sent if msg["type"] == kind]

    def last(self, kind: Optional[str] = None) -> dict:
        frames = self.sent if kind is None else self.of_type(kind)
        assert frames, f"no {kind or 'frames'} sent"
        return frames[-1]

    def types(self) -> list[str]:
        return [msg["type"] for msg in self.sent]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Settings and service
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path) -> Settings:
    static = tmp_path / "public"
    static.mkdir()
    (static / "index.html").write_text("<html><body>relay client</body></html>")
    return Settings(
        static_dir=str(static),
        env="development",
        max_messages_per_second=1000,  # relaxed for tests
        cors_origins=["http://localhost:3000"],
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def relay(settings: Settings, clock: FakeClock) -> RelayService:
    return RelayService(settings, RelayContext(clock=clock))


@pytest.fixture()
def connect(relay: RelayService) -> Callable[[], tuple[Connection, FakeTransport]]:
    """Open an unidentified connection."""

    def _connect(remote: str = "127.0.0.1:50000") -> tuple[Connection, FakeTransport]:
        transport = FakeTransport()
        return relay.connect(transport, remote), transport

    return _connect


@pytest.fixture()
def join(relay: RelayService, connect) -> Callable[..., tuple[Connection, FakeTransport]]:
    """Open a connection and identify it under *client*."""

    def _join(client: str = "relay-client", name: Optional[str] = None) -> tuple[Connection, FakeTransport]:
        connection, transport = connect()
        frame: dict = {"type": "identify", "client": client}
        if name is not None:
            frame["displayName"] = name
        relay.receive(connection, json.dumps(frame))
        return connection, transport

    return _join


@pytest.fixture()
def send(relay: RelayService) -> Callable[..., None]:
    """Deliver one JSON frame from *connection*."""

    def _send(connection: Connection, **frame) -> None:
        relay.receive(connection, json.dumps(frame))

    return _send


@pytest.fixture()
def check_invariants(relay: RelayService) -> Callable[[], None]:
    """Assert the holder/queue invariants against the current relay state."""

    def _check() -> None:
        turns = relay.context.turns
        registry = relay.context.registry
        holder = turns.holder
        queued = [entry.identity for entry in turns.entries()]

        assert len(queued) == len(set(queued)), "duplicate queue entries"
        if holder is None:
            assert turns.state is ResourceState.IDLE
        else:
            assert turns.state is ResourceState.BUSY
            assert holder.identity not in queued
            assert holder.connection in registry.members(Role.RELAY_CLIENT)
        for entry in turns.entries():
            assert entry.connection.role is Role.RELAY_CLIENT
            assert entry.connection in registry.members(Role.RELAY_CLIENT)

    return _check


# ---------------------------------------------------------------------------
# httpx AsyncClient wired to the FastAPI app
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def client(settings: Settings) -> AsyncIterator[AsyncClient]:
    app = create_app(settings=settings)
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
