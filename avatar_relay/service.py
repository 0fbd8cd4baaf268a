"""
Relay service - the single entry point the transport layer talks to.

Wires the registry, turn queue, dispatcher, coordinator and operator surface
around one ``RelayContext`` and routes every inbound frame exactly once:

    connect(transport)        -> Connection (unidentified)
    receive(connection, raw)  -> decode, classify by role/kind, dispatch
    disconnect(connection)    -> registry removal, cascading into recovery

All methods are synchronous and never await.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from avatar_relay.config import Settings
from avatar_relay.context import RelayContext
from avatar_relay.coordinator import TurnCoordinator
from avatar_relay.dispatcher import FanoutDispatcher
from avatar_relay.errors import MalformedMessageError
from avatar_relay.labels import clean_display_label
from avatar_relay.operator import OperatorControlSurface
from avatar_relay.protocol import (
    CloseConversation,
    Demote,
    EndTurn,
    GetState,
    Identify,
    LeaveQueue,
    Move,
    Promote,
    RemoveFromQueue,
    StartTurn,
    Transcription,
    TranscriptionEvent,
    decode_message,
)
from avatar_relay.rate_limiter import SlidingWindowLimiter
from avatar_relay.registry import Connection, Role, Transport

logger = logging.getLogger(__name__)

_COMMANDS = (CloseConversation, Demote, Promote, RemoveFromQueue, Move)


def _log_extra(connection: Connection) -> dict[str, Any]:
    return {
        "identity": connection.identity,
        "role": connection.role.value if connection.role else None,
        "remote": connection.remote,
    }


class RelayService:
    """Owns the relay state for one process."""

    def __init__(self, settings: Optional[Settings] = None, context: Optional[RelayContext] = None) -> None:
        self.settings = settings or Settings()
        self.context = context or RelayContext()
        self.dispatcher = FanoutDispatcher(self.context)
        self.coordinator = TurnCoordinator(self.context, self.dispatcher)
        self.operator = OperatorControlSurface(self.context, self.coordinator, self.dispatcher)
        self.limiter = SlidingWindowLimiter(
            max_events=self.settings.max_messages_per_second, window_seconds=1.0
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def connect(self, transport: Transport, remote: str = "unknown") -> Connection:
        connection = self.context.registry.open(transport, remote)
        self.context.stats.connects += 1
        logger.info(f"Client connected from {remote}", extra={"remote": remote})
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Forget *connection*; safe to call more than once."""
        self.limiter.forget(id(connection))
        if connection.closed:
            return
        self.context.stats.disconnects += 1
        logger.info(
            f"Client disconnected: {connection.describe()} after {connection.session_seconds:.1f}s",
            extra=_log_extra(connection),
        )
        self.context.registry.remove(connection)

    # -------------------------------------------------------------------------
    # Inbound frames
    # -------------------------------------------------------------------------

    def receive(self, connection: Connection, raw: str | bytes) -> None:
        """Process one inbound frame to completion."""
        if connection.closed:
            return

        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        if size > self.settings.max_message_bytes:
            self.context.stats.malformed_messages += 1
            logger.warning(
                f"Dropping oversized frame ({size} bytes) from {connection.describe()}",
                extra=_log_extra(connection),
            )
            return

        if not self.limiter.check(id(connection)):
            self.context.stats.rate_limited_messages += 1
            logger.warning(f"Rate limit exceeded for {connection.describe()}", extra=_log_extra(connection))
            return

        try:
            message = decode_message(raw)
        except MalformedMessageError as e:
            self.context.stats.malformed_messages += 1
            logger.warning(f"Malformed frame from {connection.describe()}: {e}", extra=_log_extra(connection))
            return

        if isinstance(message, Identify):
            self._identify(connection, message)
        elif not connection.is_admitted:
            self.context.stats.unauthorized_actions += 1
            logger.warning(
                f"Dropping {message.type} from unidentified connection {connection.describe()}",
                extra=_log_extra(connection),
            )
        elif isinstance(message, StartTurn):
            self.coordinator.start_turn(connection)
        elif isinstance(message, Transcription):
            self._relay_transcription(connection, message)
        elif isinstance(message, EndTurn):
            self.coordinator.end_turn(connection)
        elif isinstance(message, LeaveQueue):
            self.coordinator.leave_queue(connection)
        elif isinstance(message, GetState):
            self.operator.get_state(connection)
        elif isinstance(message, _COMMANDS):
            self.operator.execute(connection, message)

    def _identify(self, connection: Connection, message: Identify) -> None:
        label = None
        if message.client is Role.RELAY_CLIENT:
            label = clean_display_label(message.display_name, self.settings.max_label_length)
            if message.display_name and label is None:
                logger.info(
                    f"Rejected display label from {connection.remote}, using generated label",
                    extra={"remote": connection.remote},
                )
        self.coordinator.admit(connection, message.client, label)

    def _relay_transcription(self, connection: Connection, message: Transcription) -> None:
        if not self.coordinator.authorize_holder(connection, "transcription"):
            return
        event = TranscriptionEvent(
            text=message.text,
            is_final=message.is_final,
            identity=connection.identity or "",
            label=connection.label,
            timestamp=message.timestamp or self.context.timestamp(),
        )
        self.context.stats.transcriptions_relayed += 1
        logger.debug(f"Transcription from {connection.describe()} (final={message.is_final})")
        self.dispatcher.broadcast_to(Role.OBSERVER, event)
        self.dispatcher.broadcast_to(Role.OPERATOR, event)

    # -------------------------------------------------------------------------
    # Read-only views for the HTTP layer
    # -------------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        turns = self.context.turns
        registry = self.context.registry
        holder = turns.holder
        return {
            "status": "ok",
            "resource_state": turns.state.value,
            "holder_identity": holder.identity if holder else None,
            "holder_label": holder.connection.label if holder else None,
            "waiting": len(turns),
            "relay_clients": registry.size_of(Role.RELAY_CLIENT),
            "observers": registry.size_of(Role.OBSERVER),
            "operators": registry.size_of(Role.OPERATOR),
            "uptime_seconds": round(self.context.stats.uptime_seconds, 2),
            "counters": self.context.stats.as_dict(),
        }
