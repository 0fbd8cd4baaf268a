"""
Fan-out dispatcher - best-effort delivery to single connections and role sets.

A failed write is logged and counted against that recipient only; it never
interrupts delivery to the others and never reaches the state machine.
"""

from __future__ import annotations

import logging

from avatar_relay.context import RelayContext
from avatar_relay.protocol import (
    HolderView,
    OperatorState,
    OutboundEvent,
    QueuedView,
    encode_event,
)
from avatar_relay.registry import Connection, Role

logger = logging.getLogger(__name__)


class FanoutDispatcher:
    def __init__(self, context: RelayContext) -> None:
        self._context = context

    def send_to(self, connection: Connection, event: OutboundEvent) -> bool:
        """Deliver *event* to one connection. Returns True if it was handed to the transport."""
        return self._write(connection, encode_event(event), event.type)

    def broadcast_to(self, role: Role, event: OutboundEvent) -> int:
        """Deliver *event* to every member of *role*; returns how many accepted it."""
        text = encode_event(event)
        delivered = 0
        for connection in self._context.registry.members(role):
            if self._write(connection, text, event.type):
                delivered += 1
        logger.debug(f"Sent {event.type} to {delivered} {role.value} client(s)")
        return delivered

    def snapshot(self) -> OperatorState:
        """Full picture of the turn state for the operator panel."""
        turns = self._context.turns
        holder = turns.holder
        holder_view = None
        if holder is not None:
            holder_view = HolderView(
                identity=holder.connection.identity or "",
                label=holder.connection.label,
                since=holder.since.isoformat(),
            )
        queue = [
            QueuedView(
                identity=entry.connection.identity or "",
                label=entry.connection.label,
                joined_at=entry.joined_at.isoformat(),
                position=position,
            )
            for position, entry in enumerate(turns.entries(), start=1)
        ]
        return OperatorState(
            resource_state=turns.state.value,
            holder=holder_view,
            queue=queue,
            observer_count=self._context.registry.size_of(Role.OBSERVER),
        )

    def notify_operators(self) -> int:
        if self._context.registry.size_of(Role.OPERATOR) == 0:
            return 0
        return self.broadcast_to(Role.OPERATOR, self.snapshot())

    def _write(self, connection: Connection, text: str, kind: str) -> bool:
        if not connection.is_open:
            logger.debug(f"Skipping {kind} for closed connection {connection.describe()}")
            return False
        try:
            connection.transport.send(text)
        except Exception as e:
            self._context.stats.failed_sends += 1
            logger.warning(f"Failed to send {kind} to {connection.describe()}: {e}")
            return False
        return True
