"""
Turn coordinator - the state machine behind the shared avatar.

States are Idle (no holder) and Busy (holder set). Every transition runs to
completion without awaiting and ends by notifying the affected parties
through the fan-out dispatcher:

    admit(relay-client)   Idle -> Busy, or append to the queue while Busy
    end_turn / disconnect Busy -> Idle, then promotion of the queue head
    operator overrides    close, demote, promote(index), remove(index), move

The holder slot and the queue are only ever mutated here.
"""

from __future__ import annotations

import logging
from typing import Optional

from avatar_relay.context import RelayContext
from avatar_relay.dispatcher import FanoutDispatcher
from avatar_relay.errors import TargetMismatchError
from avatar_relay.protocol import (
    ActiveUserChanged,
    AvatarIdle,
    Kicked,
    NoticeBusy,
    Promoted,
    QueueStatus,
    QueueUpdate,
    Registered,
    TurnStarted,
    UserLeft,
)
from avatar_relay.registry import Connection, Role
from avatar_relay.turn_queue import Holder, QueueEntry

logger = logging.getLogger(__name__)

# WebSocket close code used when an operator terminates a client
KICK_CLOSE_CODE = 4010


class TurnCoordinator:
    """Owns admission, promotion, release, overrides and disconnect recovery."""

    def __init__(self, context: RelayContext, dispatcher: FanoutDispatcher) -> None:
        self._context = context
        self._dispatcher = dispatcher
        context.registry.add_removal_listener(self.handle_disconnect)

    @property
    def holder(self) -> Optional[Holder]:
        return self._context.turns.holder

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def admit(self, connection: Connection, role: Role, label: Optional[str] = None) -> str:
        """Admit *connection* under *role* and run the matching transition."""
        identity = self._context.registry.admit(connection, role, label)
        stats = self._context.stats

        if role is Role.RELAY_CLIENT:
            stats.relay_clients_admitted += 1
            logger.info(f"Relay client registered: {connection.describe()}")
            if self._context.turns.holder is None:
                self._grant(connection, promoted=False)
            else:
                self._enqueue(connection)
        elif role is Role.OBSERVER:
            stats.observers_admitted += 1
            logger.info(
                f"Observer connected: {connection.describe()}. "
                f"Total observers: {self._context.registry.size_of(Role.OBSERVER)}"
            )
            self._dispatcher.notify_operators()
        else:
            stats.operators_admitted += 1
            logger.info(
                f"Operator connected: {connection.describe()}. "
                f"Total operators: {self._context.registry.size_of(Role.OPERATOR)}"
            )
            self._dispatcher.send_to(connection, self._dispatcher.snapshot())
        return identity

    def _grant(self, connection: Connection, promoted: bool) -> None:
        """Idle -> Busy: hand the turn to *connection*."""
        self._context.turns.set_holder(connection, self._context.now())
        self._context.stats.promotions += 1
        logger.info(f"Turn granted to {connection.describe()}")

        if promoted:
            self._dispatcher.send_to(connection, Promoted())
        else:
            self._dispatcher.send_to(
                connection, Registered(identity=connection.identity, state="active")
            )
        self._dispatcher.broadcast_to(
            Role.OBSERVER,
            ActiveUserChanged(
                identity=connection.identity,
                label=connection.label,
                timestamp=self._context.timestamp(),
            ),
        )
        if promoted:
            self._broadcast_queue_positions()
        self._dispatcher.notify_operators()

    def _enqueue(self, connection: Connection) -> None:
        turns = self._context.turns
        position = turns.append(QueueEntry(connection=connection, joined_at=self._context.now()))
        logger.info(f"Queued {connection.describe()} at position {position}")

        self._dispatcher.send_to(
            connection,
            Registered(identity=connection.identity, state="waiting", queue_position=position),
        )
        holder = turns.holder
        if holder is not None:
            self._dispatcher.send_to(connection, NoticeBusy(holder_label=holder.connection.label))
        self._broadcast_queue_positions()
        self._dispatcher.notify_operators()

    # -------------------------------------------------------------------------
    # Holder actions
    # -------------------------------------------------------------------------

    def authorize_holder(self, connection: Connection, action: str) -> bool:
        """True if *connection* currently holds the turn; otherwise log and count the attempt."""
        holder = self._context.turns.holder
        if (
            holder is not None
            and connection.identity is not None
            and holder.identity == connection.identity
        ):
            return True
        self._context.stats.unauthorized_actions += 1
        logger.warning(f"Unauthorized {action} from {connection.describe()}")
        return False

    def start_turn(self, connection: Connection) -> bool:
        if not self.authorize_holder(connection, "start-turn"):
            return False
        logger.info(f"Conversation started: {connection.describe()}")
        event = TurnStarted(
            identity=connection.identity,
            label=connection.label,
            timestamp=self._context.timestamp(),
        )
        self._dispatcher.send_to(connection, event)
        self._dispatcher.broadcast_to(Role.OBSERVER, event)
        return True

    def end_turn(self, connection: Connection) -> bool:
        if not self.authorize_holder(connection, "end-turn"):
            return False
        logger.info(f"Conversation ended: {connection.describe()}")
        self._release()
        self._promote_next()
        return True

    def leave_queue(self, connection: Connection) -> bool:
        if not self._context.turns.remove_by_connection(connection):
            logger.debug(f"leave-queue from {connection.describe()} ignored: not queued")
            return False
        self._context.stats.queue_removals += 1
        logger.info(f"Left queue: {connection.describe()}")
        self._broadcast_queue_positions()
        self._dispatcher.notify_operators()
        return True

    # -------------------------------------------------------------------------
    # Disconnect recovery (registry removal listener)
    # -------------------------------------------------------------------------

    def handle_disconnect(self, connection: Connection) -> None:
        role = connection.role
        turns = self._context.turns

        if role is Role.RELAY_CLIENT:
            if turns.is_holder(connection):
                logger.warning(f"Holder disconnected, releasing control: {connection.describe()}")
                self._release()
                self._promote_next()
            elif turns.remove_by_connection(connection):
                self._context.stats.queue_removals += 1
                logger.info(f"Removed from queue on disconnect: {connection.describe()}")
                self._broadcast_queue_positions()
                self._dispatcher.notify_operators()
            else:
                logger.info(f"Relay client disconnected: {connection.describe()}")
        elif role is Role.OBSERVER:
            logger.info(
                f"Observer disconnected: {connection.describe()}. "
                f"Total observers: {self._context.registry.size_of(Role.OBSERVER)}"
            )
            self._dispatcher.notify_operators()
        elif role is Role.OPERATOR:
            logger.info(
                f"Operator disconnected: {connection.describe()}. "
                f"Total operators: {self._context.registry.size_of(Role.OPERATOR)}"
            )

    # -------------------------------------------------------------------------
    # Release and promotion
    # -------------------------------------------------------------------------

    def _release(self) -> Optional[Holder]:
        """Busy -> Idle. Promotion is the caller's next step."""
        holder = self._context.turns.clear_holder()
        if holder is None:
            return None
        self._context.stats.releases += 1
        logger.info(f"Releasing control from {holder.connection.describe()}")
        self._dispatcher.broadcast_to(Role.OBSERVER, UserLeft(timestamp=self._context.timestamp()))
        self._dispatcher.notify_operators()
        return holder

    def _promote_next(self, skip: Optional[Connection] = None) -> Optional[Connection]:
        """Grant the turn to the queue head, or announce idle if nobody waits.

        With *skip* set, the first queued connection other than *skip* is
        preferred; *skip* itself is only promoted when it waits alone.
        """
        turns = self._context.turns
        if turns.holder is not None:
            return None

        candidate = None
        for entry in turns.entries():
            if entry.connection is not skip:
                candidate = entry
                break
        if candidate is None:
            candidate = turns.pop_front()
        else:
            turns.remove_by_connection(candidate.connection)

        if candidate is None:
            logger.info("No users waiting, avatar returning to idle")
            self._dispatcher.broadcast_to(
                Role.OBSERVER, AvatarIdle(timestamp=self._context.timestamp())
            )
            self._dispatcher.notify_operators()
            return None

        logger.info(f"Promoting next user: {candidate.connection.describe()}")
        self._grant(candidate.connection, promoted=True)
        return candidate.connection

    def _broadcast_queue_positions(self) -> None:
        """Push 1-based positions to every queued connection and the count to observers."""
        entries = self._context.turns.entries()
        total = len(entries)
        for position, entry in enumerate(entries, start=1):
            self._dispatcher.send_to(
                entry.connection, QueueUpdate(position=position, total_waiting=total)
            )
        self._dispatcher.broadcast_to(
            Role.OBSERVER, QueueStatus(waiting=total, timestamp=self._context.timestamp())
        )

    # -------------------------------------------------------------------------
    # Operator overrides
    # -------------------------------------------------------------------------

    def require_holder(self, target_id: str) -> Holder:
        holder = self._context.turns.holder
        if holder is None:
            raise TargetMismatchError(f"no active holder (requested {target_id})")
        if holder.identity != target_id:
            raise TargetMismatchError(f"{target_id} is not the holder ({holder.identity})")
        return holder

    def close_holder(self, target_id: str, reason: str) -> Connection:
        """Notify and disconnect the holder, then release and promote."""
        connection = self.require_holder(target_id).connection
        logger.info(f"Operator closing conversation for {connection.describe()}")
        self._terminate(connection, reason)
        return connection

    def demote_holder(self, target_id: str) -> Connection:
        """Move the holder back to the head of the queue and promote someone else."""
        self.require_holder(target_id)
        demoted = self._requeue_holder()
        self._promote_next(skip=demoted)
        return demoted

    def promote_at(self, index: int) -> Connection:
        """Give the turn to the queued entry at *index* (0-based, before any shift)."""
        turns = self._context.turns
        turns.entry_at(index)
        if turns.holder is not None:
            self._requeue_holder()
            # The re-queued holder now sits in front of the target
            index += 1
        entry = turns.remove_at(index)
        logger.info(f"Operator promoting {entry.connection.describe()}")
        self._grant(entry.connection, promoted=True)
        return entry.connection

    def remove_queued(self, index: int, reason: str) -> Connection:
        """Drop the queued entry at *index*, notify it and close its transport."""
        entry = self._context.turns.remove_at(index)
        self._context.stats.queue_removals += 1
        logger.info(f"Operator removed from queue: {entry.connection.describe()}")
        self._terminate(entry.connection, reason)
        self._broadcast_queue_positions()
        self._dispatcher.notify_operators()
        return entry.connection

    def move(self, from_index: int, to_index: int) -> None:
        self._context.turns.move_within(from_index, to_index)
        logger.info(f"Operator moved queue entry {from_index} -> {to_index}")
        self._broadcast_queue_positions()
        self._dispatcher.notify_operators()

    def _requeue_holder(self) -> Connection:
        holder = self._release()
        if holder is None:
            raise TargetMismatchError("no active holder to demote")
        connection = holder.connection
        self._context.turns.insert_front(
            QueueEntry(connection=connection, joined_at=self._context.now())
        )
        logger.info(f"Demoted to queue head: {connection.describe()}")
        self._dispatcher.send_to(
            connection,
            Registered(identity=connection.identity, state="waiting", queue_position=1),
        )
        self._broadcast_queue_positions()
        return connection

    def _terminate(self, connection: Connection, reason: str) -> None:
        self._dispatcher.send_to(connection, Kicked(reason=reason))
        connection.transport.close(KICK_CLOSE_CODE, reason)
        self._context.stats.forced_closes += 1
        # Removal cascades into handle_disconnect (release + promotion for a holder)
        self._context.registry.remove(connection)
