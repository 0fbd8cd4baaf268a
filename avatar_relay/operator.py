"""
Operator control surface - privileged commands from the admin panel.

Commands are validated here (actor role, holder identity, queue bounds) and
then handed to the turn coordinator. A rejected command mutates nothing.
"""

from __future__ import annotations

import logging

from avatar_relay.context import RelayContext
from avatar_relay.coordinator import TurnCoordinator
from avatar_relay.dispatcher import FanoutDispatcher
from avatar_relay.errors import QueueIndexError, TargetMismatchError
from avatar_relay.protocol import (
    CloseConversation,
    Demote,
    Move,
    OperatorCommand,
    Promote,
    RemoveFromQueue,
)
from avatar_relay.registry import Connection, Role

logger = logging.getLogger(__name__)

CLOSE_REASON = "Your conversation was closed by the operator"
REMOVE_REASON = "You were removed from the queue by the operator"


class OperatorControlSurface:
    def __init__(
        self,
        context: RelayContext,
        coordinator: TurnCoordinator,
        dispatcher: FanoutDispatcher,
    ) -> None:
        self._context = context
        self._coordinator = coordinator
        self._dispatcher = dispatcher

    def _authorize(self, actor: Connection, what: str) -> bool:
        if actor.role is Role.OPERATOR and actor.is_admitted:
            return True
        self._context.stats.unauthorized_actions += 1
        logger.warning(f"Unauthorized {what} from {actor.describe()}")
        return False

    def get_state(self, actor: Connection) -> bool:
        """Send the current snapshot to the requesting operator only."""
        if not self._authorize(actor, "get-state"):
            return False
        return self._dispatcher.send_to(actor, self._dispatcher.snapshot())

    def execute(self, actor: Connection, command: OperatorCommand) -> bool:
        """Apply *command* on behalf of *actor*. Returns True if state changed."""
        if not self._authorize(actor, f"command {command.action}"):
            return False

        logger.info(f"Operator command from {actor.describe()}: {command.action}")
        try:
            if isinstance(command, CloseConversation):
                self._coordinator.close_holder(command.target_id, CLOSE_REASON)
            elif isinstance(command, Demote):
                self._coordinator.demote_holder(command.target_id)
            elif isinstance(command, Promote):
                self._coordinator.promote_at(command.index)
            elif isinstance(command, RemoveFromQueue):
                self._coordinator.remove_queued(command.index, REMOVE_REASON)
            elif isinstance(command, Move):
                self._coordinator.move(command.from_index, command.to_index)
            else:
                raise TypeError(f"unsupported operator command: {command!r}")
        except (QueueIndexError, TargetMismatchError) as e:
            self._context.stats.rejected_commands += 1
            logger.warning(f"Rejected operator command {command.action}: {e}")
            return False

        self._context.stats.operator_commands += 1
        self._dispatcher.notify_operators()
        return True
