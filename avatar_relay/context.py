"""The explicit state container shared by the relay components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from avatar_relay.metrics import RelayStats
from avatar_relay.registry import ConnectionRegistry, utc_now
from avatar_relay.turn_queue import TurnQueue


@dataclass
class RelayContext:
    """Owns the registry, the turn queue and the counters.

    Components receive the context by reference; nothing in the core is held
    in module-level globals.
    """

    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    turns: TurnQueue = field(default_factory=TurnQueue)
    stats: RelayStats = field(default_factory=RelayStats)
    clock: Callable[[], datetime] = utc_now

    def now(self) -> datetime:
        return self.clock()

    def timestamp(self) -> str:
        return self.clock().isoformat()
