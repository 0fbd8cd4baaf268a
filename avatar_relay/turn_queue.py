"""
Turn queue - the ordered waiting list plus the single holder slot.

Resource state is derived from the holder slot, so ``busy`` without a holder
(or ``idle`` with one) cannot be represented.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional

from avatar_relay.errors import DuplicateEntryError, QueueIndexError
from avatar_relay.registry import Connection


class ResourceState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


@dataclass
class QueueEntry:
    connection: Connection
    joined_at: datetime

    @property
    def identity(self) -> Optional[str]:
        return self.connection.identity


@dataclass
class Holder:
    connection: Connection
    since: datetime

    @property
    def identity(self) -> Optional[str]:
        return self.connection.identity


class TurnQueue:
    """Waiting list of relay-client connections and the holder slot.

    All operations are linear scans; queues hold tens of clients, not thousands.
    """

    def __init__(self) -> None:
        self._entries: List[QueueEntry] = []
        self._holder: Optional[Holder] = None

    # -- holder slot ----------------------------------------------------------

    @property
    def holder(self) -> Optional[Holder]:
        return self._holder

    @property
    def state(self) -> ResourceState:
        return ResourceState.BUSY if self._holder is not None else ResourceState.IDLE

    def set_holder(self, connection: Connection, since: datetime) -> Holder:
        if self._holder is not None:
            raise DuplicateEntryError(
                f"holder slot already taken by {self._holder.connection.describe()}"
            )
        if self.contains(connection):
            raise DuplicateEntryError(f"{connection.describe()} is still queued")
        self._holder = Holder(connection=connection, since=since)
        return self._holder

    def clear_holder(self) -> Optional[Holder]:
        holder, self._holder = self._holder, None
        return holder

    def is_holder(self, connection: Connection) -> bool:
        return self._holder is not None and self._holder.connection is connection

    # -- waiting list ---------------------------------------------------------

    def append(self, entry: QueueEntry) -> int:
        """Add *entry* at the tail and return its 1-based position."""
        self._check_new(entry.connection)
        self._entries.append(entry)
        return len(self._entries)

    def insert_front(self, entry: QueueEntry) -> None:
        self._check_new(entry.connection)
        self._entries.insert(0, entry)

    def pop_front(self) -> Optional[QueueEntry]:
        if not self._entries:
            return None
        return self._entries.pop(0)

    def remove_by_connection(self, connection: Connection) -> bool:
        for index, entry in enumerate(self._entries):
            if entry.connection is connection:
                del self._entries[index]
                return True
        return False

    def remove_at(self, index: int) -> QueueEntry:
        self._check_index(index)
        return self._entries.pop(index)

    def move_within(self, from_index: int, to_index: int) -> None:
        self._check_index(from_index)
        self._check_index(to_index)
        entry = self._entries.pop(from_index)
        self._entries.insert(to_index, entry)

    def entry_at(self, index: int) -> QueueEntry:
        self._check_index(index)
        return self._entries[index]

    def position_of(self, connection: Connection) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.connection is connection:
                return index + 1
        return None

    def contains(self, connection: Connection) -> bool:
        return self.position_of(connection) is not None

    def entries(self) -> List[QueueEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries))

    def _check_index(self, index: int) -> None:
        # Negative indices are rejected rather than counted from the tail
        if not isinstance(index, int) or isinstance(index, bool):
            raise QueueIndexError(index, len(self._entries))
        if index < 0 or index >= len(self._entries):
            raise QueueIndexError(index, len(self._entries))

    def _check_new(self, connection: Connection) -> None:
        if self.is_holder(connection):
            raise DuplicateEntryError(f"{connection.describe()} already holds the turn")
        if self.contains(connection):
            raise DuplicateEntryError(f"{connection.describe()} is already queued")
