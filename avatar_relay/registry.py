"""
Connection registry - every live transport session and its declared role.

The registry is the only owner of ``Connection`` objects. Session-local
metadata (identity, role, display label) lives here in a side table keyed by
identity; the transport underneath only knows how to send and close.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Role a client declares when it identifies itself."""

    RELAY_CLIENT = "relay-client"
    OBSERVER = "observer"
    OPERATOR = "operator"


# Identity prefixes per role (user_3, observer_4, operator_5, ...)
IDENTITY_PREFIXES: Dict[Role, str] = {
    Role.RELAY_CLIENT: "user",
    Role.OBSERVER: "observer",
    Role.OPERATOR: "operator",
}

# Generated display labels when a client supplies none (User3, Observer4, ...)
LABEL_PREFIXES: Dict[Role, str] = {
    Role.RELAY_CLIENT: "User",
    Role.OBSERVER: "Observer",
    Role.OPERATOR: "Operator",
}


class Transport(Protocol):
    """Minimal outbound surface the core needs from a client connection.

    Both methods must return immediately; implementations queue the work.
    """

    @property
    def is_open(self) -> bool: ...

    def send(self, text: str) -> None: ...

    def close(self, code: int = 1000, reason: str = "") -> None: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Connection:
    """One live transport session."""

    transport: Transport
    remote: str = "unknown"
    opened_at: datetime = field(default_factory=utc_now)
    identity: Optional[str] = None
    role: Optional[Role] = None
    label: str = ""
    closed: bool = False

    @property
    def is_admitted(self) -> bool:
        return self.identity is not None and not self.closed

    @property
    def is_open(self) -> bool:
        """True while the registry still tracks the session and the transport is writable."""
        return not self.closed and self.transport.is_open

    @property
    def session_seconds(self) -> float:
        return (utc_now() - self.opened_at).total_seconds()

    def describe(self) -> str:
        if self.identity is None:
            return f"<unidentified {self.remote}>"
        return f"{self.label} ({self.identity})"


RemovalListener = Callable[[Connection], None]


class ConnectionRegistry:
    """Tracks open connections and the role-indexed member sets.

    ``remove`` cascades into every registered removal listener, which is how
    the turn coordinator learns that a holder or queued client went away.
    """

    def __init__(self) -> None:
        self._open: Dict[int, Connection] = {}
        self._by_identity: Dict[str, Connection] = {}
        # Insertion-ordered so broadcasts follow admission order
        self._members: Dict[Role, Dict[str, Connection]] = {role: {} for role in Role}
        self._counter = 0
        self._listeners: List[RemovalListener] = []

    def add_removal_listener(self, listener: RemovalListener) -> None:
        self._listeners.append(listener)

    def open(self, transport: Transport, remote: str = "unknown") -> Connection:
        """Record a freshly accepted transport. Its role stays unset until ``admit``."""
        connection = Connection(transport=transport, remote=remote)
        self._open[id(connection)] = connection
        return connection

    def admit(self, connection: Connection, role: Role, label: Optional[str] = None) -> str:
        """Assign an identity and role to *connection* and return the identity.

        A connection that identifies a second time is first detached (with the
        full removal cascade) and then admitted again under a new identity.
        """
        if connection.closed:
            raise ValueError(f"cannot admit closed connection {connection.describe()}")
        if connection.identity is not None:
            logger.info(f"Re-identify from {connection.describe()}, releasing previous identity")
            self._detach(connection)

        self._counter += 1
        identity = f"{IDENTITY_PREFIXES[role]}_{self._counter}"
        connection.identity = identity
        connection.role = role
        connection.label = label or f"{LABEL_PREFIXES[role]}{self._counter}"
        self._open.setdefault(id(connection), connection)
        self._by_identity[identity] = connection
        self._members[role][identity] = connection
        return identity

    def remove(self, connection: Connection) -> bool:
        """Forget *connection* entirely. Returns False if it was already removed."""
        if connection.closed:
            return False
        connection.closed = True
        self._open.pop(id(connection), None)
        self._detach(connection)
        return True

    def _detach(self, connection: Connection) -> None:
        identity = connection.identity
        if identity is None:
            return
        self._by_identity.pop(identity, None)
        if connection.role is not None:
            self._members[connection.role].pop(identity, None)
        for listener in list(self._listeners):
            listener(connection)

    def get(self, identity: str) -> Optional[Connection]:
        return self._by_identity.get(identity)

    def members(self, role: Role) -> List[Connection]:
        return list(self._members[role].values())

    def size_of(self, role: Role) -> int:
        return len(self._members[role])

    def __len__(self) -> int:
        return len(self._open)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._open.values()))

    def __contains__(self, connection: object) -> bool:
        return isinstance(connection, Connection) and id(connection) in self._open
