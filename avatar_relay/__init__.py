"""
Avatar Relay - turn-taking relay for a single shared avatar.

Web clients take turns holding the avatar; the holder's speech
transcriptions are forwarded to observer clients (the avatar renderer)
and to operators, who can close, demote, promote, remove and reorder.
"""

__version__ = "0.1.0"

from .config import Settings, get_settings
from .coordinator import TurnCoordinator
from .registry import Connection, ConnectionRegistry, Role
from .service import RelayService
from .turn_queue import ResourceState, TurnQueue

__all__ = [
    "RelayService",
    "TurnCoordinator",
    "TurnQueue",
    "ResourceState",
    "ConnectionRegistry",
    "Connection",
    "Role",
    "Settings",
    "get_settings",
    "__version__",
]
