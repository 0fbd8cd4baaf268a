"""Wire protocol: inbound message kinds, outbound events, and the boundary codec.

Inbound frames are decoded exactly once, here, into one pydantic model per
message kind. Field names are camelCase on the wire and snake_case in Python.
Message, role and action names sent by the older web, Unity and admin
clients are accepted as aliases of the canonical names.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from avatar_relay.errors import MalformedMessageError
from avatar_relay.registry import Role

MAX_TRANSCRIPT_CHARS = 10_000

# ---------------------------------------------------------------------------
# Legacy aliases (pre-1.0 clients)
# ---------------------------------------------------------------------------

TYPE_ALIASES: dict[str, str] = {
    "start_conversation": "start-turn",
    "start_turn": "start-turn",
    "end_conversation": "end-turn",
    "end_turn": "end-turn",
    "leave_queue": "leave-queue",
    "admin_get_state": "get-state",
    "get_state": "get-state",
    "admin_command": "command",
}

CLIENT_ALIASES: dict[str, str] = {
    "web": "relay-client",
    "relay_client": "relay-client",
    "unity": "observer",
    "admin": "operator",
}

ACTION_ALIASES: dict[str, str] = {
    "close_conversation": "close-conversation",
    "demote_to_queue": "demote",
    "promote_user": "promote",
    "remove_from_queue": "remove-from-queue",
    "move_in_queue": "move",
}

FIELD_ALIASES: dict[str, str] = {
    "username": "displayName",
    "userId": "targetId",
}


# ---------------------------------------------------------------------------
# Inbound (client -> server)
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Identify(_Inbound):
    type: Literal["identify"] = "identify"
    client: Role
    display_name: Optional[str] = None


class StartTurn(_Inbound):
    type: Literal["start-turn"] = "start-turn"


class Transcription(_Inbound):
    type: Literal["transcription"] = "transcription"
    text: str = Field(max_length=MAX_TRANSCRIPT_CHARS)
    is_final: StrictBool = False
    timestamp: Optional[str] = Field(default=None, max_length=64)


class EndTurn(_Inbound):
    type: Literal["end-turn"] = "end-turn"


class LeaveQueue(_Inbound):
    type: Literal["leave-queue"] = "leave-queue"


class GetState(_Inbound):
    type: Literal["get-state"] = "get-state"


class CloseConversation(_Inbound):
    type: Literal["command"] = "command"
    action: Literal["close-conversation"] = "close-conversation"
    target_id: str


class Demote(_Inbound):
    type: Literal["command"] = "command"
    action: Literal["demote"] = "demote"
    target_id: str


class Promote(_Inbound):
    type: Literal["command"] = "command"
    action: Literal["promote"] = "promote"
    index: StrictInt


class RemoveFromQueue(_Inbound):
    type: Literal["command"] = "command"
    action: Literal["remove-from-queue"] = "remove-from-queue"
    index: StrictInt


class Move(_Inbound):
    type: Literal["command"] = "command"
    action: Literal["move"] = "move"
    from_index: StrictInt
    to_index: StrictInt


OperatorCommand = Annotated[
    Union[CloseConversation, Demote, Promote, RemoveFromQueue, Move],
    Field(discriminator="action"),
]

ClientMessage = Annotated[
    Union[Identify, StartTurn, Transcription, EndTurn, LeaveQueue, GetState],
    Field(discriminator="type"),
]

InboundMessage = Union[
    Identify,
    StartTurn,
    Transcription,
    EndTurn,
    LeaveQueue,
    GetState,
    CloseConversation,
    Demote,
    Promote,
    RemoveFromQueue,
    Move,
]

_COMMAND_ADAPTER: TypeAdapter[Any] = TypeAdapter(OperatorCommand)
_MESSAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(ClientMessage)


def _normalise(data: dict[str, Any]) -> dict[str, Any]:
    """Map legacy message, role, action and field names to canonical ones."""
    data = dict(data)
    for legacy, canonical in FIELD_ALIASES.items():
        if legacy in data and canonical not in data:
            data[canonical] = data.pop(legacy)

    msg_type = data.get("type")
    if isinstance(msg_type, str):
        data["type"] = TYPE_ALIASES.get(msg_type, msg_type)

    client = data.get("client")
    if isinstance(client, str):
        data["client"] = CLIENT_ALIASES.get(client, client)

    action = data.get("action")
    if isinstance(action, str):
        data["action"] = ACTION_ALIASES.get(action, action)
    return data


def decode_message(raw: str | bytes) -> InboundMessage:
    """Decode one inbound frame.

    Raises:
        MalformedMessageError: for invalid JSON, a non-object payload, an
            unknown ``type``/``action`` or invalid fields.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessageError(f"invalid JSON: {e}", raw) from e

    if not isinstance(data, dict):
        raise MalformedMessageError("frame is not a JSON object", raw)

    data = _normalise(data)
    adapter = _COMMAND_ADAPTER if data.get("type") == "command" else _MESSAGE_ADAPTER
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'frame'}: {err['msg']}" for err in e.errors()
        )
        raise MalformedMessageError(errors, raw) from e


# ---------------------------------------------------------------------------
# Outbound (server -> client)
# ---------------------------------------------------------------------------


class _Outbound(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Registered(_Outbound):
    type: Literal["registered"] = "registered"
    identity: str
    state: Literal["active", "waiting"]
    queue_position: Optional[int] = None


class QueueUpdate(_Outbound):
    type: Literal["queue-update"] = "queue-update"
    position: int
    total_waiting: int


class QueueStatus(_Outbound):
    type: Literal["queue-status"] = "queue-status"
    waiting: int
    timestamp: str


class NoticeBusy(_Outbound):
    type: Literal["notice-busy"] = "notice-busy"
    holder_label: str


class ActiveUserChanged(_Outbound):
    type: Literal["active-user-changed"] = "active-user-changed"
    identity: str
    label: str
    timestamp: str


class TurnStarted(_Outbound):
    type: Literal["turn-started"] = "turn-started"
    identity: str
    label: str
    timestamp: str


class TranscriptionEvent(_Outbound):
    type: Literal["transcription"] = "transcription"
    text: str
    is_final: bool
    identity: str
    label: str
    timestamp: str


class UserLeft(_Outbound):
    type: Literal["user-left"] = "user-left"
    timestamp: str


class AvatarIdle(_Outbound):
    type: Literal["avatar-idle"] = "avatar-idle"
    timestamp: str


class Promoted(_Outbound):
    type: Literal["promoted"] = "promoted"


class Kicked(_Outbound):
    type: Literal["kicked"] = "kicked"
    reason: str


class HolderView(_Outbound):
    identity: str
    label: str
    since: str


class QueuedView(_Outbound):
    identity: str
    label: str
    joined_at: str
    position: int


class OperatorState(_Outbound):
    type: Literal["operator-state"] = "operator-state"
    resource_state: Literal["idle", "busy"]
    holder: Optional[HolderView] = None
    queue: list[QueuedView] = Field(default_factory=list)
    observer_count: int = 0


OutboundEvent = Union[
    Registered,
    QueueUpdate,
    QueueStatus,
    NoticeBusy,
    ActiveUserChanged,
    TurnStarted,
    TranscriptionEvent,
    UserLeft,
    AvatarIdle,
    Promoted,
    Kicked,
    OperatorState,
]


def encode_event(event: OutboundEvent) -> str:
    """Serialize an outbound event with camelCase field names."""
    return event.model_dump_json(by_alias=True, exclude_none=True)
