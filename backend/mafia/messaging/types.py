from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from mafia.logic.enums import NightActionType
from mafia.logic.exceptions import ErrorCode
from mafia.logic.settings import MAX_PLAYERS, RoleSettings

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

_ROOM_ID_PATTERN = r"^\s*[A-Za-z0-9_-]+\s*$"


def _room_id_field() -> Any:  # noqa: ANN401
    return Field(min_length=1, max_length=32, pattern=_ROOM_ID_PATTERN)


def _player_id_field() -> Any:  # noqa: ANN401
    return Field(min_length=1, max_length=64)


class ClientMessageType(StrEnum):
    JOIN = "join"
    SET_READY = "set_ready"
    UPDATE_ROLE_SETTINGS = "update_role_settings"
    START_GAME = "start_game"
    NIGHT_ACTION = "night_action"
    DAY_VOTE = "day_vote"
    LEAVE = "leave"
    RECONNECT = "reconnect"
    CHAT = "chat"
    PING = "ping"


class ServerMessageType(StrEnum):
    ERROR = "error"
    PONG = "pong"


class _ClientMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")


class JoinMessage(_ClientMessage):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    room_id: str = _room_id_field()
    name: str = Field(default="", max_length=100)
    player_id: str | None = Field(default=None, min_length=1, max_length=64)


class SetReadyMessage(_ClientMessage):
    type: Literal[ClientMessageType.SET_READY] = ClientMessageType.SET_READY
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()
    ready: bool


class RoleSettingsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mafia_count: int = Field(ge=0, le=MAX_PLAYERS, strict=True)
    detective_count: int = Field(default=0, ge=0, le=MAX_PLAYERS, strict=True)
    doctor_count: int = Field(default=0, ge=0, le=MAX_PLAYERS, strict=True)

    def to_settings(self) -> RoleSettings:
        return RoleSettings(**self.model_dump())


class UpdateRoleSettingsMessage(_ClientMessage):
    type: Literal[ClientMessageType.UPDATE_ROLE_SETTINGS] = ClientMessageType.UPDATE_ROLE_SETTINGS
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()
    settings: RoleSettingsPayload


class StartGameMessage(_ClientMessage):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()


class NightActionMessage(_ClientMessage):
    type: Literal[ClientMessageType.NIGHT_ACTION] = ClientMessageType.NIGHT_ACTION
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()
    action_type: NightActionType
    target_id: str = _player_id_field()


class DayVoteMessage(_ClientMessage):
    type: Literal[ClientMessageType.DAY_VOTE] = ClientMessageType.DAY_VOTE
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()
    target_id: str = _player_id_field()


class LeaveMessage(_ClientMessage):
    type: Literal[ClientMessageType.LEAVE] = ClientMessageType.LEAVE
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()


class ReconnectMessage(_ClientMessage):
    type: Literal[ClientMessageType.RECONNECT] = ClientMessageType.RECONNECT
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()


class ChatMessage(_ClientMessage):
    type: Literal[ClientMessageType.CHAT] = ClientMessageType.CHAT
    room_id: str = _room_id_field()
    player_id: str = _player_id_field()
    text: str = Field(min_length=1, max_length=1000)

    @field_validator("text")
    @classmethod
    def _validate_text(cls, v: str) -> str:
        if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in v):
            raise ValueError("text must not contain control characters")
        return v


class PingMessage(_ClientMessage):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    JoinMessage
    | SetReadyMessage
    | UpdateRoleSettingsMessage
    | StartGameMessage
    | NightActionMessage
    | DayVoteMessage
    | LeaveMessage
    | ReconnectMessage
    | ChatMessage
    | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw decoded map into a typed command. Raises pydantic ValidationError."""
    return _client_message_adapter.validate_python(data)


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: ErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG
