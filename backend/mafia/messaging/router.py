from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from mafia.logic.exceptions import ErrorCode
from mafia.messaging.types import (
    ChatMessage,
    DayVoteMessage,
    ErrorMessage,
    JoinMessage,
    LeaveMessage,
    NightActionMessage,
    PingMessage,
    ReconnectMessage,
    SetReadyMessage,
    StartGameMessage,
    UpdateRoleSettingsMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from mafia.messaging.protocol import ConnectionProtocol
    from mafia.messaging.types import ClientMessage
    from mafia.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to appropriate handlers.

    This class contains pure dispatch logic and can be tested
    without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(connection, ErrorCode.VALIDATION_ERROR, str(e))
            return

        try:
            await self._dispatch(connection, message)
        except Exception:
            logger.exception("unexpected error handling %s from %s", message.type, connection.connection_id)
            await self._send_error(connection, ErrorCode.INTERNAL_ERROR, "Internal server error")

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:
        manager = self._session_manager
        if isinstance(message, JoinMessage):
            await manager.join(connection, message.room_id, message.name, message.player_id)
        elif isinstance(message, ReconnectMessage):
            await manager.reconnect(connection, message.room_id, message.player_id)
        elif isinstance(message, SetReadyMessage):
            await manager.set_ready(connection, message.room_id, message.player_id, ready=message.ready)
        elif isinstance(message, UpdateRoleSettingsMessage):
            await manager.update_role_settings(
                connection,
                message.room_id,
                message.player_id,
                message.settings.to_settings(),
            )
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection, message.room_id, message.player_id)
        elif isinstance(message, NightActionMessage):
            await manager.submit_night_action(
                connection,
                message.room_id,
                message.player_id,
                message.action_type,
                message.target_id,
            )
        elif isinstance(message, DayVoteMessage):
            await manager.submit_day_vote(connection, message.room_id, message.player_id, message.target_id)
        elif isinstance(message, LeaveMessage):
            await manager.leave(connection, message.room_id, message.player_id)
        elif isinstance(message, ChatMessage):
            await manager.chat(connection, message.room_id, message.player_id, message.text)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def _send_error(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump(mode="json"))

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)
