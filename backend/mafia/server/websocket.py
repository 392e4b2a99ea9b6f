from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from mafia.logic.exceptions import ErrorCode
from mafia.messaging.encoder import DecodeError, decode
from mafia.messaging.protocol import ConnectionProtocol
from mafia.messaging.types import ErrorMessage
from mafia.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from mafia.messaging.router import MessageRouter

# Rate limit: 20 messages/sec sustained, burst of 40.
# Commands are human paced; chat and vote changes are the fastest senders.
RATE_LIMIT_RATE = 20.0
RATE_LIMIT_BURST = 40

# Disconnect after this many consecutive decode errors
MAX_DECODE_ERRORS = 5
CLOSE_TOO_MANY_DECODE_ERRORS = 4004


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect):
            await self._websocket.close(code=code, reason=reason)


async def _send_error(connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
    await connection.send_message(ErrorMessage(code=code, message=message).model_dump(mode="json"))


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    bucket = TokenBucket(rate=RATE_LIMIT_RATE, burst=RATE_LIMIT_BURST)
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()

            # Always decode to maintain the malformed-message strike counter.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await _send_error(connection, ErrorCode.INVALID_MESSAGE, str(e))
                if decode_errors >= MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await _send_error(
                    connection,
                    ErrorCode.RATE_LIMITED,
                    f"Too many messages, retry in {bucket.retry_after():.2f}s",
                )
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
