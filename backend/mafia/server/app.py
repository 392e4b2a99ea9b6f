from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from mafia.messaging.router import MessageRouter
from mafia.server.settings import MafiaServerSettings
from mafia.server.websocket import websocket_endpoint
from mafia.session.janitor import Janitor
from mafia.session.manager import SessionManager
from mafia.session.registry import RoomRegistry
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: MafiaServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "rooms": session_manager.room_count,
            "players": session_manager.player_count,
            "pending_transitions": session_manager.scheduler.pending_count,
            "max_rooms": settings.max_rooms,
        },
    )


async def list_rooms(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    return JSONResponse({"rooms": [room.model_dump(mode="json") for room in session_manager.list_rooms()]})


def create_app(
    settings: MafiaServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = MafiaServerSettings()

    if session_manager is None:
        session_manager = SessionManager(
            RoomRegistry(rules=settings.game_rules()),
            max_rooms=settings.max_rooms,
            room_expiry_seconds=settings.room_expiry_seconds,
            player_grace_seconds=settings.player_grace_seconds,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    janitor = Janitor(session_manager, interval=settings.janitor_interval_seconds)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/rooms", list_rooms, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        janitor.start()
        yield
        await janitor.stop()
        await session_manager.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.janitor = janitor

    logger.info("mafia server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = MafiaServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
