import random

import pytest

from mafia.logic.settings import GameRules
from mafia.messaging.router import MessageRouter
from mafia.server.app import create_app
from mafia.server.settings import MafiaServerSettings
from mafia.session.gateway import NotificationGateway
from mafia.session.manager import SessionManager
from mafia.session.registry import RoomRegistry
from mafia.tests.mocks import MockConnection


@pytest.fixture
def rules():
    """Rules without reveal or night delays so deferred transitions fire immediately."""
    return GameRules(role_reveal_seconds=0, night_delay_seconds=0)


@pytest.fixture
def registry(rules):
    return RoomRegistry(rules=rules, rng=random.Random(42))


@pytest.fixture
def gateway():
    return NotificationGateway()


@pytest.fixture
def session_manager(registry, gateway):
    return SessionManager(registry, gateway)


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def settings():
    return MafiaServerSettings(
        cors_origins=["http://localhost:5173"],
        role_reveal_seconds=0,
        night_delay_seconds=0,
    )


@pytest.fixture
def app(settings, session_manager, message_router):
    return create_app(
        settings=settings,
        session_manager=session_manager,
        message_router=message_router,
    )
