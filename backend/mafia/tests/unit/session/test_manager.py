import asyncio

from mafia.logic.enums import DeferredKind, GamePhase, NightActionType, Role, RoomStatus
from mafia.logic.outcome import DeferredTransition
from mafia.logic.settings import GameRules, RoleSettings
from mafia.session.gateway import NotificationGateway
from mafia.session.manager import SessionManager
from mafia.session.registry import RoomRegistry
from mafia.tests.mocks import MockConnection


async def _join(manager: SessionManager, count: int, room_id: str = "r1"):
    connections = [MockConnection(f"conn-{i}") for i in range(1, count + 1)]
    ids = [await manager.join(connection, room_id, f"P{i}") for i, connection in enumerate(connections, 1)]
    return connections, ids


async def _start(manager: SessionManager, connections, ids, room_id: str = "r1"):
    for connection, player_id in zip(connections, ids, strict=True):
        await manager.set_ready(connection, room_id, player_id, ready=True)
    await manager.start_game(connections[0], room_id, ids[0])
    await asyncio.sleep(0.01)


def _role_holder(manager: SessionManager, role: Role, room_id: str = "r1") -> str:
    room = manager.get_room(room_id)
    return next(pid for pid, p in room.players.items() if p.role == role)


class TestJoin:
    async def test_first_join_creates_room_and_answers_with_ids(self, session_manager):
        connection = MockConnection("conn-1")

        player_id = await session_manager.join(connection, "abc", "Ann")

        assert session_manager.room_count == 1
        (joined,) = connection.messages_of_type("room_joined")
        assert joined["player_id"] == player_id
        assert joined["host_id"] == player_id
        assert joined["room_id"] == "ABC"
        assert connection.messages_of_type("roster")[-1]["players"][0]["name"] == "Ann"

    async def test_case_variants_share_a_room(self, session_manager):
        await session_manager.join(MockConnection("a"), "abc123", "A")
        await session_manager.join(MockConnection("b"), "ABC123", "B")
        assert session_manager.room_count == 1
        assert session_manager.get_room("AbC123").player_count == 2

    async def test_roster_broadcast_to_existing_members(self, session_manager):
        connections, _ = await _join(session_manager, 2)
        rosters = connections[0].messages_of_type("roster")
        assert [p["name"] for p in rosters[-1]["players"]] == ["P1", "P2"]

    async def test_rejoin_from_new_connection_keeps_single_entry(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        tab = MockConnection("conn-1b")

        resolved = await session_manager.join(tab, "r1", "P1 again", player_id=ids[0])

        room = session_manager.get_room("r1")
        assert resolved == ids[0]
        assert room.player_count == 3
        assert room.players[ids[0]].connection_id == "conn-1b"
        assert tab.messages_of_type("room_joined")[0]["reconnected"] is True

    async def test_capacity_limit(self):
        manager = SessionManager(RoomRegistry(), NotificationGateway(), max_rooms=1)
        await manager.join(MockConnection("a"), "one", "A")
        rejected = MockConnection("b")

        assert await manager.join(rejected, "two", "B") is None

        assert manager.room_count == 1
        assert rejected.messages_of_type("error")[0]["code"] == "validation_error"

    async def test_full_room_rejection_keeps_room(self):
        manager = SessionManager(RoomRegistry(rules=GameRules(max_players=3)), NotificationGateway())
        await _join(manager, 3)
        extra = MockConnection("extra")

        assert await manager.join(extra, "r1", "Extra") is None

        assert manager.get_room("r1").player_count == 3
        assert extra.messages_of_type("error")[0]["code"] == "validation_error"


class TestErrors:
    async def test_rule_violation_goes_only_to_sender(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        for connection in connections:
            connection.clear()

        await session_manager.start_game(connections[1], "r1", ids[1])

        (error,) = connections[1].sent_messages
        assert error == {"type": "error", "code": "not_host", "message": "Only the host can do that"}
        assert connections[0].sent_messages == []
        assert connections[2].sent_messages == []
        assert session_manager.get_room("r1").status == RoomStatus.WAITING

    async def test_unknown_room(self, mock_connection, session_manager):
        await session_manager.start_game(mock_connection, "nowhere", "p1")
        assert mock_connection.messages_of_type("error")[0]["code"] == "room_not_found"

    async def test_set_ready_for_unknown_room_is_silent(self, mock_connection, session_manager):
        await session_manager.set_ready(mock_connection, "nowhere", "p1", ready=True)
        assert mock_connection.sent_messages == []

    async def test_invalid_role_settings(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        await session_manager.update_role_settings(
            connections[0],
            "r1",
            ids[0],
            RoleSettings(mafia_count=3, detective_count=1, doctor_count=1),
        )
        assert connections[0].messages_of_type("error")[0]["code"] == "invalid_role_settings"


class TestSenderBinding:
    async def test_start_game_with_host_id_from_other_connection(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        for connection, player_id in zip(connections, ids, strict=True):
            await session_manager.set_ready(connection, "r1", player_id, ready=True)
        connections[2].clear()

        await session_manager.start_game(connections[2], "r1", ids[0])

        assert session_manager.get_room("r1").status == RoomStatus.WAITING
        (error,) = connections[2].sent_messages
        assert error["code"] == "player_not_found"

    async def test_cannot_remove_another_player(self, session_manager):
        connections, ids = await _join(session_manager, 3)

        await session_manager.leave(connections[2], "r1", ids[0])

        room = session_manager.get_room("r1")
        assert ids[0] in room.players
        assert room.host_id == ids[0]

    async def test_cannot_vote_for_another_player(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        await _start(session_manager, connections, ids)
        room = session_manager.get_room("r1")
        room.set_phase(GamePhase.DAY)

        await session_manager.submit_day_vote(connections[1], "r1", ids[0], ids[2])

        assert room.votes == {}
        assert connections[1].messages_of_type("error")[-1]["code"] == "player_not_found"

    async def test_ready_for_another_player_is_rejected(self, session_manager):
        connections, ids = await _join(session_manager, 3)

        await session_manager.set_ready(connections[1], "r1", ids[0], ready=True)

        assert session_manager.get_room("r1").players[ids[0]].ready is False

    async def test_old_connection_loses_control_after_reconnect(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        fresh = MockConnection("conn-1-new")
        await session_manager.reconnect(fresh, "r1", ids[0])
        connections[0].clear()

        await session_manager.chat(connections[0], "r1", ids[0], "still here?")
        await session_manager.chat(fresh, "r1", ids[0], "back")

        assert connections[0].messages_of_type("error")[0]["code"] == "player_not_found"
        assert [m["text"] for m in connections[1].messages_of_type("chat")] == ["back"]


class TestGameFlow:
    async def test_start_reveals_roles_then_night_begins(self, session_manager):
        connections, ids = await _join(session_manager, 3)

        await _start(session_manager, connections, ids)

        room = session_manager.get_room("r1")
        assert room.phase == GamePhase.NIGHT
        for connection in connections:
            assert len(connection.messages_of_type("role_assigned")) == 1
            assert len(connection.messages_of_type("night_begins")) == 1
            assert connection.messages_of_type("game_starting")[0]["player_count"] == 3

    async def test_full_night_and_day(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        await _start(session_manager, connections, ids)
        by_id = dict(zip(ids, connections, strict=True))
        mafia = _role_holder(session_manager, Role.MAFIA)
        detective = _role_holder(session_manager, Role.DETECTIVE)
        doctor = _role_holder(session_manager, Role.DOCTOR)

        await session_manager.submit_night_action(by_id[detective], "r1", detective, NightActionType.INVESTIGATE, mafia)
        (result,) = by_id[detective].messages_of_type("investigation_result")
        assert result["role"] == "mafia"
        assert by_id[mafia].messages_of_type("investigation_result") == []

        await session_manager.submit_night_action(by_id[doctor], "r1", doctor, NightActionType.SAVE, detective)
        await session_manager.submit_night_action(by_id[mafia], "r1", mafia, NightActionType.KILL, detective)

        room = session_manager.get_room("r1")
        assert room.phase == GamePhase.DAY
        assert room.players[detective].alive
        assert by_id[mafia].messages_of_type("day_begins")[0]["killed"] == []

        for voter in ids:
            await session_manager.submit_day_vote(by_id[voter], "r1", voter, mafia if voter != mafia else doctor)

        assert room.status == RoomStatus.FINISHED
        for connection in connections:
            assert connection.messages_of_type("game_over")[0]["winner"] == "villagers"
            assert len(connection.messages_of_type("role_reveal")[0]["players"]) == 3

    async def test_deferred_transition_for_removed_room_is_ignored(self):
        manager = SessionManager(RoomRegistry(rules=GameRules(role_reveal_seconds=0.05)), NotificationGateway())
        connections, ids = await _join(manager, 3)
        for connection, player_id in zip(connections, ids, strict=True):
            await manager.set_ready(connection, "r1", player_id, ready=True)
        await manager.start_game(connections[0], "r1", ids[0])
        assert manager.scheduler.pending_count == 1

        for connection, player_id in zip(connections, ids, strict=True):
            await manager.leave(connection, "r1", player_id)
        await asyncio.sleep(0.1)

        assert manager.room_count == 0
        assert manager.scheduler.pending_count == 0
        assert all(c.messages_of_type("night_begins") == [] for c in connections)

    async def test_transition_checks_registry_identity(self):
        manager = SessionManager(RoomRegistry(rules=GameRules(role_reveal_seconds=60)), NotificationGateway())
        connections, ids = await _join(manager, 3)
        await _start(manager, connections, ids)
        room = manager.get_room("r1")
        manager.registry.remove("r1")
        for connection in connections:
            connection.clear()

        await manager._handle_deferred(
            room,
            DeferredTransition(kind=DeferredKind.BEGIN_NIGHT, delay=0, phase_stamp=room.phase_stamp),
        )

        assert room.phase == GamePhase.ROLE_REVEAL
        assert all(c.sent_messages == [] for c in connections)
        await manager.shutdown()


class TestMembership:
    async def test_last_leave_deletes_room(self, session_manager):
        connections, ids = await _join(session_manager, 2)
        await session_manager.leave(connections[0], "r1", ids[0])
        assert connections[1].messages_of_type("host_changed")[0]["host_id"] == ids[1]

        await session_manager.leave(connections[1], "r1", ids[1])

        assert session_manager.room_count == 0

    async def test_disconnect_keeps_player_and_notifies_others(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        connections[1].clear()

        await session_manager.disconnect(connections[0])

        room = session_manager.get_room("r1")
        assert ids[0] in room.players
        assert room.host_id == ids[0]
        roster = connections[1].messages_of_type("roster")[-1]
        assert roster["players"][0]["connected"] is False
        assert not session_manager.gateway.is_connected("conn-1")

    async def test_reconnect_restores_delivery(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        await session_manager.disconnect(connections[0])
        fresh = MockConnection("conn-1-new")

        await session_manager.reconnect(fresh, "r1", ids[0])

        assert fresh.messages_of_type("reconnected")[0]["player_id"] == ids[0]
        await session_manager.chat(connections[1], "r1", ids[1], "welcome back")
        assert fresh.messages_of_type("chat")[0]["text"] == "welcome back"

    async def test_reconnect_unknown_player(self, session_manager):
        await _join(session_manager, 1)
        stranger = MockConnection("x")
        await session_manager.reconnect(stranger, "r1", "ghost")
        assert stranger.messages_of_type("error")[0]["code"] == "player_not_found"


class TestMisc:
    async def test_ping(self, mock_connection, session_manager):
        await session_manager.handle_ping(mock_connection)
        assert mock_connection.sent_messages == [{"type": "pong"}]

    async def test_list_rooms(self, session_manager):
        await _join(session_manager, 2)
        (info,) = session_manager.list_rooms()
        assert info.room_id == "R1"
        assert info.host_name == "P1"
        assert info.players == ["P1", "P2"]

    async def test_sweep_notifies_survivors(self, session_manager):
        connections, ids = await _join(session_manager, 3)
        room = session_manager.get_room("r1")
        await session_manager.disconnect(connections[0])
        room.players[ids[0]].last_active_at -= 1000
        connections[1].clear()

        report = await session_manager.sweep(now=room.last_active_at + 10)

        assert report.pruned_players == {"R1": [ids[0]]}
        assert connections[1].messages_of_type("host_changed")[0]["host_id"] == ids[1]

    async def test_sweep_cancels_transitions_of_removed_rooms(self):
        manager = SessionManager(RoomRegistry(rules=GameRules(role_reveal_seconds=60)), NotificationGateway())
        connections, ids = await _join(manager, 3)
        await _start(manager, connections, ids)
        room = manager.get_room("r1")

        await manager.sweep(now=room.last_active_at + 1000)

        assert manager.room_count == 0
        assert manager.scheduler.pending_count == 0

    async def test_shutdown_cancels_everything(self):
        manager = SessionManager(RoomRegistry(rules=GameRules(role_reveal_seconds=60)), NotificationGateway())
        connections, ids = await _join(manager, 3)
        await _start(manager, connections, ids)

        await manager.shutdown()

        assert manager.scheduler.pending_count == 0
