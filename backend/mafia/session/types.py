"""
Pydantic models for the session layer.
"""

from pydantic import BaseModel

from mafia.logic.enums import RoomStatus


class RoomInfo(BaseModel):
    """Room information for the room listing."""

    room_id: str
    status: RoomStatus
    player_count: int
    max_players: int
    host_name: str | None
    players: list[str]
