"""Run delayed phase transitions on the event loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mafia.logic.outcome import DeferredTransition
    from mafia.logic.room import GameRoom

logger = logging.getLogger(__name__)

# Callback type: (room, transition) -> Awaitable[None]
TransitionCallback = Callable[["GameRoom", "DeferredTransition"], Awaitable[None]]


class PhaseScheduler:
    """Schedule delayed transitions as asyncio tasks, grouped by room id.

    The scheduler does not decide whether a transition is still valid; the
    callback receives the room object captured at scheduling time and is
    expected to re-check it against the registry and the phase stamp.
    """

    def __init__(self, on_fire: TransitionCallback) -> None:
        self._on_fire = on_fire
        self._tasks: dict[str, set[asyncio.Task[None]]] = {}

    @property
    def pending_count(self) -> int:
        return sum(len(tasks) for tasks in self._tasks.values())

    def pending_for(self, room_id: str) -> int:
        return len(self._tasks.get(room_id, ()))

    def schedule(self, room: GameRoom, transition: DeferredTransition) -> None:
        task = asyncio.create_task(self._run(room, transition))
        tasks = self._tasks.setdefault(room.room_id, set())
        tasks.add(task)
        task.add_done_callback(lambda t: self._discard(room.room_id, t))

    def _discard(self, room_id: str, task: asyncio.Task[None]) -> None:
        tasks = self._tasks.get(room_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._tasks[room_id]

    async def _run(self, room: GameRoom, transition: DeferredTransition) -> None:
        try:
            await asyncio.sleep(transition.delay)
            await self._on_fire(room, transition)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("deferred transition failed for room %s", room.room_id)

    def cancel_room(self, room_id: str) -> None:
        """Cancel every pending transition for a room."""
        for task in list(self._tasks.pop(room_id, ())):
            if not task.done():
                task.cancel()

    async def cancel_all(self) -> None:
        tasks = [task for room_tasks in self._tasks.values() for task in room_tasks]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
