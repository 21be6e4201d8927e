from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from .models import Room, PLAYING


ExpiryCallback = Callable[[str, int], Awaitable[None]]


class TurnClock:
    """One deadline task per room for whoever the room is waiting on.

    The deadline is `turn_timeout` for a connected actor and
    `disconnect_grace` for a disconnected one. Rescheduling replaces the
    previous task; the callback receives the room serial captured at
    scheduling time so it can tell whether anything happened since.
    """

    def __init__(self, on_expire: ExpiryCallback, turn_timeout: float = 60.0, disconnect_grace: float = 90.0):
        self.on_expire = on_expire
        self.turn_timeout = turn_timeout
        self.disconnect_grace = disconnect_grace
        self.tasks: Dict[str, asyncio.Task] = {}

    def delay_for(self, room: Room) -> Optional[float]:
        if room.status != PLAYING or room.game_over or not room.players:
            return None
        # Nobody left to play; the room is left to age out for the idle sweeper
        if room.all_disconnected():
            return None
        actor = room.player(room.pending.player_id) if room.pending is not None else room.current_player
        if actor is None or actor.is_bankrupt:
            return None
        return self.turn_timeout if actor.connected else self.disconnect_grace

    def schedule(self, room: Room) -> None:
        self.cancel(room.code)
        delay = self.delay_for(room)
        if delay is None or delay <= 0:
            return
        self.tasks[room.code] = asyncio.create_task(self._wait(room.code, room.serial, delay))

    async def _wait(self, code: str, serial: int, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        if self.tasks.get(code) is asyncio.current_task():
            self.tasks.pop(code, None)
        await self.on_expire(code, serial)

    def cancel(self, code: str) -> None:
        task = self.tasks.pop(code, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for code in list(self.tasks):
            self.cancel(code)
