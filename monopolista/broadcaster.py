from __future__ import annotations

from typing import Any, Iterable

from .events import Event, GameState
from .models import Room, PLAYING


class Broadcaster:
    """The only thing that pushes to clients.

    Events go out in the order the engine produced them; room-wide ones to
    the room's Socket.IO group, directed ones to the player's own sid. A
    full snapshot closes the batch once the mutation is complete.
    """

    def __init__(self, sio: Any):
        self.sio = sio

    async def emit(self, room: Room, events: Iterable[Event], snapshot: bool = True) -> None:
        for e in events:
            if e.directed:
                await self.sio.emit(e.name, e.payload(), to=e.player_id)
            else:
                await self.sio.emit(e.name, e.payload(), room=room.code)
        if snapshot and room.status == PLAYING:
            state = GameState(room.public_state())
            await self.sio.emit(state.name, state.payload(), room=room.code)

    async def send_state(self, room: Room, sid: str) -> None:
        state = GameState(room.public_state())
        await self.sio.emit(state.name, state.payload(), to=sid)
