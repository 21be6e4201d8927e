"""
Reconnect continuity: move a returning player onto their new connection id,
and flag (rather than remove) players whose connection drops mid-game.
"""

from __future__ import annotations

from typing import Optional

from .models import Room, Player, now_ms


def rebind_player(room: Room, player: Player, new_id: str) -> str:
    """Swap `player`'s identifier for `new_id` everywhere the room refers to it.

    Balance, position, holdings and jail state are untouched; only the
    references move. Returns the old identifier.
    """
    old_id = player.id
    if old_id == new_id:
        player.connected = True
        player.disconnected_at = None
        return old_id

    player.id = new_id
    if room.host_id == old_id:
        room.host_id = new_id
    if room.winner_id == old_id:
        room.winner_id = new_id
    if old_id in room.ready_by_id:
        room.ready_by_id[new_id] = room.ready_by_id.pop(old_id)
    for tile in room.board:
        if tile.ownerId == old_id:
            tile.ownerId = new_id
    if room.pending is not None and room.pending.player_id == old_id:
        room.pending.player_id = new_id

    player.connected = True
    player.disconnected_at = None
    room.touch()
    return old_id


def mark_disconnected(room: Room, player: Player, at: Optional[int] = None) -> None:
    player.connected = False
    player.disconnected_at = at if at is not None else now_ms()
    room.touch()


def fully_disconnected_since(room: Room) -> Optional[int]:
    """Timestamp since which nobody in the room has been connected, or None.

    Uses the later of the last disconnect and the room's last activity.
    """
    if not room.all_disconnected():
        return None
    latest = max((p.disconnected_at or 0) for p in room.players)
    return max(latest, room.last_activity)
