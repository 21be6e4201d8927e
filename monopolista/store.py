"""
Room registry. One instance per server process (or per test), handed to
the handlers; it owns room creation, membership and eviction.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from . import events as ev
from .board import MAX_PLAYERS, PLAYER_COLORS
from .engine import TurnEngine
from .events import Event, IntentRejected
from .models import Room, Player, WAITING, PLAYING, now_ms
from .session import rebind_player, mark_disconnected, fully_disconnected_since

if TYPE_CHECKING:
    from .persistence import PersistenceBridge


ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I/O/0/1 for clarity
ROOM_CODE_LENGTH = 5


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def pick_next_color(room: Room) -> str:
    used = {p.color_key for p in room.players}
    return next((c for c in PLAYER_COLORS if c not in used), PLAYER_COLORS[0])


@dataclass
class JoinResult:
    room: Room
    player: Player
    rejoined: bool = False
    old_id: Optional[str] = None
    events: List[Event] = field(default_factory=list)


@dataclass
class LeaveResult:
    room: Room
    player: Player
    destroyed: bool = False
    events: List[Event] = field(default_factory=list)


class RoomStore:

    def __init__(self, engine: Optional[TurnEngine] = None, persistence: Optional["PersistenceBridge"] = None):
        self.engine = engine or TurnEngine()
        self.persistence = persistence
        self.rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code: str) -> bool:
        return code in self.rooms

    # ---------------------------
    # Lookup
    # ---------------------------

    def get(self, code: Optional[str]) -> Optional[Room]:
        if not code:
            return None
        code = str(code).upper()
        room = self.rooms.get(code)
        if room is None and self.persistence is not None:
            room = self._rehydrate(code)
        return room

    def require(self, code: Optional[str]) -> Room:
        room = self.get(code)
        if room is None:
            raise IntentRejected(ev.ROOM_NOT_FOUND)
        return room

    def _rehydrate(self, code: str) -> Optional[Room]:
        snapshot = self.persistence.load(code)
        if not snapshot:
            return None
        try:
            room = Room.from_snapshot(snapshot)
        except (KeyError, TypeError, ValueError) as e:
            print(f"[PERSIST_ERROR] Bad snapshot for {code}: {e}", flush=True)
            return None
        if room.status != PLAYING:
            # A lobby has no progress worth restoring and its members are gone
            self.persistence.delete(code)
            return None
        # Old connection ids are meaningless after a restart; everyone has to rejoin
        stamp = now_ms()
        for p in room.players:
            p.connected = False
            p.disconnected_at = p.disconnected_at or stamp
        self.rooms[room.code] = room
        print(f"[ROOM] Restored {room.code} from snapshot ({room.status}, {len(room.players)} players)", flush=True)
        return room

    def rooms_for(self, conn_id: str) -> List[Room]:
        return [r for r in self.rooms.values() if r.player(conn_id) is not None]

    # ---------------------------
    # Lifecycle
    # ---------------------------

    def allocate_code(self) -> str:
        code = generate_room_code()
        while code in self.rooms:
            code = generate_room_code()
        return code

    def create_room(self, nickname: str, conn_id: str) -> Tuple[Room, List[Event]]:
        room = Room(code=self.allocate_code(), host_id=conn_id)
        room.players.append(Player(id=conn_id, nickname=nickname, color_key=pick_next_color(room)))
        room.ready_by_id[conn_id] = True
        self.rooms[room.code] = room
        out: List[Event] = [ev.RoomUpdate(room.roster())]
        out.append(ev.GameLog(room.add_log(f"Room created. Host: {nickname}.")))
        print(f"[ROOM] {room.code} created by {nickname}", flush=True)
        return room, out

    def join_room(self, code: str, nickname: str, conn_id: str) -> JoinResult:
        room = self.require(code)

        if room.status == PLAYING:
            existing = room.player_by_nickname(nickname)
            if existing is None:
                raise IntentRejected(ev.GAME_ALREADY_STARTED)
            seated = room.player(conn_id)
            if seated is not None and seated is not existing:
                # One connection, one seat
                raise IntentRejected(ev.NICKNAME_TAKEN)
            old_id = rebind_player(room, existing, conn_id)
            res = JoinResult(room=room, player=existing, rejoined=True, old_id=old_id)
            res.events.append(ev.GameLog(room.add_log(f"{nickname} reconnected.")))
            res.events.append(ev.LogHistory(player_id=conn_id, entries=list(room.log)))
            res.events.append(ev.RoomUpdate(room.roster()))
            print(f"[REJOIN] {nickname} rejoined {room.code} ({old_id[:6]} -> {conn_id[:6]})", flush=True)
            return res

        same = room.player(conn_id)
        if same is not None:
            return JoinResult(room=room, player=same)
        if len(room.players) >= MAX_PLAYERS:
            raise IntentRejected(ev.ROOM_FULL)
        if room.player_by_nickname(nickname) is not None:
            raise IntentRejected(ev.NICKNAME_TAKEN)

        player = Player(id=conn_id, nickname=nickname, color_key=pick_next_color(room))
        room.players.append(player)
        room.ready_by_id[conn_id] = False
        room.touch()
        res = JoinResult(room=room, player=player)
        res.events.append(ev.RoomUpdate(room.roster()))
        res.events.append(ev.GameLog(room.add_log(f"{nickname} joined the room.")))
        return res

    def set_ready(self, code: str, conn_id: str, ready: bool) -> Tuple[Room, List[Event]]:
        room = self.require(code)
        if room.status != WAITING:
            raise IntentRejected(ev.ALREADY_PLAYING)
        player = room.player(conn_id)
        if player is None:
            raise IntentRejected(ev.NOT_IN_ROOM)
        room.ready_by_id[conn_id] = bool(ready)
        room.touch()
        state = "ready" if ready else "not ready"
        out: List[Event] = [ev.RoomUpdate(room.roster()), ev.GameLog(room.add_log(f"{player.nickname} is {state}."))]
        return room, out

    def disconnect(self, conn_id: str) -> List[LeaveResult]:
        results: List[LeaveResult] = []
        for room in self.rooms_for(conn_id):
            player = room.player(conn_id)
            if room.status == WAITING:
                results.append(self._leave_lobby(room, player))
            else:
                mark_disconnected(room, player)
                res = LeaveResult(room=room, player=player)
                res.events.append(ev.GameLog(room.add_log(f"{player.nickname} disconnected.")))
                res.events.append(ev.RoomUpdate(room.roster()))
                results.append(res)
                print(f"[DISCONNECT] {player.nickname} dropped from {room.code} (seat kept)", flush=True)
        return results

    def _leave_lobby(self, room: Room, player: Player) -> LeaveResult:
        room.players.remove(player)
        room.ready_by_id.pop(player.id, None)
        res = LeaveResult(room=room, player=player)
        if not room.players:
            self.remove(room.code)
            res.destroyed = True
            print(f"[ROOM] {room.code} closed (empty)", flush=True)
            return res

        res.events.append(ev.GameLog(room.add_log(f"{player.nickname} left the room.")))
        if room.host_id == player.id:
            room.host_id = room.players[0].id
            room.ready_by_id[room.host_id] = True
            res.events.append(ev.GameLog(room.add_log(f"New host: {room.players[0].nickname}.")))
        if room.current_player_index >= len(room.players):
            room.current_player_index = 0
        room.touch()
        res.events.append(ev.RoomUpdate(room.roster()))
        return res

    def remove(self, code: str) -> Optional[Room]:
        room = self.rooms.pop(code, None)
        if self.persistence is not None:
            self.persistence.delete(code)
        return room

    # ---------------------------
    # Eviction support
    # ---------------------------

    def idle_rooms(self, now: int, ttl_ms: int) -> List[str]:
        """Codes of rooms where nobody is connected and nothing happened for `ttl_ms`."""
        idle: List[str] = []
        for code, room in self.rooms.items():
            since = fully_disconnected_since(room)
            if since is not None and now - since >= ttl_ms:
                idle.append(code)
        return idle
