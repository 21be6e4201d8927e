from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, ClassVar

from .board import Tile, LOG_CAP, STARTING_BALANCE, create_room_board
from .cards import Card, Deck


# ---------------------------
# Status / phase values
# ---------------------------

WAITING = "waiting"
PLAYING = "playing"

AWAITING_ROLL = "awaiting_roll"
AWAITING_BUY = "awaiting_buy"
AWAITING_JAIL_CHOICE = "awaiting_jail_choice"
AWAITING_CARD_ACK = "awaiting_card_ack"


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------
# Players
# ---------------------------

@dataclass
class Player:
    id: str
    nickname: str
    color_key: str
    position: int = 0
    balance: int = STARTING_BALANCE
    properties: List[int] = field(default_factory=list)
    is_bankrupt: bool = False
    in_jail: bool = False
    jail_turns: int = 0
    connected: bool = True
    disconnected_at: Optional[int] = None

    @property
    def can_act(self) -> bool:
        return self.connected and not self.is_bankrupt

    def reset_for_game(self) -> None:
        self.position = 0
        self.balance = STARTING_BALANCE
        self.properties = []
        self.is_bankrupt = False
        self.in_jail = False
        self.jail_turns = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "colorKey": self.color_key,
            "position": self.position,
            "balance": self.balance,
            "properties": list(self.properties),
            "isBankrupt": self.is_bankrupt,
            "inJail": self.in_jail,
            "jailTurns": self.jail_turns,
            "isDisconnected": not self.connected,
            "disconnectedAt": self.disconnected_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(
            id=str(data["id"]),
            nickname=str(data["nickname"]),
            color_key=str(data.get("colorKey") or "blue"),
            position=int(data.get("position") or 0),
            balance=int(data.get("balance") or 0),
            properties=[int(x) for x in data.get("properties") or []],
            is_bankrupt=bool(data.get("isBankrupt")),
            in_jail=bool(data.get("inJail")),
            jail_turns=int(data.get("jailTurns") or 0),
            connected=not bool(data.get("isDisconnected")),
            disconnected_at=data.get("disconnectedAt"),
        )


# ---------------------------
# Pending actions
# ---------------------------

@dataclass
class PendingAction:
    player_id: str

    type: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "playerId": self.player_id}


@dataclass
class BuyPending(PendingAction):
    tile_id: int = 0

    type: ClassVar[str] = "buy"

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "tileId": self.tile_id}


@dataclass
class JailPending(PendingAction):
    fine: int = 0

    type: ClassVar[str] = "jail"

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "fine": self.fine}


@dataclass
class CardPending(PendingAction):
    deck_type: str = "chance"
    deck_label: str = ""
    card: Optional[Card] = None
    dice_sum: int = 0

    type: ClassVar[str] = "card"

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "deckType": self.deck_type,
            "deckLabel": self.deck_label,
            "card": self.card.to_dict() if self.card else None,
            "diceSum": self.dice_sum,
        }


def pending_from_dict(data: Optional[Dict[str, Any]]) -> Optional[PendingAction]:
    if not data:
        return None
    kind = data.get("type")
    pid = str(data.get("playerId"))
    if kind == BuyPending.type:
        return BuyPending(player_id=pid, tile_id=int(data.get("tileId") or 0))
    if kind == JailPending.type:
        return JailPending(player_id=pid, fine=int(data.get("fine") or 0))
    if kind == CardPending.type:
        card = data.get("card")
        return CardPending(
            player_id=pid,
            deck_type=str(data.get("deckType") or "chance"),
            deck_label=str(data.get("deckLabel") or ""),
            card=Card.from_dict(card) if card else None,
            dice_sum=int(data.get("diceSum") or 0),
        )
    raise ValueError(f"unknown pending action type: {kind!r}")


# ---------------------------
# Room aggregate
# ---------------------------

@dataclass
class Room:
    code: str
    host_id: str
    status: str = WAITING
    ready_by_id: Dict[str, bool] = field(default_factory=dict)
    players: List[Player] = field(default_factory=list)
    board: List[Tile] = field(default_factory=create_room_board)
    current_player_index: int = 0
    phase: str = AWAITING_ROLL
    pending: Optional[PendingAction] = None
    game_over: bool = False
    winner_id: Optional[str] = None
    decks: Dict[str, Deck] = field(default_factory=dict)
    log: List[Dict[str, Any]] = field(default_factory=list)
    last_activity: int = field(default_factory=now_ms)
    # Bumped on every mutation; lets a stale turn deadline recognise it was superseded
    serial: int = 0

    def touch(self) -> None:
        self.serial += 1
        self.last_activity = now_ms()

    def player(self, player_id: Optional[str]) -> Optional[Player]:
        if not player_id:
            return None
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def player_by_nickname(self, nickname: str) -> Optional[Player]:
        for p in self.players:
            if p.nickname == nickname:
                return p
        return None

    @property
    def current_player(self) -> Optional[Player]:
        if not self.players:
            return None
        if not 0 <= self.current_player_index < len(self.players):
            return None
        return self.players[self.current_player_index]

    def active_players(self) -> List[Player]:
        return [p for p in self.players if not p.is_bankrupt]

    def all_disconnected(self) -> bool:
        return bool(self.players) and all(not p.connected for p in self.players)

    def add_log(self, text: str) -> Dict[str, Any]:
        entry = {"ts": now_ms(), "text": text}
        self.log.append(entry)
        if len(self.log) > LOG_CAP:
            del self.log[:len(self.log) - LOG_CAP]
        return entry

    # ---- views ----

    def roster(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "hostId": self.host_id,
            "readyById": dict(self.ready_by_id),
            "players": [{"id": p.id, "nickname": p.nickname, "colorKey": p.color_key} for p in self.players],
        }

    def public_state(self) -> Dict[str, Any]:
        current = self.current_player
        winner = self.player(self.winner_id)
        return {
            "roomCode": self.code,
            "status": self.status,
            "phase": self.phase,
            "pending": self.pending.to_dict() if self.pending else None,
            "gameOver": self.game_over,
            "winner": {"id": winner.id, "nickname": winner.nickname, "colorKey": winner.color_key} if winner else None,
            "players": [p.to_dict() for p in self.players],
            "currentPlayerId": current.id if current else None,
            "board": [t.to_dict() for t in self.board],
        }

    # ---- persistence ----

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "hostId": self.host_id,
            "status": self.status,
            "readyById": dict(self.ready_by_id),
            "players": [p.to_dict() for p in self.players],
            "board": [t.to_dict() for t in self.board],
            "currentPlayerIndex": self.current_player_index,
            "phase": self.phase,
            "pending": self.pending.to_dict() if self.pending else None,
            "gameOver": self.game_over,
            "winnerId": self.winner_id,
            "decks": {k: d.to_dict() for k, d in self.decks.items()},
            "log": list(self.log),
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "Room":
        return cls(
            code=str(data["code"]),
            host_id=str(data["hostId"]),
            status=str(data.get("status") or WAITING),
            ready_by_id={str(k): bool(v) for k, v in (data.get("readyById") or {}).items()},
            players=[Player.from_dict(p) for p in data.get("players") or []],
            board=[Tile.from_dict(t) for t in data.get("board") or []] or create_room_board(),
            current_player_index=int(data.get("currentPlayerIndex") or 0),
            phase=str(data.get("phase") or AWAITING_ROLL),
            pending=pending_from_dict(data.get("pending")),
            game_over=bool(data.get("gameOver")),
            winner_id=data.get("winnerId"),
            decks={k: Deck.from_dict(d) for k, d in (data.get("decks") or {}).items()},
            log=list(data.get("log") or [])[-LOG_CAP:],
            last_activity=int(data.get("lastActivity") or now_ms()),
        )
