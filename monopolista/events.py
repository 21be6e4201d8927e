"""
Wire contracts: inbound intents (validated with pydantic) and outbound
events (plain dataclasses, one per event name).

The engine never talks to the transport. It returns an ordered list of
outbound events and the broadcaster emits them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Rejections
# ---------------------------

ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
ROOM_FULL = "ROOM_FULL"
NICKNAME_TAKEN = "NICKNAME_TAKEN"
GAME_ALREADY_STARTED = "GAME_ALREADY_STARTED"
NOT_PLAYING = "NOT_PLAYING"
ALREADY_PLAYING = "ALREADY_PLAYING"
NOT_HOST = "NOT_HOST"
NOT_READY = "NOT_READY"
NOT_IN_ROOM = "NOT_IN_ROOM"
GAME_OVER = "GAME_OVER"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
WRONG_PHASE = "WRONG_PHASE"
NO_PENDING_ACTION = "NO_PENDING_ACTION"
BANKRUPT = "BANKRUPT"
DISCONNECTED = "DISCONNECTED"
NO_MONEY = "NO_MONEY"
ALREADY_OWNED = "ALREADY_OWNED"
NOT_BUYABLE = "NOT_BUYABLE"
BAD_REQUEST = "BAD_REQUEST"
TILE_NOT_FOUND = "TILE_NOT_FOUND"
NOT_PROPERTY = "NOT_PROPERTY"
NOT_OWNER = "NOT_OWNER"
NO_MONOPOLY = "NO_MONOPOLY"
ALREADY_HOTEL = "ALREADY_HOTEL"


class IntentRejected(ValueError):
    """An intent failed validation. Nothing was mutated."""

    def __init__(self, code: str, detail: Optional[str] = None):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail

    def to_response(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code}


# ---------------------------
# Inbound intents
# ---------------------------

class Intent(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class CreateRoom(Intent):
    nickname: str = Field(min_length=1, max_length=24)


class RoomIntent(Intent):
    roomCode: str = Field(min_length=1, max_length=12)

    @field_validator("roomCode")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class JoinRoom(RoomIntent):
    nickname: str = Field(min_length=1, max_length=24)


class SetReady(RoomIntent):
    ready: bool = True


class JailChoice(RoomIntent):
    pay: bool


class UpgradeTile(RoomIntent):
    tileId: int


class SendMessage(RoomIntent):
    nickname: Optional[str] = None
    message: str = Field(min_length=1, max_length=500)


# Older clients used snake_case intent names; they map onto the canonical handlers here.
LEGACY_INTENT_ALIASES: Dict[str, str] = {
    "create_room": "createRoom",
    "join_room": "joinRoom",
    "set_ready": "setReady",
    "start_game": "startGame",
    "restart_game": "restartGame",
    "send_message": "sendMessage",
    "roll_dice": "rollDice",
    "buy_tile": "buyTile",
    "skip_buy": "skipBuy",
    "jail_choice": "jailChoice",
    "card_ack": "cardAck",
    "upgrade_tile": "upgradeTile",
}


# ---------------------------
# Outbound events
# ---------------------------

class Event:
    name: ClassVar[str] = ""
    # Player-directed events carry the target in `player_id`
    directed: ClassVar[bool] = False

    def payload(self) -> Any:
        raise NotImplementedError


@dataclass
class RoomUpdate(Event):
    roster: Dict[str, Any]

    name: ClassVar[str] = "roomUpdate"

    def payload(self) -> Any:
        return self.roster


@dataclass
class GameState(Event):
    state: Dict[str, Any]

    name: ClassVar[str] = "gameState"

    def payload(self) -> Any:
        return self.state


@dataclass
class DiceRolled(Event):
    player_id: str
    nickname: str
    dice1: int
    dice2: int
    new_position: int
    tile: Dict[str, Any]

    name: ClassVar[str] = "diceRolled"

    def payload(self) -> Any:
        return {
            "playerId": self.player_id,
            "nickname": self.nickname,
            "dice1": self.dice1,
            "dice2": self.dice2,
            "steps": self.dice1 + self.dice2,
            "newPosition": self.new_position,
            "tile": self.tile,
        }


@dataclass
class PlayerMovePath(Event):
    player_id: str
    path: List[int]
    reason: str  # "dice" | "card" | "jail"

    name: ClassVar[str] = "playerMovePath"

    def payload(self) -> Any:
        return {"playerId": self.player_id, "path": list(self.path), "reason": self.reason}


@dataclass
class GameLog(Event):
    entry: Dict[str, Any]

    name: ClassVar[str] = "gameLogEvent"

    def payload(self) -> Any:
        return dict(self.entry)


@dataclass
class ChatMessage(Event):
    nickname: str
    message: str
    timestamp: str

    name: ClassVar[str] = "newMessage"

    def payload(self) -> Any:
        return {"nickname": self.nickname, "message": self.message, "timestamp": self.timestamp}


@dataclass
class GameReset(Event):
    name: ClassVar[str] = "gameReset"

    def payload(self) -> Any:
        return {}


@dataclass
class Toast(Event):
    player_id: str
    type: str  # "ok" | "err"
    text: str

    name: ClassVar[str] = "toast"
    directed: ClassVar[bool] = True

    def payload(self) -> Any:
        return {"type": self.type, "text": self.text}


@dataclass
class PaymentPrompt(Event):
    player_id: str
    kind: str  # "rent" | "tax" | "card" | "jail"
    amount: int
    label: str
    to_nickname: Optional[str] = None
    tile_name: Optional[str] = None

    name: ClassVar[str] = "paymentPrompt"
    directed: ClassVar[bool] = True

    def payload(self) -> Any:
        return {
            "type": self.kind,
            "amount": self.amount,
            "label": self.label,
            "toNickname": self.to_nickname,
            "tileName": self.tile_name,
        }


@dataclass
class CardDrawn(Event):
    player_id: str
    deck_type: str
    deck_label: str
    text: str
    nickname: str
    color_key: str

    name: ClassVar[str] = "cardDrawn"
    directed: ClassVar[bool] = True

    def payload(self) -> Any:
        return {
            "playerId": self.player_id,
            "deckType": self.deck_type,
            "deckLabel": self.deck_label,
            "text": self.text,
            "nickname": self.nickname,
            "colorKey": self.color_key,
        }


@dataclass
class JailPrompt(Event):
    player_id: str
    fine: int

    name: ClassVar[str] = "jailPrompt"
    directed: ClassVar[bool] = True

    def payload(self) -> Any:
        return {"playerId": self.player_id, "fine": self.fine}


@dataclass
class LogHistory(Event):
    player_id: str
    entries: List[Dict[str, Any]] = field(default_factory=list)

    name: ClassVar[str] = "logHistory"
    directed: ClassVar[bool] = True

    def payload(self) -> Any:
        return [dict(e) for e in self.entries]
