from __future__ import annotations

import random
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any


# Card effect kinds
MONEY = "money"
MOVE = "move"
MOVE_TO = "move_to"
JAIL = "jail"

DECK_LABELS = {"chance": "Chance", "community": "Community Chest"}


@dataclass(frozen=True)
class Card:
    id: str
    text: str
    kind: str
    amount: int = 0  # money delta for MONEY
    steps: int = 0  # signed relative move for MOVE
    target: Optional[int] = None  # tile id for MOVE_TO

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            id=str(data["id"]),
            text=str(data.get("text") or ""),
            kind=str(data["kind"]),
            amount=int(data.get("amount") or 0),
            steps=int(data.get("steps") or 0),
            target=data.get("target"),
        )


CHANCE_CARDS: List[Card] = [
    Card("ch1", "Advance to START.", MOVE_TO, target=0),
    Card("ch2", "Advance to Plac Wilsona.", MOVE_TO, target=24),
    Card("ch3", "Take a trip to Dworzec Zachodni.", MOVE_TO, target=5),
    Card("ch4", "Advance to Aleje Ujazdowskie.", MOVE_TO, target=39),
    Card("ch5", "Go back 3 spaces.", MOVE, steps=-3),
    Card("ch6", "Move forward 2 spaces.", MOVE, steps=2),
    Card("ch7", "Go to Jail. Do not pass START.", JAIL),
    Card("ch8", "Bank pays you a dividend of 50.", MONEY, amount=50),
    Card("ch9", "Speeding fine: pay 15.", MONEY, amount=-15),
    Card("ch10", "Your building loan matures. Collect 150.", MONEY, amount=150),
    Card("ch11", "Pay school fees of 100.", MONEY, amount=-100),
]

COMMUNITY_CARDS: List[Card] = [
    Card("cc1", "Advance to START.", MOVE_TO, target=0),
    Card("cc2", "Bank error in your favour. Collect 200.", MONEY, amount=200),
    Card("cc3", "Doctor's fee. Pay 50.", MONEY, amount=-50),
    Card("cc4", "From sale of stock you get 50.", MONEY, amount=50),
    Card("cc5", "Go to Jail. Do not pass START.", JAIL),
    Card("cc6", "Holiday fund matures. Receive 100.", MONEY, amount=100),
    Card("cc7", "Income tax refund. Collect 20.", MONEY, amount=20),
    Card("cc8", "Hospital fees. Pay 100.", MONEY, amount=-100),
    Card("cc9", "You inherit 100.", MONEY, amount=100),
    Card("cc10", "Go back 2 spaces.", MOVE, steps=-2),
    Card("cc11", "Advance to Dworzec Centralny.", MOVE_TO, target=35),
]

CATALOGS: Dict[str, List[Card]] = {"chance": CHANCE_CARDS, "community": COMMUNITY_CARDS}


@dataclass
class Deck:
    """Shuffled draw pile with a replay cursor.

    The order is fixed at shuffle time. When the cursor runs off the end it
    wraps to zero and the same order is replayed; nothing is reshuffled
    until the next game start.
    """

    kind: str
    cards: List[Card] = field(default_factory=list)
    cursor: int = 0

    @classmethod
    def shuffled(cls, kind: str, rng: Optional[random.Random] = None, catalog: Optional[List[Card]] = None) -> "Deck":
        cards = list(catalog if catalog is not None else CATALOGS[kind])
        (rng or random).shuffle(cards)
        return cls(kind=kind, cards=cards, cursor=0)

    @property
    def label(self) -> str:
        return DECK_LABELS.get(self.kind, self.kind)

    def draw(self) -> Card:
        if not self.cards:
            raise ValueError(f"deck {self.kind} is empty")
        if self.cursor >= len(self.cards):
            self.cursor = 0
        card = self.cards[self.cursor]
        self.cursor += 1
        if self.cursor >= len(self.cards):
            self.cursor = 0
        return card

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "cards": [c.to_dict() for c in self.cards], "cursor": self.cursor}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deck":
        return cls(
            kind=str(data["kind"]),
            cards=[Card.from_dict(c) for c in data.get("cards") or []],
            cursor=int(data.get("cursor") or 0),
        )
