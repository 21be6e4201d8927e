from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any


# ---------------------------
# Game constants
# ---------------------------

STARTING_BALANCE = 1500
START_BONUS = 200
JAIL_FINE = 50
JAIL_TILE = 10
JAIL_TERM = 1
MAX_PLAYERS = 6
MIN_PLAYERS = 2
LOG_CAP = 200
MAX_HOUSES = 4
HOTEL_RENT_MULTIPLIER = 6

PLAYER_COLORS = ["blue", "yellow", "red", "green", "pink", "orange"]

BUYABLE_KINDS = {"property", "station", "utility"}


@dataclass
class Tile:
    id: int
    type: str
    name: str
    price: Optional[int] = None
    group: Optional[str] = None
    setSize: Optional[int] = None
    rentLevels: Optional[List[int]] = None
    rent: Optional[int] = None  # flat base rent for stations
    amount: Optional[int] = None  # tax amount
    ownerId: Optional[str] = None
    houses: int = 0
    hasHotel: bool = False

    @property
    def buyable(self) -> bool:
        return self.type in BUYABLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        # Drop kind-specific fields that don't apply so the wire shape stays compact
        return {k: v for k, v in asdict(self).items() if v is not None or k == "ownerId"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tile":
        known = {f for f in cls.__dataclass_fields__}
        kwargs = {k: v for k, v in data.items() if k in known}
        if kwargs.get("rentLevels") is not None:
            kwargs["rentLevels"] = list(kwargs["rentLevels"])
        return cls(**kwargs)


# ---------------------------
# Board template (Warsaw)
# ---------------------------

def _prop(i: int, name: str, price: int, group: str, set_size: int, levels: List[int]) -> Tile:
    return Tile(id=i, type="property", name=name, price=price, group=group, setSize=set_size, rentLevels=levels)


def _station(i: int, name: str) -> Tile:
    return Tile(id=i, type="station", name=name, price=200, rent=25)


BOARD_TEMPLATE: List[Tile] = [
    Tile(id=0, type="start", name="START"),
    _prop(1, "Konopacka", 60, "brown", 2, [4, 8]),
    Tile(id=2, type="chest", name="Community Chest"),
    _prop(3, "Stalowa", 60, "brown", 2, [4, 8]),
    Tile(id=4, type="tax", name="Income Tax", amount=200),
    _station(5, "Dworzec Zachodni"),

    _prop(6, "Radzyminska", 100, "lightblue", 3, [6, 12, 18]),
    Tile(id=7, type="random", name="Chance"),
    _prop(8, "Jagiellonska", 100, "lightblue", 3, [6, 12, 18]),
    _prop(9, "Targowa", 120, "lightblue", 3, [8, 16, 24]),

    Tile(id=10, type="jail", name="Jail / Just Visiting"),

    _prop(11, "Plowiecka", 140, "pink", 3, [10, 20, 30]),
    Tile(id=12, type="utility", name="Power Station", price=150),
    _prop(13, "Marsa", 140, "pink", 3, [10, 20, 30]),
    _prop(14, "Grochowska", 160, "pink", 3, [12, 24, 36]),
    _station(15, "Dworzec Gdanski"),

    _prop(16, "Obozowa", 180, "orange", 3, [14, 28, 42]),
    Tile(id=17, type="chest", name="Community Chest"),
    _prop(18, "Gorczewska", 180, "orange", 3, [14, 28, 42]),
    _prop(19, "Wolska", 200, "orange", 3, [16, 32, 48]),

    Tile(id=20, type="parking", name="Free Parking"),

    _prop(21, "Mickiewicza", 220, "red", 3, [18, 36, 54]),
    Tile(id=22, type="random", name="Chance"),
    _prop(23, "Slowackiego", 220, "red", 3, [18, 36, 54]),
    _prop(24, "Plac Wilsona", 240, "red", 3, [20, 40, 60]),
    _station(25, "Dworzec Wschodni"),

    _prop(26, "Swietokrzyska", 260, "yellow", 3, [22, 44, 66]),
    _prop(27, "Krakowskie Przedmiescie", 260, "yellow", 3, [22, 44, 66]),
    Tile(id=28, type="utility", name="Waterworks", price=150),
    _prop(29, "Nowy Swiat", 280, "yellow", 3, [24, 48, 72]),

    Tile(id=30, type="go_to_jail", name="Go To Jail"),

    _prop(31, "Plac Trzech Krzyzy", 300, "green", 3, [26, 52, 78]),
    _prop(32, "Marszalkowska", 300, "green", 3, [26, 52, 78]),
    Tile(id=33, type="chest", name="Community Chest"),
    _prop(34, "Aleje Jerozolimskie", 320, "green", 3, [28, 56, 84]),
    _station(35, "Dworzec Centralny"),

    Tile(id=36, type="random", name="Chance"),
    _prop(37, "Belwederska", 350, "darkblue", 2, [35, 70]),
    Tile(id=38, type="tax", name="Luxury Tax", amount=100),
    _prop(39, "Aleje Ujazdowskie", 400, "darkblue", 2, [50, 100]),
]

BOARD_SIZE = len(BOARD_TEMPLATE)

DECK_FOR_TILE = {"random": "chance", "chest": "community"}


def create_room_board(template: Optional[List[Tile]] = None) -> List[Tile]:
    """Fresh per-room board: every tile cloned, owner and upgrades cleared."""
    src = template if template is not None else BOARD_TEMPLATE
    board: List[Tile] = []
    for t in src:
        clone = Tile.from_dict(asdict(t))
        clone.ownerId = None
        clone.houses = 0
        clone.hasHotel = False
        board.append(clone)
    return board


def build_board_meta() -> List[Dict[str, Any]]:
    return [t.to_dict() for t in BOARD_TEMPLATE]


def group_tile_ids(board: List[Tile], group: Optional[str]) -> List[int]:
    if not group:
        return []
    return [t.id for t in board if t.type == "property" and t.group == group]


def upgrade_cost(tile: Tile) -> int:
    price = int(tile.price or 0)
    return max(50, int(round(price * 0.5)))


def forward_path(start: int, steps: int, size: int = BOARD_SIZE) -> List[int]:
    """Tile indices visited moving `steps` forward from `start` (start excluded)."""
    return [(start + i) % size for i in range(1, steps + 1)]


def backward_path(start: int, steps: int, size: int = BOARD_SIZE) -> List[int]:
    return [(start - i) % size for i in range(1, steps + 1)]


def path_to(start: int, target: int, size: int = BOARD_SIZE) -> List[int]:
    """Forward path from `start` to `target`, wrapping past the end if needed."""
    steps = (target - start) % size
    return forward_path(start, steps, size)
