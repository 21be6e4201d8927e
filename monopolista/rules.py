from __future__ import annotations

from typing import List, Optional

from .board import Tile, HOTEL_RENT_MULTIPLIER


def clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


def stations_owned(board: List[Tile], owner_id: str) -> int:
    return sum(1 for t in board if t.type == "station" and t.ownerId == owner_id)


def utilities_owned(board: List[Tile], owner_id: str) -> int:
    return sum(1 for t in board if t.type == "utility" and t.ownerId == owner_id)


def group_owned(board: List[Tile], owner_id: str, group: Optional[str]) -> int:
    return sum(1 for t in board if t.type == "property" and t.group == group and t.ownerId == owner_id)


def owns_full_group(board: List[Tile], owner_id: str, tile: Tile) -> bool:
    members = [t for t in board if t.type == "property" and t.group == tile.group]
    if not members:
        return False
    return all(t.ownerId == owner_id for t in members)


def compute_rent(board: List[Tile], tile: Optional[Tile], dice_sum: int, payer_id: Optional[str] = None) -> int:
    """Rent owed for landing on `tile`, as a pure function of board ownership.

    Property rent indexes the group's schedule by how many of the group the
    owner holds; houses multiply that level by (1 + houses) and a hotel by 6.
    Stations double per extra station owned. Utilities charge 4x the dice
    sum, or 10x with both owned. Unowned and self-owned tiles cost nothing.
    """
    if tile is None or not tile.ownerId:
        return 0
    if payer_id is not None and tile.ownerId == payer_id:
        return 0
    owner = tile.ownerId

    if tile.type == "property":
        levels = tile.rentLevels or []
        if not levels:
            return 0
        idx = clamp(group_owned(board, owner, tile.group), 1, len(levels)) - 1
        base = int(levels[idx] or 0)
        if tile.hasHotel:
            return max(0, base * HOTEL_RENT_MULTIPLIER)
        if tile.houses > 0:
            return max(0, base * (1 + tile.houses))
        return max(0, base)

    if tile.type == "station":
        base = int(tile.rent or 25)
        mult = 2 ** (clamp(stations_owned(board, owner), 1, 4) - 1)
        return base * mult

    if tile.type == "utility":
        mult = 10 if utilities_owned(board, owner) >= 2 else 4
        return max(0, int(dice_sum or 0)) * mult

    return 0
