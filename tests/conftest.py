import os
import random

import pytest

# Keep imports of the app module from touching a real database file
os.environ.setdefault("PERSISTENCE_ENABLED", "0")

from monopolista.engine import TurnEngine
from monopolista.models import Room, Player


class ScriptedRandom(random.Random):
    """Random whose dice come from a fixed list; shuffles stay seeded."""

    def __init__(self, rolls=()):
        super().__init__(1234)
        self.rolls = list(rolls)

    def randint(self, a, b):
        if self.rolls:
            return self.rolls.pop(0)
        return super().randint(a, b)


def make_game(nicknames=("Ala", "Bob"), rolls=()):
    """Started game with players p1..pN, p1 hosting and on turn."""
    rng = ScriptedRandom(rolls)
    engine = TurnEngine(rng)
    room = Room(code="TEST1", host_id="p1")
    for i, nick in enumerate(nicknames, start=1):
        pid = f"p{i}"
        room.players.append(Player(id=pid, nickname=nick, color_key=f"c{i}"))
        room.ready_by_id[pid] = True
    engine.start_game(room, "p1")
    return engine, room


def give(room, player_id, *tile_ids):
    player = room.player(player_id)
    for tid in tile_ids:
        room.board[tid].ownerId = player_id
        player.properties.append(tid)


@pytest.fixture
def game():
    return make_game()
