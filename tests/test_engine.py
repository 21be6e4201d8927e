import pytest

from monopolista import events as ev
from monopolista.cards import Card, Deck, MONEY, MOVE, MOVE_TO, JAIL
from monopolista.engine import TurnEngine
from monopolista.events import IntentRejected
from monopolista.models import (
    Room, Player, BuyPending, CardPending, JailPending,
    WAITING, PLAYING, AWAITING_ROLL, AWAITING_BUY, AWAITING_JAIL_CHOICE, AWAITING_CARD_ACK,
)

from conftest import make_game, give


def rejected(code, fn, *args):
    with pytest.raises(IntentRejected) as exc:
        fn(*args)
    assert exc.value.code == code


def names(out):
    return [e.name for e in out]


def stack_deck(room, kind, card):
    room.decks[kind] = Deck(kind, [card])


# ---------------------------
# Lifecycle
# ---------------------------

def test_start_requires_host_and_ready_players():
    engine = TurnEngine()
    room = Room(code="ABCDE", host_id="p1")
    room.players = [Player("p1", "Ala", "blue"), Player("p2", "Bob", "red")]
    room.ready_by_id = {"p1": True, "p2": False}
    rejected(ev.NOT_HOST, engine.start_game, room, "p2")
    rejected(ev.NOT_READY, engine.start_game, room, "p1")
    room.ready_by_id["p2"] = True
    out = engine.start_game(room, "p1")
    assert room.status == PLAYING
    assert room.current_player.id == "p1"
    assert names(out) == ["roomUpdate", "gameLogEvent"]
    rejected(ev.ALREADY_PLAYING, engine.start_game, room, "p1")


def test_start_needs_two_players():
    engine = TurnEngine()
    room = Room(code="ABCDE", host_id="p1")
    room.players = [Player("p1", "Ala", "blue")]
    room.ready_by_id = {"p1": True}
    rejected(ev.NOT_READY, engine.start_game, room, "p1")
    assert room.status == WAITING


def test_restart_resets_everything():
    engine, room = make_game(rolls=[1, 2])
    engine.roll(room, "p1")
    engine.buy(room, "p1")
    rejected(ev.NOT_HOST, engine.restart_game, room, "p2")
    out = engine.restart_game(room, "p1")
    assert out[0].name == "gameReset"
    assert all(p.balance == 1500 and p.position == 0 for p in room.players)
    assert room.board[3].ownerId is None
    assert room.current_player.id == "p1"
    assert len(room.log) == 1


# ---------------------------
# Rolling and buying
# ---------------------------

def test_roll_offers_unowned_property_and_buy_ends_turn():
    engine, room = make_game(rolls=[1, 2])
    out = engine.roll(room, "p1")
    assert names(out)[:2] == ["diceRolled", "playerMovePath"]
    assert room.phase == AWAITING_BUY
    assert room.pending == BuyPending(player_id="p1", tile_id=3)

    engine.buy(room, "p1")
    p1 = room.player("p1")
    assert room.board[3].ownerId == "p1"
    assert p1.balance == 1440
    assert p1.properties == [3]
    assert room.phase == AWAITING_ROLL and room.pending is None
    assert room.current_player.id == "p2"


def test_skip_buy_leaves_tile_unowned():
    engine, room = make_game(rolls=[1, 2])
    engine.roll(room, "p1")
    engine.skip_buy(room, "p1")
    assert room.board[3].ownerId is None
    assert room.current_player.id == "p2"


def test_intent_validation_order():
    engine, room = make_game(rolls=[1, 2])
    rejected(ev.NOT_YOUR_TURN, engine.roll, room, "p2")
    rejected(ev.WRONG_PHASE, engine.buy, room, "p1")
    engine.roll(room, "p1")
    rejected(ev.NOT_YOUR_TURN, engine.buy, room, "p2")
    rejected(ev.WRONG_PHASE, engine.roll, room, "p1")
    engine.buy(room, "p1")
    # duplicate buy after the offer closed
    rejected(ev.WRONG_PHASE, engine.buy, room, "p1")


def test_rejected_buy_changes_nothing():
    engine, room = make_game(rolls=[1, 2])
    engine.roll(room, "p1")
    room.player("p1").balance = 10
    serial = room.serial
    rejected(ev.NO_MONEY, engine.buy, room, "p1")
    assert room.serial == serial
    assert room.pending == BuyPending(player_id="p1", tile_id=3)
    assert room.board[3].ownerId is None


def test_roll_in_waiting_room_is_rejected():
    engine = TurnEngine()
    room = Room(code="ABCDE", host_id="p1", players=[Player("p1", "Ala", "blue")])
    rejected(ev.NOT_PLAYING, engine.roll, room, "p1")


def test_tax_is_debited_and_turn_passes():
    engine, room = make_game(rolls=[1, 3])
    out = engine.roll(room, "p1")
    assert room.player("p1").balance == 1300
    assert room.current_player.id == "p2"
    prompts = [e for e in out if e.name == "paymentPrompt"]
    assert prompts[0].player_id == "p1" and prompts[0].amount == 200


def test_passing_start_credits_bonus():
    engine, room = make_game(rolls=[1, 2])
    room.player("p1").position = 38
    out = engine.roll(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 1
    assert p1.balance == 1700
    assert room.pending == BuyPending(player_id="p1", tile_id=1)
    # the dice result reaches clients before the START credit
    assert names(out)[:3] == ["diceRolled", "playerMovePath", "gameLogEvent"]
    assert "rolled" in out[2].entry["text"]
    assert "passed START" in out[3].entry["text"]


def test_rent_single_tile_of_set_end_to_end():
    engine, room = make_game(rolls=[1, 1])
    give(room, "p1", 11, 6, 8, 9)
    room.current_player_index = 1
    b = room.player("p2")
    b.position = 9
    out = engine.roll(room, "p2")
    assert b.balance == 1490
    assert room.player("p1").balance == 1510
    assert room.current_player.id == "p1"
    assert room.pending is None
    toasts = {(e.player_id, e.type) for e in out if e.name == "toast"}
    assert ("p2", "err") in toasts and ("p1", "ok") in toasts


def test_go_to_jail_tile():
    engine, room = make_game(rolls=[1, 2])
    room.player("p1").position = 27
    out = engine.roll(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 10 and p1.in_jail and p1.jail_turns == 1
    assert room.current_player.id == "p2"
    assert [e.reason for e in out if e.name == "playerMovePath"] == ["dice", "jail"]


# ---------------------------
# Jail
# ---------------------------

def jailed_game():
    engine, room = make_game()
    p1 = room.player("p1")
    p1.position, p1.in_jail, p1.jail_turns = 10, True, 1
    return engine, room


def test_roll_in_jail_asks_for_choice():
    engine, room = jailed_game()
    out = engine.roll(room, "p1")
    assert room.phase == AWAITING_JAIL_CHOICE
    assert room.pending == JailPending(player_id="p1", fine=50)
    assert "jailPrompt" in names(out)
    assert "diceRolled" not in names(out)


def test_jail_pay():
    engine, room = jailed_game()
    engine.roll(room, "p1")
    engine.jail_choice(room, "p1", True)
    p1 = room.player("p1")
    assert p1.balance == 1450 and not p1.in_jail
    assert room.current_player.id == "p2"


def test_jail_wait_serves_term():
    engine, room = jailed_game()
    engine.roll(room, "p1")
    engine.jail_choice(room, "p1", False)
    p1 = room.player("p1")
    assert p1.balance == 1500 and not p1.in_jail and p1.jail_turns == 0
    assert room.current_player.id == "p2"


# ---------------------------
# Cards
# ---------------------------

def draw_chance(card, rolls=(3, 4), position=0):
    engine, room = make_game(rolls=list(rolls))
    stack_deck(room, "chance", card)
    room.player("p1").position = position
    out = engine.roll(room, "p1")
    return engine, room, out


def test_card_draw_waits_for_ack():
    engine, room, out = draw_chance(Card("t", "Collect 50.", MONEY, amount=50))
    assert room.phase == AWAITING_CARD_ACK
    assert isinstance(room.pending, CardPending)
    assert room.pending.dice_sum == 7
    drawn = [e for e in out if e.name == "cardDrawn"]
    assert drawn[0].player_id == "p1" and drawn[0].deck_label == "Chance"
    rejected(ev.NOT_YOUR_TURN, engine.card_ack, room, "p2")


def test_money_card():
    engine, room, _ = draw_chance(Card("t", "Collect 50.", MONEY, amount=50))
    engine.card_ack(room, "p1")
    assert room.player("p1").balance == 1550
    assert room.current_player.id == "p2"
    assert room.pending is None


def test_backward_card_lands_on_tax():
    engine, room, _ = draw_chance(Card("t", "Back 3.", MOVE, steps=-3))
    out = engine.card_ack(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 4 and p1.balance == 1300
    assert [e.path for e in out if e.name == "playerMovePath"] == [[6, 5, 4]]


def test_move_to_start_credits_bonus():
    engine, room, _ = draw_chance(Card("t", "Go to START.", MOVE_TO, target=0))
    engine.card_ack(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 0 and p1.balance == 1700
    assert room.current_player.id == "p2"


def test_move_to_unowned_property_opens_buy_offer():
    engine, room, _ = draw_chance(Card("t", "Go to Plac Wilsona.", MOVE_TO, target=24))
    engine.card_ack(room, "p1")
    assert room.player("p1").balance == 1500
    assert room.pending == BuyPending(player_id="p1", tile_id=24)


def test_card_move_onto_card_tile_does_not_draw_again():
    engine, room, _ = draw_chance(Card("t", "Go to Chance.", MOVE_TO, target=22))
    out = engine.card_ack(room, "p1")
    assert room.player("p1").position == 22
    assert "cardDrawn" not in names(out)
    assert room.phase == AWAITING_ROLL and room.pending is None
    assert room.current_player.id == "p2"


def test_forward_card_wrapping_start_credits_bonus():
    engine, room, _ = draw_chance(Card("t", "Forward 6.", MOVE, steps=6), position=29)
    assert room.player("p1").position == 36
    out = engine.card_ack(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 2 and p1.balance == 1700
    assert "cardDrawn" not in names(out)
    assert room.current_player.id == "p2"


def test_card_move_to_utility_charges_with_triggering_roll():
    engine, room, _ = draw_chance(Card("t", "Go to Power Station.", MOVE_TO, target=12))
    give(room, "p2", 12)
    engine.card_ack(room, "p1")
    assert room.player("p1").balance == 1500 - 28
    assert room.player("p2").balance == 1500 + 28


def test_jail_card():
    engine, room, _ = draw_chance(Card("t", "Go to Jail.", JAIL))
    engine.card_ack(room, "p1")
    p1 = room.player("p1")
    assert p1.position == 10 and p1.in_jail
    assert room.current_player.id == "p2"


def test_community_chest_uses_its_own_deck():
    engine, room = make_game(rolls=[1, 1])
    stack_deck(room, "community", Card("c", "Pay 50.", MONEY, amount=-50))
    engine.roll(room, "p1")
    assert room.pending.deck_type == "community"
    out = engine.card_ack(room, "p1")
    assert room.player("p1").balance == 1450
    assert "paymentPrompt" in names(out)


# ---------------------------
# Bankruptcy / winner / rotation
# ---------------------------

def test_bankruptcy_releases_holdings_and_game_continues():
    engine, room = make_game(("Ala", "Bob", "Cyd"), rolls=[1, 3])
    give(room, "p3", 1, 3)
    room.board[1].houses = 2
    p3 = room.player("p3")
    p3.balance = 100
    room.current_player_index = 2
    engine.roll(room, "p3")
    assert p3.is_bankrupt and p3.balance == 0 and p3.properties == []
    assert room.board[1].ownerId is None and room.board[1].houses == 0
    assert room.board[3].ownerId is None
    assert not room.game_over
    assert room.current_player.id == "p1"
    assert all(t["ownerId"] is None for t in room.public_state()["board"])


def test_last_player_standing_wins():
    engine, room = make_game(rolls=[1, 3])
    room.current_player_index = 1
    room.player("p2").balance = 50
    engine.roll(room, "p2")
    assert room.game_over
    assert room.winner_id == "p1"
    assert room.public_state()["winner"]["nickname"] == "Ala"
    assert room.pending is None and room.phase == AWAITING_ROLL
    rejected(ev.GAME_OVER, engine.roll, room, "p1")


def test_rotation_skips_disconnected_and_bankrupt():
    engine, room = make_game(("Ala", "Bob", "Cyd", "Dan"), rolls=[1, 3])
    room.player("p2").connected = False
    room.player("p3").is_bankrupt = True
    engine.roll(room, "p1")
    assert room.current_player.id == "p4"


def test_pointer_stays_on_seat_when_nobody_connected():
    engine, room = make_game(("Ala", "Bob", "Cyd"))
    for p in room.players:
        p.connected = False
    room.player("p1").is_bankrupt = True
    room.current_player_index = 0
    TurnEngine.ensure_current_is_active(room)
    assert room.current_player.id == "p2"


def test_disconnected_turn_holder_cannot_roll():
    engine, room = make_game()
    room.player("p1").connected = False
    rejected(ev.DISCONNECTED, engine.roll, room, "p1")


# ---------------------------
# Upgrades
# ---------------------------

def test_upgrade_to_hotel():
    engine, room = make_game()
    give(room, "p1", 1, 3)
    for n in range(1, 5):
        engine.upgrade(room, "p1", 1)
        assert room.board[1].houses == n
    engine.upgrade(room, "p1", 1)
    assert room.board[1].hasHotel and room.board[1].houses == 0
    assert room.player("p1").balance == 1500 - 5 * 50
    rejected(ev.ALREADY_HOTEL, engine.upgrade, room, "p1", 1)
    # the turn is not consumed
    assert room.current_player.id == "p1" and room.phase == AWAITING_ROLL


def test_upgrade_rejections():
    engine, room = make_game()
    give(room, "p1", 6, 5)
    rejected(ev.NO_MONOPOLY, engine.upgrade, room, "p1", 6)
    rejected(ev.NOT_PROPERTY, engine.upgrade, room, "p1", 5)
    rejected(ev.NOT_OWNER, engine.upgrade, room, "p1", 11)
    rejected(ev.TILE_NOT_FOUND, engine.upgrade, room, "p1", 99)
    rejected(ev.NOT_YOUR_TURN, engine.upgrade, room, "p2", 6)
    give(room, "p1", 8, 9)
    room.player("p1").balance = 10
    rejected(ev.NO_MONEY, engine.upgrade, room, "p1", 6)


# ---------------------------
# Turn deadline
# ---------------------------

def test_expire_skips_open_buy_offer():
    engine, room = make_game(rolls=[1, 2])
    engine.roll(room, "p1")
    engine.expire_turn(room)
    assert room.board[3].ownerId is None
    assert room.current_player.id == "p2" and room.pending is None


def test_expire_applies_drawn_card():
    engine, room, _ = draw_chance(Card("t", "Collect 50.", MONEY, amount=50))
    engine.expire_turn(room)
    assert room.player("p1").balance == 1550
    assert room.current_player.id == "p2"


def test_expire_passes_unrolled_turn():
    engine, room = make_game()
    out = engine.expire_turn(room)
    assert room.current_player.id == "p2"
    assert room.player("p1").position == 0
    assert "diceRolled" not in names(out)


def test_expire_waits_out_jail():
    engine, room = jailed_game()
    engine.roll(room, "p1")
    engine.expire_turn(room)
    assert not room.player("p1").in_jail
    assert room.current_player.id == "p2"


def test_expire_is_noop_after_game_over():
    engine, room = make_game()
    room.game_over = True
    assert engine.expire_turn(room) == []
