"""
Turn engine: the rules side of a room.

Every public method validates the intent, mutates the room to completion
and returns the narrow events produced along the way, in order. Nothing here
awaits or talks to the network, so a call can never interleave with another
mutation of the same room. Validation failures raise IntentRejected before
any field is touched.
"""

from __future__ import annotations

import random
from typing import List, Optional, Type

from . import events as ev
from .board import (
    BOARD_SIZE, DECK_FOR_TILE, JAIL_FINE, JAIL_TERM, JAIL_TILE, MAX_HOUSES, MIN_PLAYERS, START_BONUS,
    create_room_board, forward_path, backward_path, path_to, upgrade_cost,
)
from .cards import Deck, MONEY, MOVE, MOVE_TO, JAIL
from .events import Event, IntentRejected
from .models import (
    Room, Player, PendingAction, BuyPending, JailPending, CardPending,
    WAITING, PLAYING, AWAITING_ROLL, AWAITING_BUY, AWAITING_JAIL_CHOICE, AWAITING_CARD_ACK,
)
from .rules import compute_rent, owns_full_group


class TurnEngine:

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    # ---------------------------
    # Small helpers
    # ---------------------------

    @staticmethod
    def _log(room: Room, out: List[Event], text: str) -> None:
        out.append(ev.GameLog(room.add_log(text)))

    @staticmethod
    def _toast(out: List[Event], player_id: str, kind: str, text: str) -> None:
        out.append(ev.Toast(player_id=player_id, type=kind, text=text))

    @staticmethod
    def _require_game(room: Room) -> None:
        if room.status != PLAYING:
            raise IntentRejected(ev.NOT_PLAYING)
        if room.game_over:
            raise IntentRejected(ev.GAME_OVER)

    def _require_turn_holder(self, room: Room, actor_id: str) -> Player:
        self._require_game(room)
        cur = room.current_player
        if cur is None or cur.id != actor_id:
            raise IntentRejected(ev.NOT_YOUR_TURN)
        if cur.is_bankrupt:
            raise IntentRejected(ev.BANKRUPT)
        if not cur.connected:
            raise IntentRejected(ev.DISCONNECTED)
        if room.phase != AWAITING_ROLL:
            raise IntentRejected(ev.WRONG_PHASE)
        return cur

    def _require_pending(self, room: Room, actor_id: str, phase: str, kind: Type[PendingAction]):
        self._require_game(room)
        player = room.player(actor_id)
        if player is None:
            raise IntentRejected(ev.NOT_IN_ROOM)
        pending = room.pending
        if isinstance(pending, kind) and pending.player_id != actor_id:
            raise IntentRejected(ev.NOT_YOUR_TURN)
        if player.is_bankrupt:
            raise IntentRejected(ev.BANKRUPT)
        if not player.connected:
            raise IntentRejected(ev.DISCONNECTED)
        if room.phase != phase:
            raise IntentRejected(ev.WRONG_PHASE)
        if not isinstance(pending, kind) or pending.player_id != actor_id:
            raise IntentRejected(ev.NO_PENDING_ACTION)
        return player, pending

    # ---------------------------
    # Game lifecycle
    # ---------------------------

    def reset(self, room: Room) -> None:
        room.board = create_room_board()
        room.decks = {kind: Deck.shuffled(kind, self.rng) for kind in ("chance", "community")}
        room.phase = AWAITING_ROLL
        room.pending = None
        room.current_player_index = 0
        room.game_over = False
        room.winner_id = None
        for p in room.players:
            p.reset_for_game()
        self.ensure_current_is_active(room)
        room.touch()

    def start_game(self, room: Room, actor_id: str) -> List[Event]:
        if room.status != WAITING:
            raise IntentRejected(ev.ALREADY_PLAYING)
        if actor_id != room.host_id:
            raise IntentRejected(ev.NOT_HOST)
        if len(room.players) < MIN_PLAYERS or not all(room.ready_by_id.get(p.id) for p in room.players):
            raise IntentRejected(ev.NOT_READY)

        out: List[Event] = []
        room.status = PLAYING
        self.reset(room)
        out.append(ev.RoomUpdate(room.roster()))
        first = room.current_player
        self._log(room, out, f"Game started. First move: {first.nickname if first else '-'}.")
        return out

    def restart_game(self, room: Room, actor_id: str) -> List[Event]:
        if room.status != PLAYING:
            raise IntentRejected(ev.NOT_PLAYING)
        if actor_id != room.host_id:
            raise IntentRejected(ev.NOT_HOST)

        out: List[Event] = [ev.GameReset()]
        room.log.clear()
        self.reset(room)
        first = room.current_player
        self._log(room, out, f"New game started. First move: {first.nickname if first else '-'}.")
        return out

    # ---------------------------
    # Turn rotation
    # ---------------------------

    @staticmethod
    def ensure_current_is_active(room: Room) -> None:
        """Move the turn pointer forward onto a player who can act.

        Bankrupt and disconnected players are skipped for at most one lap.
        If nobody connected is left, the pointer settles on the next
        non-bankrupt player so the seat is kept for when they return.
        """
        n = len(room.players)
        if n == 0:
            return
        start = room.current_player_index % n
        for i in range(n):
            if room.players[(start + i) % n].can_act:
                room.current_player_index = (start + i) % n
                return
        for i in range(n):
            if not room.players[(start + i) % n].is_bankrupt:
                room.current_player_index = (start + i) % n
                return
        room.current_player_index = start

    def advance_turn(self, room: Room) -> None:
        if not room.players:
            return
        room.current_player_index = (room.current_player_index + 1) % len(room.players)
        self.ensure_current_is_active(room)

    def _end_turn(self, room: Room) -> None:
        room.phase = AWAITING_ROLL
        room.pending = None
        if not room.game_over:
            self.advance_turn(room)
        room.touch()

    # ---------------------------
    # Bankruptcy / winner
    # ---------------------------

    def check_bankruptcy(self, room: Room, player: Player, out: List[Event]) -> bool:
        if room.game_over or player.is_bankrupt or player.balance >= 0:
            return False

        player.is_bankrupt = True
        player.balance = 0
        player.properties = []
        player.in_jail = False
        player.jail_turns = 0
        for t in room.board:
            if t.ownerId == player.id:
                t.ownerId = None
                t.houses = 0
                t.hasHotel = False
        if room.pending is not None and room.pending.player_id == player.id:
            room.pending = None
            room.phase = AWAITING_ROLL

        self._log(room, out, f"{player.nickname} went bankrupt.")
        self._toast(out, player.id, "err", "Bankrupt!")
        self.check_winner(room, out)
        return True

    def check_winner(self, room: Room, out: List[Event]) -> bool:
        if room.game_over:
            return True
        active = room.active_players()
        if len(active) != 1:
            return False
        room.game_over = True
        room.winner_id = active[0].id
        room.phase = AWAITING_ROLL
        room.pending = None
        self._log(room, out, f"Winner: {active[0].nickname}.")
        return True

    # ---------------------------
    # Movement / landing
    # ---------------------------

    def _credit_start_bonus(self, room: Room, player: Player, out: List[Event]) -> None:
        player.balance += START_BONUS
        self._log(room, out, f"{player.nickname} passed START and collected {START_BONUS}.")
        self._toast(out, player.id, "ok", f"START: +{START_BONUS}")

    def _send_to_jail(self, room: Room, player: Player, out: List[Event]) -> None:
        path = [JAIL_TILE] if player.position != JAIL_TILE else []
        player.position = JAIL_TILE
        player.in_jail = True
        player.jail_turns = JAIL_TERM
        if path:
            out.append(ev.PlayerMovePath(player_id=player.id, path=path, reason="jail"))
        self._log(room, out, f"{player.nickname} goes to jail.")
        self._toast(out, player.id, "err", "Go to jail!")

    def _resolve_landing(self, room: Room, player: Player, dice_sum: int, out: List[Event], from_card: bool = False) -> None:
        """Apply the effect of the tile the player now stands on.

        Card draws only happen on direct arrivals; a landing reached through a
        card move never opens another card.
        """
        tile = room.board[player.position]

        if tile.type == "go_to_jail":
            self._send_to_jail(room, player, out)
            self._end_turn(room)
            return

        if tile.type == "tax" and tile.amount:
            amount = int(tile.amount)
            player.balance -= amount
            self._log(room, out, f"{player.nickname} paid tax {amount} on \"{tile.name}\".")
            out.append(ev.PaymentPrompt(player_id=player.id, kind="tax", amount=amount, label=tile.name, tile_name=tile.name))
            self._toast(out, player.id, "err", f"Tax: -{amount} ({tile.name})")
            self.check_bankruptcy(room, player, out)
            self._end_turn(room)
            return

        if tile.buyable and tile.ownerId and tile.ownerId != player.id:
            owner = room.player(tile.ownerId)
            rent = compute_rent(room.board, tile, dice_sum, payer_id=player.id)
            if owner is not None and rent > 0:
                player.balance -= rent
                owner.balance += rent
                self._log(room, out, f"{player.nickname} paid rent {rent} to {owner.nickname} ({tile.name}).")
                out.append(ev.PaymentPrompt(player_id=player.id, kind="rent", amount=rent, label="Rent",
                                            to_nickname=owner.nickname, tile_name=tile.name))
                self._toast(out, player.id, "err", f"Rent: -{rent} -> {owner.nickname} ({tile.name})")
                self._toast(out, owner.id, "ok", f"Rent: +{rent} from {player.nickname} ({tile.name})")
                self.check_bankruptcy(room, player, out)
            self._end_turn(room)
            return

        deck_type = DECK_FOR_TILE.get(tile.type)
        if deck_type and not from_card:
            deck = room.decks.get(deck_type)
            if deck is None:
                deck = room.decks[deck_type] = Deck.shuffled(deck_type, self.rng)
            card = deck.draw()
            room.phase = AWAITING_CARD_ACK
            room.pending = CardPending(player_id=player.id, deck_type=deck_type, deck_label=deck.label,
                                       card=card, dice_sum=dice_sum)
            room.touch()
            self._log(room, out, f"{player.nickname} drew {deck.label}: {card.text}")
            out.append(ev.CardDrawn(player_id=player.id, deck_type=deck_type, deck_label=deck.label, text=card.text,
                                    nickname=player.nickname, color_key=player.color_key))
            return

        if tile.buyable and not tile.ownerId and tile.price is not None:
            room.phase = AWAITING_BUY
            room.pending = BuyPending(player_id=player.id, tile_id=tile.id)
            room.touch()
            return

        self._end_turn(room)

    # ---------------------------
    # Intents
    # ---------------------------

    def roll(self, room: Room, actor_id: str) -> List[Event]:
        cur = self._require_turn_holder(room, actor_id)
        out: List[Event] = []

        if cur.in_jail and cur.jail_turns > 0:
            room.phase = AWAITING_JAIL_CHOICE
            room.pending = JailPending(player_id=cur.id, fine=JAIL_FINE)
            room.touch()
            self._log(room, out, f"{cur.nickname} is in jail and must choose: pay {JAIL_FINE} or wait.")
            out.append(ev.JailPrompt(player_id=cur.id, fine=JAIL_FINE))
            return out

        dice1 = self.rng.randint(1, 6)
        dice2 = self.rng.randint(1, 6)
        steps = dice1 + dice2
        start = cur.position
        new_position = (start + steps) % BOARD_SIZE
        cur.position = new_position
        tile = room.board[new_position]

        out.append(ev.DiceRolled(player_id=cur.id, nickname=cur.nickname, dice1=dice1, dice2=dice2,
                                 new_position=new_position, tile=tile.to_dict()))
        out.append(ev.PlayerMovePath(player_id=cur.id, path=forward_path(start, steps), reason="dice"))
        self._log(room, out, f"{cur.nickname} rolled {dice1}+{dice2}={steps} -> {tile.name}.")
        if start + steps >= BOARD_SIZE:
            self._credit_start_bonus(room, cur, out)

        self._resolve_landing(room, cur, steps, out)
        return out

    def buy(self, room: Room, actor_id: str) -> List[Event]:
        player, pending = self._require_pending(room, actor_id, AWAITING_BUY, BuyPending)
        tile = room.board[pending.tile_id]
        if not tile.buyable or tile.price is None:
            raise IntentRejected(ev.NOT_BUYABLE)
        if tile.ownerId:
            raise IntentRejected(ev.ALREADY_OWNED)
        if player.balance < tile.price:
            raise IntentRejected(ev.NO_MONEY)

        out: List[Event] = []
        tile.ownerId = player.id
        player.balance -= tile.price
        player.properties.append(tile.id)
        self._log(room, out, f"{player.nickname} bought {tile.name} for {tile.price}.")
        self._toast(out, player.id, "ok", f"Bought: {tile.name} (-{tile.price})")
        self._end_turn(room)
        return out

    def skip_buy(self, room: Room, actor_id: str) -> List[Event]:
        player, _ = self._require_pending(room, actor_id, AWAITING_BUY, BuyPending)
        out: List[Event] = []
        self._skip_buy(room, player, out)
        return out

    def _skip_buy(self, room: Room, player: Player, out: List[Event]) -> None:
        self._log(room, out, f"{player.nickname} did not buy and ends the turn.")
        self._toast(out, player.id, "ok", "Purchase skipped")
        self._end_turn(room)

    def jail_choice(self, room: Room, actor_id: str, pay: bool) -> List[Event]:
        player, pending = self._require_pending(room, actor_id, AWAITING_JAIL_CHOICE, JailPending)
        out: List[Event] = []
        self._jail_choice(room, player, pending, pay, out)
        return out

    def _jail_choice(self, room: Room, player: Player, pending: JailPending, pay: bool, out: List[Event]) -> None:
        room.pending = None
        if pay:
            fine = int(pending.fine)
            player.balance -= fine
            player.in_jail = False
            player.jail_turns = 0
            self._log(room, out, f"{player.nickname} paid {fine} and left jail.")
            out.append(ev.PaymentPrompt(player_id=player.id, kind="jail", amount=fine, label="Jail fine"))
            self.check_bankruptcy(room, player, out)
        else:
            player.jail_turns = max(0, player.jail_turns - 1)
            if player.jail_turns == 0:
                player.in_jail = False
                self._log(room, out, f"{player.nickname} waited out the jail term and is released.")
            else:
                self._log(room, out, f"{player.nickname} stays in jail ({player.jail_turns} turn(s) left).")
        self._end_turn(room)

    def card_ack(self, room: Room, actor_id: str) -> List[Event]:
        player, pending = self._require_pending(room, actor_id, AWAITING_CARD_ACK, CardPending)
        out: List[Event] = []
        self._card_ack(room, player, pending, out)
        return out

    def _card_ack(self, room: Room, player: Player, pending: CardPending, out: List[Event]) -> None:
        card = pending.card
        room.pending = None
        room.phase = AWAITING_ROLL
        if card is None:
            self._end_turn(room)
            return

        if card.kind == MONEY:
            player.balance += card.amount
            if card.amount < 0:
                self._log(room, out, f"{player.nickname} paid {-card.amount} ({card.text})")
                out.append(ev.PaymentPrompt(player_id=player.id, kind="card", amount=-card.amount, label=pending.deck_label))
                self._toast(out, player.id, "err", f"Card: {card.amount}")
                self.check_bankruptcy(room, player, out)
            else:
                self._log(room, out, f"{player.nickname} received {card.amount} ({card.text})")
                self._toast(out, player.id, "ok", f"Card: +{card.amount}")
            self._end_turn(room)
            return

        if card.kind == JAIL:
            self._send_to_jail(room, player, out)
            self.check_winner(room, out)
            self._end_turn(room)
            return

        start = player.position
        if card.kind == MOVE:
            steps = int(card.steps)
            if steps >= 0:
                path = forward_path(start, steps)
                if start + steps >= BOARD_SIZE:
                    self._credit_start_bonus(room, player, out)
            else:
                path = backward_path(start, -steps)
            player.position = (start + steps) % BOARD_SIZE
        elif card.kind == MOVE_TO:
            target = int(card.target or 0) % BOARD_SIZE
            path = path_to(start, target)
            if target < start:
                self._credit_start_bonus(room, player, out)
            player.position = target
        else:
            self._end_turn(room)
            return

        if path:
            out.append(ev.PlayerMovePath(player_id=player.id, path=path, reason="card"))
        self._log(room, out, f"{player.nickname} moves to {room.board[player.position].name}.")
        self._resolve_landing(room, player, pending.dice_sum, out, from_card=True)

    def upgrade(self, room: Room, actor_id: str, tile_id: int) -> List[Event]:
        player = self._require_turn_holder(room, actor_id)
        if room.pending is not None:
            raise IntentRejected(ev.WRONG_PHASE)
        if not 0 <= tile_id < len(room.board):
            raise IntentRejected(ev.TILE_NOT_FOUND)
        tile = room.board[tile_id]
        if tile.type != "property":
            raise IntentRejected(ev.NOT_PROPERTY)
        if tile.ownerId != player.id:
            raise IntentRejected(ev.NOT_OWNER)
        if not owns_full_group(room.board, player.id, tile):
            raise IntentRejected(ev.NO_MONOPOLY)
        if tile.hasHotel:
            raise IntentRejected(ev.ALREADY_HOTEL)
        cost = upgrade_cost(tile)
        if player.balance < cost:
            raise IntentRejected(ev.NO_MONEY)

        out: List[Event] = []
        player.balance -= cost
        if tile.houses < MAX_HOUSES:
            tile.houses += 1
            self._log(room, out, f"{player.nickname} built house {tile.houses}/{MAX_HOUSES} on {tile.name} for {cost}.")
        else:
            tile.houses = 0
            tile.hasHotel = True
            self._log(room, out, f"{player.nickname} built a hotel on {tile.name} for {cost}.")
        self._toast(out, player.id, "ok", f"Upgrade: {tile.name} (-{cost})")
        room.touch()
        return out

    # ---------------------------
    # Turn deadline
    # ---------------------------

    def expire_turn(self, room: Room) -> List[Event]:
        """Apply the default response for whatever the room is waiting on.

        An open buy offer is skipped, a drawn card is acknowledged, a jail
        choice waits out the term, and a turn still waiting for its roll is
        passed on.
        """
        out: List[Event] = []
        if room.status != PLAYING or room.game_over or not room.players:
            return out

        pending = room.pending
        player = room.player(pending.player_id) if pending is not None else room.current_player
        if player is None:
            self._end_turn(room)
            return out

        self._log(room, out, f"{player.nickname} ran out of time.")
        if isinstance(pending, BuyPending):
            self._skip_buy(room, player, out)
        elif isinstance(pending, CardPending):
            self._card_ack(room, player, pending, out)
        elif isinstance(pending, JailPending):
            self._jail_choice(room, player, pending, False, out)
        else:
            self._end_turn(room)
        return out
