import pytest

from monopolista.board import create_room_board, upgrade_cost, forward_path, backward_path, path_to
from monopolista.rules import compute_rent, owns_full_group


@pytest.fixture
def board():
    return create_room_board()


def own(board, owner, *ids):
    for i in ids:
        board[i].ownerId = owner


def test_unowned_and_self_owned_cost_nothing(board):
    assert compute_rent(board, board[1], 7) == 0
    own(board, "a", 1)
    assert compute_rent(board, board[1], 7, payer_id="a") == 0
    assert compute_rent(board, None, 7) == 0


def test_property_rent_follows_group_count(board):
    own(board, "a", 1)
    assert compute_rent(board, board[1], 5, payer_id="b") == 4
    own(board, "a", 3)
    assert compute_rent(board, board[1], 5, payer_id="b") == 8


def test_single_owned_tile_charges_first_level_even_with_other_sets(board):
    own(board, "a", 11, 6, 8, 9)
    assert compute_rent(board, board[11], 2, payer_id="b") == 10


@pytest.mark.parametrize("count,expected", [(1, 25), (2, 50), (3, 100), (4, 200)])
def test_station_rent_doubles(board, count, expected):
    own(board, "a", *[5, 15, 25, 35][:count])
    assert compute_rent(board, board[5], 9, payer_id="b") == expected


def test_utility_rent_uses_dice_sum(board):
    own(board, "a", 12)
    assert compute_rent(board, board[12], 7, payer_id="b") == 28
    own(board, "a", 28)
    assert compute_rent(board, board[12], 7, payer_id="b") == 70


def test_houses_and_hotel_multiply_rent(board):
    own(board, "a", 1, 3)
    board[1].houses = 2
    assert compute_rent(board, board[1], 4, payer_id="b") == 8 * 3
    board[1].houses = 0
    board[1].hasHotel = True
    assert compute_rent(board, board[1], 4, payer_id="b") == 8 * 6


def test_owns_full_group(board):
    own(board, "a", 6, 8)
    assert not owns_full_group(board, "a", board[6])
    own(board, "a", 9)
    assert owns_full_group(board, "a", board[6])


def test_upgrade_cost_has_floor(board):
    assert upgrade_cost(board[1]) == 50
    assert upgrade_cost(board[39]) == 200


def test_paths_wrap_around_board():
    assert forward_path(38, 3) == [39, 0, 1]
    assert backward_path(1, 3) == [0, 39, 38]
    assert path_to(36, 0) == [37, 38, 39, 0]
    assert path_to(5, 5) == []


def test_room_boards_are_independent():
    a = create_room_board()
    b = create_room_board()
    a[1].ownerId = "x"
    assert b[1].ownerId is None
    assert len(a) == 40
