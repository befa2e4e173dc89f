from types import SimpleNamespace

import numpy as np
import pytest

from nnueval.features import (
    B_KING,
    B_KNIGHT,
    B_PAWN,
    DIMENSIONS,
    SQ_NONE,
    W_KING,
    W_KNIGHT,
    W_PAWN,
    W_QUEEN,
    W_ROOK,
    Board,
    Color,
    DirtyPiece,
    active_indices,
)
from nnueval.stack import AccumulatorStack
from nnueval.state import AccumulatorCache

BIG = 32
SMALL = 16


@pytest.fixture(scope="module")
def transformer():
    rng = np.random.default_rng(0)
    return SimpleNamespace(
        biases=rng.integers(-50, 50, SMALL, dtype=np.int16),
        weights=rng.integers(-50, 50, (DIMENSIONS, SMALL), dtype=np.int16),
        psqt_weights=rng.integers(-500, 500, (DIMENSIONS, 8), dtype=np.int32),
    )


def make_cache(ft):
    cache = AccumulatorCache(SMALL)
    cache.clear(ft.biases)
    return cache


def make_board():
    return Board(
        {
            4: W_KING,
            6: W_KNIGHT,
            7: W_ROOK,
            12: W_PAWN,
            48: W_PAWN,
            60: B_KING,
            51: B_PAWN,
            36: B_KNIGHT,
        }
    )


def play(board, dp):
    if dp.remove_sq != SQ_NONE:
        board.remove_piece(dp.remove_sq)
    board.remove_piece(dp.from_sq)
    if dp.to != SQ_NONE:
        board.put_piece(dp.pc, dp.to)
    if dp.add_sq != SQ_NONE:
        board.put_piece(dp.add_pc, dp.add_sq)


def expected(ft, board, perspective):
    idx = active_indices(perspective, board)
    acc = ft.biases.astype(np.int64) + ft.weights[idx].astype(np.int64).sum(axis=0)
    psqt = ft.psqt_weights[idx].astype(np.int64).sum(axis=0)
    return acc, psqt


def check(ft, state, board):
    acc = state.acc(SMALL)
    assert acc.computed == [True, True]
    for perspective in Color:
        want_acc, want_psqt = expected(ft, board, perspective)
        np.testing.assert_array_equal(acc.accumulation[perspective].astype(np.int64), want_acc)
        np.testing.assert_array_equal(
            acc.psqt_accumulation[perspective].astype(np.int64), want_psqt
        )


def new_stack():
    stack = AccumulatorStack(BIG, SMALL, 8)
    stack.reset()
    return stack


def test_root_evaluation_matches_full_computation(transformer):
    board = make_board()
    stack = new_stack()
    stack.evaluate(board, transformer, make_cache(transformer))
    check(transformer, stack.latest(), board)


def test_only_the_requested_width_is_computed(transformer):
    board = make_board()
    stack = new_stack()
    stack.evaluate(board, transformer, make_cache(transformer))
    assert stack.latest().acc(BIG).computed == [False, False]


def test_quiet_move_forward_update(transformer):
    board = make_board()
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    dp = DirtyPiece(pc=W_KNIGHT, from_sq=6, to=21)
    stack.push(dp)
    play(board, dp)
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)


def test_backward_update_computes_root(transformer):
    root = make_board()
    board = make_board()
    stack = new_stack()
    dp = DirtyPiece(pc=W_KNIGHT, from_sq=6, to=21)
    stack.push(dp)
    play(board, dp)
    stack.evaluate(board, transformer, make_cache(transformer))
    check(transformer, stack.latest(), board)
    check(transformer, stack.states[0], root)


def test_move_then_capture_uses_double_update(transformer):
    board = make_board()
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    first = DirtyPiece(pc=W_KNIGHT, from_sq=6, to=21)
    second = DirtyPiece(pc=B_KNIGHT, from_sq=36, to=21, remove_sq=21, remove_pc=W_KNIGHT)
    for dp in (first, second):
        stack.push(dp)
        play(board, dp)
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)
    assert stack.states[1].acc(SMALL).computed == [False, False]
    assert stack.states[1].dirty_piece.to == 21
    assert stack.states[2].dirty_piece.remove_sq == 21


def test_king_move_refreshes(transformer):
    board = make_board()
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    dp = DirtyPiece(pc=W_KING, from_sq=4, to=3)
    stack.push(dp)
    play(board, dp)
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)
    entry = cache[3][Color.WHITE]
    assert entry.by_color_bb[Color.WHITE] == board.pieces(Color.WHITE)
    assert entry.by_color_bb[Color.BLACK] == board.pieces(Color.BLACK)


def test_castling(transformer):
    board = make_board()
    board.remove_piece(6)
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    dp = DirtyPiece(pc=W_KING, from_sq=4, to=6, remove_sq=7, remove_pc=W_ROOK, add_sq=5,
                    add_pc=W_ROOK)
    stack.push(dp)
    play(board, dp)
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)


def test_promotion(transformer):
    board = make_board()
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    dp = DirtyPiece(pc=W_PAWN, from_sq=48, to=SQ_NONE, add_sq=56, add_pc=W_QUEEN)
    stack.push(dp)
    play(board, dp)
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)


def test_several_plies_then_pop(transformer):
    board = make_board()
    cache = make_cache(transformer)
    stack = new_stack()
    stack.evaluate(board, transformer, cache)
    moves = [
        DirtyPiece(pc=W_PAWN, from_sq=12, to=20),
        DirtyPiece(pc=B_PAWN, from_sq=51, to=43),
        DirtyPiece(pc=W_ROOK, from_sq=7, to=15),
    ]
    snapshots = []
    for dp in moves:
        stack.push(dp)
        play(board, dp)
        snapshots.append(Board(board.placement))
    stack.evaluate(board, transformer, cache)
    check(transformer, stack.latest(), board)
    stack.pop()
    assert len(stack) == 3
    check(transformer, stack.latest(), snapshots[1])


def test_cache_reused_across_stacks(transformer):
    cache = make_cache(transformer)
    board = make_board()
    first = new_stack()
    first.evaluate(board, transformer, cache)
    board.remove_piece(51)
    board.put_piece(B_PAWN, 35)
    second = new_stack()
    second.evaluate(board, transformer, cache)
    check(transformer, second.latest(), board)


def test_push_beyond_capacity_raises():
    stack = AccumulatorStack(BIG, SMALL, 8)
    stack.reset()
    for _ in range(6):
        stack.push(DirtyPiece(pc=W_PAWN, from_sq=12, to=20))
    assert len(stack) == 7
    with pytest.raises(IndexError):
        stack.push(DirtyPiece(pc=W_PAWN, from_sq=12, to=20))


def test_pop_root_raises():
    stack = AccumulatorStack(BIG, SMALL, 8)
    stack.reset()
    with pytest.raises(IndexError):
        stack.pop()


def test_reset_clears_plies():
    stack = AccumulatorStack(BIG, SMALL, 8)
    stack.push(DirtyPiece(pc=W_PAWN, from_sq=12, to=20))
    stack.reset()
    assert len(stack) == 1
    assert stack.latest() is stack.states[0]
    assert stack.latest().dirty_piece == DirtyPiece()