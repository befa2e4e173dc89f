"""Stack of accumulator states, one per ply, updated incrementally where possible."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterator

import numpy as np

from .architecture import (
    PSQT_BUCKETS,
    TRANSFORMED_FEATURE_DIMENSIONS_BIG,
    TRANSFORMED_FEATURE_DIMENSIONS_SMALL,
)
from .features import (
    SQ_NONE,
    Board,
    Color,
    DirtyPiece,
    PieceType,
    changed_indices,
    make_index,
    make_piece,
    requires_refresh,
)
from .state import AccumulatorCache, AccumulatorState

# One state for every ply of the deepest search, plus the root.
DEFAULT_CAPACITY = 247

_PIECE_TYPES = tuple(PieceType(pt) for pt in range(PieceType.PAWN, PieceType.KING + 1))


def _squares(bitboard: int) -> Iterator[int]:
    while bitboard:
        low = bitboard & -bitboard
        yield low.bit_length() - 1
        bitboard ^= low


def _weight_rows(transformer, dimensions: int) -> tuple[np.ndarray, np.ndarray]:
    weights = np.asarray(transformer.weights).reshape(-1, dimensions)
    psqt = np.asarray(transformer.psqt_weights).reshape(-1, PSQT_BUCKETS)
    return weights, psqt


def _apply(
    weights: np.ndarray,
    psqt: np.ndarray,
    source,
    target,
    perspective: int,
    added: list[int],
    removed: list[int],
) -> None:
    """Write ``source + added - removed`` into ``target`` for one perspective."""
    acc = source.accumulation[perspective].copy()
    psq = source.psqt_accumulation[perspective].copy()
    for index in added:
        acc += weights[index]
        psq += psqt[index]
    for index in removed:
        acc -= weights[index]
        psq -= psqt[index]
    target.accumulation[perspective] = acc
    target.psqt_accumulation[perspective] = psq
    target.computed[perspective] = True


class AccumulatorStack:
    """Accumulator states for the root and every ply played on top of it."""

    def __init__(
        self,
        big_size: int = TRANSFORMED_FEATURE_DIMENSIONS_BIG,
        small_size: int = TRANSFORMED_FEATURE_DIMENSIONS_SMALL,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.states = [AccumulatorState(big_size, small_size) for _ in range(capacity)]
        self.size = 1

    def __len__(self) -> int:
        return self.size

    def latest(self) -> AccumulatorState:
        """The state of the most recent ply."""
        return self.states[self.size - 1]

    def reset(self) -> None:
        """Drop all plies and mark the root as not computed."""
        self.states[0].reset(DirtyPiece())
        self.size = 1

    def push(self, dirty_piece: DirtyPiece) -> None:
        """Add a ply reached by the move described by ``dirty_piece``."""
        if self.size + 1 >= len(self.states):
            raise IndexError("accumulator stack is full")
        self.states[self.size].reset(dirty_piece)
        self.size += 1

    def pop(self) -> None:
        """Remove the most recent ply."""
        if self.size <= 1:
            raise IndexError("cannot pop the root accumulator state")
        self.size -= 1

    def evaluate(self, board: Board, transformer, cache: AccumulatorCache) -> None:
        """Bring the latest accumulator of ``cache.size`` width up to date for both sides."""
        dimensions = cache.size
        weights, psqt = _weight_rows(transformer, dimensions)
        for perspective in Color:
            self._evaluate_side(perspective, board, weights, psqt, cache, dimensions)

    def _evaluate_side(self, perspective, board, weights, psqt, cache, dimensions) -> None:
        last = self._find_last_usable(perspective, dimensions)
        if self.states[last].acc(dimensions).computed[perspective]:
            self._forward_update(perspective, board, weights, psqt, dimensions, last)
        else:
            self._refresh_from_cache(perspective, board, weights, psqt, cache, dimensions)
            self._backward_update(perspective, board, weights, psqt, dimensions, last)

    def _find_last_usable(self, perspective: int, dimensions: int) -> int:
        """Latest computed state, or the state of a move that forces a refresh."""
        for index in range(self.size - 1, 0, -1):
            state = self.states[index]
            if state.acc(dimensions).computed[perspective]:
                return index
            if requires_refresh(state.dirty_piece, perspective):
                return index
        return 0

    def _forward_update(self, perspective, board, weights, psqt, dimensions, begin) -> None:
        ksq = board.king_square(perspective)
        nxt = begin + 1
        while nxt < self.size:
            if nxt + 1 < self.size:
                dp1 = self.states[nxt].dirty_piece
                dp2 = self.states[nxt + 1].dirty_piece
                if dp1.to != SQ_NONE and dp1.to == dp2.remove_sq:
                    # A piece moved and was captured at once: skip the middle ply.
                    removed, added = changed_indices(
                        perspective, ksq, replace(dp1, to=SQ_NONE)
                    )
                    more_removed, more_added = changed_indices(
                        perspective, ksq, replace(dp2, remove_sq=SQ_NONE)
                    )
                    _apply(
                        weights,
                        psqt,
                        self.states[nxt - 1].acc(dimensions),
                        self.states[nxt + 1].acc(dimensions),
                        perspective,
                        added + more_added,
                        removed + more_removed,
                    )
                    nxt += 2
                    continue
            target = self.states[nxt]
            removed, added = changed_indices(perspective, ksq, target.dirty_piece)
            _apply(
                weights,
                psqt,
                self.states[nxt - 1].acc(dimensions),
                target.acc(dimensions),
                perspective,
                added,
                removed,
            )
            nxt += 1

    def _backward_update(self, perspective, board, weights, psqt, dimensions, end) -> None:
        ksq = board.king_square(perspective)
        for nxt in range(self.size - 2, end - 1, -1):
            computed = self.states[nxt + 1]
            # Undoing a move: what it added is removed and vice versa.
            added, removed = changed_indices(perspective, ksq, computed.dirty_piece)
            _apply(
                weights,
                psqt,
                computed.acc(dimensions),
                self.states[nxt].acc(dimensions),
                perspective,
                added,
                removed,
            )

    def _refresh_from_cache(self, perspective, board, weights, psqt, cache, dimensions) -> None:
        ksq = board.king_square(perspective)
        entry = cache[ksq][perspective]
        removed: list[int] = []
        added: list[int] = []

        for color in Color:
            for piece_type in _PIECE_TYPES:
                piece = make_piece(color, piece_type)
                old_bb = entry.by_color_bb[color] & entry.by_type_bb[piece_type]
                new_bb = board.pieces(color, piece_type)
                removed.extend(
                    make_index(perspective, sq, piece, ksq) for sq in _squares(old_bb & ~new_bb)
                )
                added.extend(
                    make_index(perspective, sq, piece, ksq) for sq in _squares(new_bb & ~old_bb)
                )

        for index in removed:
            entry.accumulation -= weights[index]
            entry.psqt_accumulation -= psqt[index]
        for index in added:
            entry.accumulation += weights[index]
            entry.psqt_accumulation += psqt[index]

        accumulator = self.latest().acc(dimensions)
        accumulator.accumulation[perspective] = entry.accumulation
        accumulator.psqt_accumulation[perspective] = entry.psqt_accumulation
        accumulator.computed[perspective] = True

        for color in Color:
            entry.by_color_bb[color] = board.pieces(color)
        for piece_type in _PIECE_TYPES:
            entry.by_type_bb[piece_type] = board.pieces(None, piece_type)