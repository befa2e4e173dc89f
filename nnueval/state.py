"""Accumulators, per-ply accumulator state and the per-king-square refresh caches."""

from __future__ import annotations

import numpy as np

from .architecture import PSQT_BUCKETS
from .common import BIAS_DTYPE, PSQT_WEIGHT_DTYPE
from .features import COLOR_NB, PIECE_TYPE_NB, SQUARE_NB, DirtyPiece


class Accumulator:
    """Result of the affine feature transformation, for both perspectives."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.accumulation = np.zeros((COLOR_NB, size), dtype=BIAS_DTYPE)
        self.psqt_accumulation = np.zeros((COLOR_NB, PSQT_BUCKETS), dtype=PSQT_WEIGHT_DTYPE)
        self.computed = [False] * COLOR_NB


class CacheEntry:
    """Accumulator for one king square and perspective, with the pieces it reflects."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.accumulation = np.zeros(size, dtype=BIAS_DTYPE)
        self.psqt_accumulation = np.zeros(PSQT_BUCKETS, dtype=PSQT_WEIGHT_DTYPE)
        self.by_color_bb = [0] * COLOR_NB
        self.by_type_bb = [0] * PIECE_TYPE_NB

    def clear(self, biases) -> None:
        """Reset to an empty board: biases only, no pieces."""
        biases = np.asarray(biases)
        if biases.shape != (self.size,):
            raise ValueError(f"expected {self.size} biases, got shape {biases.shape}")
        self.accumulation = biases.astype(BIAS_DTYPE)
        self.psqt_accumulation = np.zeros(PSQT_BUCKETS, dtype=PSQT_WEIGHT_DTYPE)
        self.by_color_bb = [0] * COLOR_NB
        self.by_type_bb = [0] * PIECE_TYPE_NB


class AccumulatorCache:
    """One pair of entries (by perspective) for every king square."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.entries = [[CacheEntry(size) for _ in range(COLOR_NB)] for _ in range(SQUARE_NB)]

    def clear(self, biases) -> None:
        """Reset every entry to the given biases."""
        for pair in self.entries:
            for entry in pair:
                entry.clear(biases)

    def __getitem__(self, square: int) -> list[CacheEntry]:
        if not 0 <= square < SQUARE_NB:
            raise IndexError(f"invalid square {square}")
        return self.entries[square]


class AccumulatorState:
    """The big and small accumulators for one ply, with the move that led there."""

    def __init__(self, big_size: int, small_size: int) -> None:
        self.accumulator_big = Accumulator(big_size)
        self.accumulator_small = Accumulator(small_size)
        self.dirty_piece = DirtyPiece()

    def acc(self, size: int) -> Accumulator:
        """Return the accumulator of the given width."""
        if size == self.accumulator_big.size:
            return self.accumulator_big
        if size == self.accumulator_small.size:
            return self.accumulator_small
        raise ValueError(f"no accumulator of size {size}")

    def reset(self, dirty_piece: DirtyPiece) -> None:
        """Record ``dirty_piece`` and mark both accumulators as not computed."""
        self.dirty_piece = dirty_piece
        self.accumulator_big.computed = [False] * COLOR_NB
        self.accumulator_small.computed = [False] * COLOR_NB


def _biases(network) -> np.ndarray:
    return np.asarray(network.feature_transformer.biases)


class AccumulatorCaches:
    """Refresh caches for the big and the small network."""

    def __init__(self, networks) -> None:
        self.big = AccumulatorCache(_biases(networks.big).size)
        self.small = AccumulatorCache(_biases(networks.small).size)
        self.clear(networks)

    def clear(self, networks) -> None:
        """Reset both caches to the biases of ``networks``."""
        self.big.clear(_biases(networks.big))
        self.small.clear(_biases(networks.small))