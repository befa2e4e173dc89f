"""Feature transformer: sparse input features to the clipped, paired first layer."""

from __future__ import annotations

from typing import BinaryIO, Sequence

import numpy as np

from .architecture import PSQT_BUCKETS
from .common import (
    BIAS_DTYPE,
    PSQT_WEIGHT_DTYPE,
    TRANSFORMED_FEATURE_DTYPE,
    WEIGHT_DTYPE,
    read_leb128,
    write_leb128,
)
from .features import DIMENSIONS, HASH_VALUE

_MASK32 = 0xFFFFFFFF

# Order in which 16-byte blocks are stored so that packing adjacent vectors
# yields the original order. Evaluation here works element by element, so
# the stored order is the natural one.
PACKUS_EPI16_ORDER = (0, 1, 2, 3, 4, 5, 6, 7)


def invert_permutation(order: Sequence[int]) -> tuple[int, ...]:
    """Return the inverse of the permutation ``order``."""
    if sorted(order) != list(range(len(order))):
        raise ValueError(f"{tuple(order)} is not a permutation")
    inverse = [0] * len(order)
    for position, target in enumerate(order):
        inverse[target] = position
    return tuple(inverse)


INVERSE_PACKUS_EPI16_ORDER = invert_permutation(PACKUS_EPI16_ORDER)


def permute(data, block_size: int, order: Sequence[int]) -> np.ndarray:
    """Split the bytes of ``data`` into blocks and reorder each group of blocks.

    Block ``j`` of every group of ``len(order)`` blocks becomes the old block
    ``order[j]``. The result has the dtype and shape of ``data``.
    """
    if sorted(order) != list(range(len(order))):
        raise ValueError(f"{tuple(order)} is not a permutation")
    if block_size <= 0:
        raise ValueError("block size must be positive")
    array = np.ascontiguousarray(data)
    raw = np.frombuffer(array.tobytes(), dtype=np.uint8)
    chunk = block_size * len(order)
    if raw.size % chunk:
        raise ValueError(
            f"block size {block_size} times order size {len(order)} "
            f"does not divide {raw.size} bytes"
        )
    blocks = raw.reshape(-1, len(order), block_size)[:, list(order), :]
    return np.frombuffer(blocks.tobytes(), dtype=array.dtype).reshape(array.shape).copy()


def _halve(values: np.ndarray) -> np.ndarray:
    wide = values.astype(np.int32)
    halved = np.where(wide < 0, -((-wide) // 2), wide // 2)
    return halved.astype(values.dtype)


def _double(values: np.ndarray) -> np.ndarray:
    return (values.astype(np.int32) * 2).astype(values.dtype)


def _div_toward_zero(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class FeatureTransformer:
    """Turns the active input features into ``half_dimensions`` uint8 outputs."""

    def __init__(self, half_dimensions: int) -> None:
        if half_dimensions <= 0 or half_dimensions % 2:
            raise ValueError("half dimensions must be a positive even number")
        self.half_dimensions = half_dimensions
        self.input_dimensions = DIMENSIONS
        self.output_dimensions = half_dimensions
        self.buffer_size = half_dimensions * TRANSFORMED_FEATURE_DTYPE.itemsize
        self.biases = np.zeros(half_dimensions, dtype=BIAS_DTYPE)
        self.weights = np.zeros((DIMENSIONS, half_dimensions), dtype=WEIGHT_DTYPE)
        self.psqt_weights = np.zeros((DIMENSIONS, PSQT_BUCKETS), dtype=PSQT_WEIGHT_DTYPE)

    def hash_value(self) -> int:
        """Hash of the transformer as embedded in the network file."""
        return (HASH_VALUE ^ (self.output_dimensions * 2)) & _MASK32

    def read_parameters(self, stream: BinaryIO) -> None:
        """Load biases and weights; raises NetworkFormatError on a bad stream."""
        half, inputs = self.half_dimensions, self.input_dimensions
        biases = read_leb128(stream, BIAS_DTYPE, half)
        weights = read_leb128(stream, WEIGHT_DTYPE, half * inputs)
        psqt = read_leb128(stream, PSQT_WEIGHT_DTYPE, PSQT_BUCKETS * inputs)

        biases = permute(biases, 16, PACKUS_EPI16_ORDER)
        weights = permute(weights, 16, PACKUS_EPI16_ORDER)

        self.biases = _double(biases)
        self.weights = _double(weights).reshape(inputs, half)
        self.psqt_weights = psqt.reshape(inputs, PSQT_BUCKETS).copy()

    def write_parameters(self, stream: BinaryIO) -> None:
        """Store biases and weights in file order, without changing them here."""
        biases = _halve(permute(self.biases, 16, INVERSE_PACKUS_EPI16_ORDER))
        weights = _halve(permute(self.weights, 16, INVERSE_PACKUS_EPI16_ORDER))
        write_leb128(stream, biases.ravel())
        write_leb128(stream, weights.ravel())
        write_leb128(stream, np.asarray(self.psqt_weights, dtype=PSQT_WEIGHT_DTYPE).ravel())

    def transform(self, board, stack, cache, bucket: int) -> tuple[int, np.ndarray]:
        """Return the PSQT score for ``bucket`` and the transformed features."""
        if cache.size != self.half_dimensions:
            raise ValueError(
                f"cache of size {cache.size} does not fit a transformer "
                f"of {self.half_dimensions} dimensions"
            )
        if not 0 <= bucket < PSQT_BUCKETS:
            raise IndexError(f"invalid bucket {bucket}")

        stack.evaluate(board, self, cache)
        accumulator = stack.latest().acc(self.half_dimensions)

        us = board.side_to_move
        perspectives = (us, ~us)
        psqt_acc = accumulator.psqt_accumulation
        psqt = _div_toward_zero(
            int(psqt_acc[perspectives[0]][bucket]) - int(psqt_acc[perspectives[1]][bucket]), 2
        )

        half = self.half_dimensions // 2
        parts = []
        for perspective in perspectives:
            row = accumulator.accumulation[perspective].astype(np.int32)
            sum0 = np.clip(row[:half], 0, 127 * 2)
            sum1 = np.clip(row[half:], 0, 127 * 2)
            parts.append((sum0 * sum1) // 512)
        output = np.concatenate(parts).astype(TRANSFORMED_FEATURE_DTYPE)
        return psqt, output