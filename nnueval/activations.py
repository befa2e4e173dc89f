"""Clipped ReLU activation layers mapping int32 sums to uint8 activations."""

from __future__ import annotations

from typing import BinaryIO

import numpy as np

from .common import WEIGHT_SCALE_BITS, ceil_to_multiple

_HASH_SEED = 0x538D24C7
_MASK32 = 0xFFFFFFFF

INPUT_DTYPE = np.dtype(np.int32)
OUTPUT_DTYPE = np.dtype(np.uint8)


class ClippedReLU:
    """Shifts out the weight scale and clamps the result to ``[0, 127]``."""

    def __init__(self, dimensions: int) -> None:
        if dimensions <= 0:
            raise ValueError("layer dimensions must be positive")
        self.input_dimensions = dimensions
        self.output_dimensions = dimensions
        self.padded_output_dimensions = ceil_to_multiple(dimensions, 32)

    def hash_value(self, prev_hash: int) -> int:
        """Hash of this layer chained onto ``prev_hash``."""
        return (_HASH_SEED + (prev_hash & _MASK32)) & _MASK32

    def read_parameters(self, stream: BinaryIO) -> None:
        """The layer has no parameters; nothing is read."""

    def write_parameters(self, stream: BinaryIO) -> None:
        """The layer has no parameters; nothing is written."""

    def _inputs(self, inputs) -> np.ndarray:
        array = np.asarray(inputs).ravel()
        if array.size < self.input_dimensions:
            raise ValueError(
                f"expected at least {self.input_dimensions} inputs, got {array.size}"
            )
        return array[: self.input_dimensions].astype(INPUT_DTYPE).astype(np.int64)

    def propagate(self, inputs) -> np.ndarray:
        """Forward pass over the first ``input_dimensions`` inputs."""
        x = self._inputs(inputs)
        return np.clip(x >> WEIGHT_SCALE_BITS, 0, 127).astype(OUTPUT_DTYPE)


class SqrClippedReLU(ClippedReLU):
    """Squares the input, scales it down and clamps the result to at most 127."""

    def propagate(self, inputs) -> np.ndarray:
        """Forward pass: ``min(127, x * x >> (2 * WEIGHT_SCALE_BITS + 7))``."""
        x = self._inputs(inputs)
        squared = (x * x) >> (2 * WEIGHT_SCALE_BITS + 7)
        return np.minimum(squared, 127).astype(OUTPUT_DTYPE)