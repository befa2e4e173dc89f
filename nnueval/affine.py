"""Fully connected layers with int8 weights and int32 accumulation."""

from __future__ import annotations

from typing import BinaryIO

import numpy as np

from .common import MAX_SIMD_WIDTH, ceil_to_multiple, read_array, write_array

_HASH_SEED = 0xCC03DAE4
_MASK32 = 0xFFFFFFFF

INPUT_DTYPE = np.dtype(np.uint8)
OUTPUT_DTYPE = np.dtype(np.int32)
_BIAS_DTYPE = np.dtype(np.int32)
_WEIGHT_DTYPE = np.dtype(np.int8)


class AffineTransform:
    """Dense affine layer: ``output = biases + weights @ input``."""

    def __init__(self, input_dimensions: int, output_dimensions: int) -> None:
        if input_dimensions <= 0 or output_dimensions <= 0:
            raise ValueError("layer dimensions must be positive")
        self.input_dimensions = input_dimensions
        self.output_dimensions = output_dimensions
        self.padded_input_dimensions = ceil_to_multiple(input_dimensions, MAX_SIMD_WIDTH)
        self.padded_output_dimensions = ceil_to_multiple(output_dimensions, MAX_SIMD_WIDTH)
        self.biases = np.zeros(output_dimensions, dtype=_BIAS_DTYPE)
        self.weights = np.zeros(
            (output_dimensions, self.padded_input_dimensions), dtype=_WEIGHT_DTYPE
        )

    def hash_value(self, prev_hash: int) -> int:
        """Hash of this layer chained onto ``prev_hash``."""
        prev_hash &= _MASK32
        value = (_HASH_SEED + self.output_dimensions) & _MASK32
        value ^= prev_hash >> 1
        value ^= (prev_hash << 31) & _MASK32
        return value

    def read_parameters(self, stream: BinaryIO) -> None:
        """Load biases and weights; raises NetworkFormatError on a short stream."""
        biases = read_array(stream, _BIAS_DTYPE, self.output_dimensions)
        weights = read_array(
            stream, _WEIGHT_DTYPE, self.output_dimensions * self.padded_input_dimensions
        )
        self.biases = biases.copy()
        self.weights = weights.reshape(
            self.output_dimensions, self.padded_input_dimensions
        ).copy()

    def write_parameters(self, stream: BinaryIO) -> None:
        """Store biases and weights in file order."""
        write_array(stream, self.biases, _BIAS_DTYPE)
        write_array(stream, self.weights.ravel(), _WEIGHT_DTYPE)

    def _inputs(self, inputs) -> np.ndarray:
        array = np.asarray(inputs, dtype=INPUT_DTYPE).ravel()
        if array.size < self.input_dimensions:
            raise ValueError(
                f"expected at least {self.input_dimensions} inputs, got {array.size}"
            )
        return array[: self.input_dimensions].astype(np.int64)

    def propagate(self, inputs) -> np.ndarray:
        """Forward pass over the first ``input_dimensions`` inputs."""
        x = self._inputs(inputs)
        w = self.weights[:, : self.input_dimensions].astype(np.int64)
        result = self.biases.astype(np.int64) + w @ x
        return result.astype(OUTPUT_DTYPE)


class AffineTransformSparseInput(AffineTransform):
    """Affine layer that only visits the non-zero inputs."""

    def __init__(self, input_dimensions: int, output_dimensions: int) -> None:
        if output_dimensions % 16 != 0:
            raise ValueError("output dimensions must be divisible by 16")
        super().__init__(input_dimensions, output_dimensions)

    def propagate(self, inputs) -> np.ndarray:
        """Forward pass accumulating only the columns of non-zero inputs."""
        x = self._inputs(inputs)
        nonzero = np.flatnonzero(x)
        result = self.biases.astype(np.int64)
        if nonzero.size:
            columns = self.weights[:, nonzero].astype(np.int64)
            result = result + columns @ x[nonzero]
        return result.astype(OUTPUT_DTYPE)