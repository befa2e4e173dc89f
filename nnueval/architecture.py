"""The layer stack that turns transformed features into a positional score."""

from __future__ import annotations

from typing import BinaryIO

import numpy as np

from .activations import ClippedReLU, SqrClippedReLU
from .affine import AffineTransform, AffineTransformSparseInput
from .common import OUTPUT_SCALE, WEIGHT_SCALE_BITS

TRANSFORMED_FEATURE_DIMENSIONS_BIG = 3072
L2_BIG = 15
L3_BIG = 32

TRANSFORMED_FEATURE_DIMENSIONS_SMALL = 128
L2_SMALL = 15
L3_SMALL = 32

PSQT_BUCKETS = 8
LAYER_STACKS = 8

_HASH_SEED = 0xEC42E90D
_MASK32 = 0xFFFFFFFF


def _div_toward_zero(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class NetworkArchitecture:
    """One layer stack: sparse affine, squared and plain clipped ReLUs, two affines."""

    def __init__(self, l1: int, l2: int, l3: int) -> None:
        self.transformed_feature_dimensions = l1
        self.fc_0_outputs = l2
        self.fc_1_outputs = l3

        self.fc_0 = AffineTransformSparseInput(l1, l2 + 1)
        self.ac_sqr_0 = SqrClippedReLU(l2 + 1)
        self.ac_0 = ClippedReLU(l2 + 1)
        self.fc_1 = AffineTransform(l2 * 2, l3)
        self.ac_1 = ClippedReLU(l3)
        self.fc_2 = AffineTransform(l3, 1)

    def hash_value(self) -> int:
        """Hash of the layer structure as embedded in the network file."""
        value = (_HASH_SEED ^ (self.transformed_feature_dimensions * 2)) & _MASK32
        for layer in (self.fc_0, self.ac_0, self.fc_1, self.ac_1, self.fc_2):
            value = layer.hash_value(value)
        return value

    def _layers(self):
        return (self.fc_0, self.ac_0, self.fc_1, self.ac_1, self.fc_2)

    def read_parameters(self, stream: BinaryIO) -> None:
        """Load all layer parameters; raises NetworkFormatError on a short stream."""
        for layer in self._layers():
            layer.read_parameters(stream)

    def write_parameters(self, stream: BinaryIO) -> None:
        """Store all layer parameters in file order."""
        for layer in self._layers():
            layer.write_parameters(stream)

    def propagate(self, transformed_features) -> int:
        """Return the positional output for one set of transformed features."""
        l2 = self.fc_0_outputs
        fc_0_out = self.fc_0.propagate(transformed_features)
        ac_sqr_0_out = self.ac_sqr_0.propagate(fc_0_out)
        ac_0_out = self.ac_0.propagate(fc_0_out)

        fc_1_in = np.concatenate((ac_sqr_0_out[:l2], ac_0_out[:l2]))
        fc_1_out = self.fc_1.propagate(fc_1_in)
        ac_1_out = self.ac_1.propagate(fc_1_out)
        fc_2_out = self.fc_2.propagate(ac_1_out)

        # fc_0_out[l2] has 1.0 == 127 * (1 << WEIGHT_SCALE_BITS); rescale to 600 * OUTPUT_SCALE
        fwd_out = _div_toward_zero(
            int(fc_0_out[l2]) * (600 * OUTPUT_SCALE), 127 * (1 << WEIGHT_SCALE_BITS)
        )
        return int(fc_2_out[0]) + fwd_out