import io

import numpy as np
import pytest

from nnueval.affine import AffineTransform, AffineTransformSparseInput
from nnueval.common import NetworkFormatError


def _params(layer, biases, weights):
    buf = io.BytesIO()
    buf.write(np.asarray(biases, dtype="<i4").tobytes())
    buf.write(np.asarray(weights, dtype=np.int8).tobytes())
    buf.seek(0)
    layer.read_parameters(buf)
    return buf


def _random_params(layer, seed=0):
    rng = np.random.default_rng(seed)
    biases = rng.integers(-1000, 1000, layer.output_dimensions)
    weights = rng.integers(
        -128, 128, layer.output_dimensions * layer.padded_input_dimensions
    )
    return biases, weights


def test_hash_seed_and_output_dimensions():
    layer = AffineTransform(32, 16)
    assert layer.hash_value(0) - 0xCC03DAE4 == 16


def test_hash_mixes_previous_value():
    layer = AffineTransform(32, 1)
    assert layer.hash_value(1) == layer.hash_value(0) ^ 0x80000000
    assert 0 <= layer.hash_value(0xFFFFFFFF) <= 0xFFFFFFFF


def test_padding():
    layer = AffineTransform(30, 32)
    assert layer.padded_input_dimensions == 32
    assert layer.weights.shape == (32, 32)
    assert AffineTransform(33, 1).padded_input_dimensions == 64


def test_round_trip_bytes():
    layer = AffineTransform(30, 32)
    biases, weights = _random_params(layer)
    src = _params(layer, biases, weights).getvalue()
    out = io.BytesIO()
    layer.write_parameters(out)
    assert out.getvalue() == src
    assert len(src) == 4 * 32 + 32 * 32


def test_truncated_stream_raises():
    layer = AffineTransform(32, 1)
    with pytest.raises(NetworkFormatError):
        layer.read_parameters(io.BytesIO(b"\x00" * 10))


def test_zero_weights_give_biases():
    layer = AffineTransform(8, 4)
    _params(layer, [1, -2, 3, -4], np.zeros(4 * 32))
    out = layer.propagate(np.full(8, 100, dtype=np.uint8))
    assert out.tolist() == [1, -2, 3, -4]


def test_worked_example():
    layer = AffineTransform(2, 1)
    weights = np.zeros(32)
    weights[0], weights[1] = 3, -2
    _params(layer, [5], weights)
    assert layer.propagate([10, 4]).tolist() == [27]


def test_padding_weights_are_ignored():
    layer = AffineTransform(2, 1)
    weights = np.zeros(32)
    weights[5] = 100
    _params(layer, [7], weights)
    padded = np.zeros(32, dtype=np.uint8)
    padded[5] = 50
    assert layer.propagate(padded).tolist() == [7]


def test_linearity():
    layer = AffineTransform(30, 32)
    _params(layer, *_random_params(layer, 1))
    rng = np.random.default_rng(2)
    a = rng.integers(0, 60, 30).astype(np.uint8)
    b = rng.integers(0, 60, 30).astype(np.uint8)
    base = layer.propagate(np.zeros(30, dtype=np.uint8)).astype(np.int64)
    total = layer.propagate(a + b).astype(np.int64) - base
    parts = (layer.propagate(a).astype(np.int64) - base) + (
        layer.propagate(b).astype(np.int64) - base
    )
    assert np.array_equal(total, parts)


def test_too_few_inputs():
    layer = AffineTransform(8, 4)
    with pytest.raises(ValueError):
        layer.propagate([1, 2, 3])


def test_sparse_requires_multiple_of_16():
    with pytest.raises(ValueError):
        AffineTransformSparseInput(128, 15)


def test_sparse_matches_dense():
    dense = AffineTransform(128, 16)
    sparse = AffineTransformSparseInput(128, 16)
    params = _random_params(dense, 3)
    _params(dense, *params)
    _params(sparse, *params)
    rng = np.random.default_rng(4)
    x = rng.integers(0, 128, 128).astype(np.uint8)
    x[rng.random(128) < 0.7] = 0
    assert np.array_equal(sparse.propagate(x), dense.propagate(x))


def test_sparse_all_zero_input_gives_biases():
    layer = AffineTransformSparseInput(64, 16)
    biases, weights = _random_params(layer, 5)
    _params(layer, biases, weights)
    assert layer.propagate(np.zeros(64, dtype=np.uint8)).tolist() == list(biases)


def test_sparse_hash_equals_dense_hash():
    assert AffineTransformSparseInput(128, 16).hash_value(123) == AffineTransform(
        128, 16
    ).hash_value(123)