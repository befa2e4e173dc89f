# nnueval

`nnueval` holds the building blocks of an efficiently updatable neural
network (NNUE) evaluation for chess. It uses the HalfKAv2_hm feature set and
integer arithmetic throughout. It provides signed LEB128 compression for
parameter data, feature indexing, the quantized network layers, a feature
transformer, and accumulators that are kept up to date incrementally as
moves are made.

## Installation

```
pip install .
```

Only `numpy` is required. To run the tests, install the `test` extra and run
`pytest`:

```
pip install ".[test]"
pytest
```

## Modules

- `nnueval.common`: little-endian integer I/O and signed LEB128 compression
  (`read_uint32`, `write_uint32`, `read_array`, `write_array`, `read_leb128`,
  `write_leb128`) and `ceil_to_multiple`. A truncated or malformed stream
  raises `NetworkFormatError`, a subclass of `ValueError`. LEB128 coding of an
  unsigned type raises `TypeError`.
- `nnueval.features`: `Color`, `PieceType`, `make_piece`, `type_of`, a
  minimal `Board` (piece placement as a dict of square to piece, and the side
  to move), `DirtyPiece` describing the pieces touched by one move, and the
  HalfKAv2_hm indexing: `make_index`, `active_indices`, `changed_indices`
  (returns the removed and added indices) and `requires_refresh`.
- `nnueval.affine`: `AffineTransform` and `AffineTransformSparseInput`,
  fully connected layers with int8 weights and int32 outputs. Each has
  `hash_value`, `read_parameters`, `write_parameters` and `propagate`.
- `nnueval.activations`: `ClippedReLU` and `SqrClippedReLU`, mapping int32
  sums to uint8 activations. They have no parameters.
- `nnueval.architecture`: `NetworkArchitecture(l1, l2, l3)`, the layer stack
  that follows the feature transformer. `propagate` returns the positional
  output as an integer.
- `nnueval.transformer`: `FeatureTransformer(half_dimensions)`, which reads
  and writes its LEB128-compressed parameters, and whose `transform` returns
  the PSQT score of one bucket together with the uint8 features for the
  layer stack. Also `permute` and `invert_permutation`.
- `nnueval.state`: `Accumulator`, `CacheEntry`, `AccumulatorCache` (one entry
  per king square and perspective), `AccumulatorState`, and
  `AccumulatorCaches`, which takes an object with `big` and `small`
  attributes, each having a `feature_transformer` with `biases`.
- `nnueval.stack`: `AccumulatorStack`, one accumulator state per ply, with
  `push`, `pop`, `reset`, `latest` and `evaluate`. `evaluate` updates the
  latest accumulator forward or backward from the nearest usable state, or
  refreshes it from the per-king-square cache.

## Example

```python
import io

from nnueval.architecture import NetworkArchitecture
from nnueval.features import B_KING, W_KING, W_QUEEN, Board
from nnueval.stack import AccumulatorStack
from nnueval.state import AccumulatorCache
from nnueval.transformer import FeatureTransformer

transformer = FeatureTransformer(128)
layers = NetworkArchitecture(128, 15, 32)

cache = AccumulatorCache(128)
cache.clear(transformer.biases)
stack = AccumulatorStack(big_size=3072, small_size=128, capacity=16)

board = Board({4: W_KING, 60: B_KING, 3: W_QUEEN})
bucket = (board.piece_count() - 1) // 4
psqt, features = transformer.transform(board, stack, cache, bucket)
positional = layers.propagate(features)

# Parameters round-trip through a binary stream.
buffer = io.BytesIO()
transformer.write_parameters(buffer)
buffer.seek(0)
FeatureTransformer(128).read_parameters(buffer)
```

After a move, `stack.push(DirtyPiece(...))` records it and the next
`transform` call updates the accumulators incrementally instead of
recomputing them.

## What the package does not do

- It does not read or write a complete network file. The file header
  (version, structure hash and description) and the sequence of a feature
  transformer followed by several layer stacks must be handled by the caller;
  the package reads and writes each component's parameters from a stream.
- It does not look for network files on disk or carry an embedded network.
- It does not combine the PSQT and positional outputs into a final score, and
  does not produce a text report of piece values or bucket contributions.
- It has no move generation and no command-line program; `Board` only holds
  piece placement and the side to move.