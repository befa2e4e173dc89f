"""Binary I/O helpers shared by every part of the network file format."""

from __future__ import annotations

import struct
from typing import BinaryIO

import numpy as np

# Version of the evaluation file
VERSION = 0x7AF32F20

# Constants used in evaluation value calculation
OUTPUT_SCALE = 16
WEIGHT_SCALE_BITS = 6

CACHE_LINE_SIZE = 64
MAX_SIMD_WIDTH = 32

LEB128_MAGIC = b"COMPRESSED_LEB128"

BIAS_DTYPE = np.dtype(np.int16)
WEIGHT_DTYPE = np.dtype(np.int16)
PSQT_WEIGHT_DTYPE = np.dtype(np.int32)
TRANSFORMED_FEATURE_DTYPE = np.dtype(np.uint8)

_UINT32 = struct.Struct("<I")


class NetworkFormatError(ValueError):
    """Raised when a network stream is truncated or malformed."""


def ceil_to_multiple(n: int, base: int) -> int:
    """Round ``n`` up to a multiple of ``base``."""
    return (n + base - 1) // base * base


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) != size:
        raise NetworkFormatError(
            f"unexpected end of stream: wanted {size} bytes, got {len(data or b'')}"
        )
    return data


def read_uint32(stream: BinaryIO) -> int:
    """Read one little-endian unsigned 32-bit integer."""
    return _UINT32.unpack(_read_exact(stream, _UINT32.size))[0]


def write_uint32(stream: BinaryIO, value: int) -> None:
    """Write one little-endian unsigned 32-bit integer."""
    stream.write(_UINT32.pack(value & 0xFFFFFFFF))


def _little_endian(dtype) -> np.dtype:
    return np.dtype(dtype).newbyteorder("<")


def read_array(stream: BinaryIO, dtype, count: int) -> np.ndarray:
    """Read ``count`` little-endian integers of ``dtype`` into a new array."""
    le = _little_endian(dtype)
    data = _read_exact(stream, le.itemsize * count)
    return np.frombuffer(data, dtype=le).astype(np.dtype(dtype))


def write_array(stream: BinaryIO, values, dtype) -> None:
    """Write ``values`` as little-endian integers of ``dtype``."""
    stream.write(np.asarray(values).astype(_little_endian(dtype)).tobytes())


def _require_signed(dtype: np.dtype) -> None:
    if dtype.kind != "i":
        raise TypeError(f"LEB128 coding needs a signed integer type, not {dtype}")


def read_leb128(stream: BinaryIO, dtype, count: int) -> np.ndarray:
    """Read ``count`` signed LEB128-compressed integers of ``dtype``."""
    dtype = np.dtype(dtype)
    _require_signed(dtype)

    if _read_exact(stream, len(LEB128_MAGIC)) != LEB128_MAGIC:
        raise NetworkFormatError("missing LEB128 magic string")

    bytes_left = read_uint32(stream)
    data = np.frombuffer(_read_exact(stream, bytes_left), dtype=np.uint8)

    if count == 0:
        if data.size:
            raise NetworkFormatError("LEB128 block holds more bytes than values")
        return np.zeros(0, dtype=dtype)

    ends = np.flatnonzero((data & 0x80) == 0)
    if ends.size != count or ends[-1] != data.size - 1:
        raise NetworkFormatError(
            f"LEB128 block holds {ends.size} complete values, expected {count}"
        )

    starts = np.concatenate(([0], ends[:-1] + 1))
    lengths = ends - starts + 1
    max_bytes = -(-dtype.itemsize * 8 // 7)
    if lengths.max() > max_bytes:
        raise NetworkFormatError(f"LEB128 value too long for {dtype}")

    result = np.zeros(count, dtype=np.int64)
    for k in range(int(lengths.max())):
        mask = lengths > k
        chunk = (data[starts[mask] + k] & 0x7F).astype(np.int64)
        result[mask] |= chunk << (7 * k)

    negative = (data[ends] & 0x40) != 0
    result[negative] -= np.int64(1) << (7 * lengths[negative]).astype(np.int64)
    return result.astype(dtype)


def write_leb128(stream: BinaryIO, values) -> None:
    """Write signed integers with LEB128 compression, prefixed by magic and size."""
    array = np.asarray(values)
    _require_signed(array.dtype)
    v = array.astype(np.int64).ravel()

    lengths = np.zeros(v.size, dtype=np.int64)
    current = v.copy()
    active = np.ones(v.size, dtype=bool)
    while active.any():
        byte = current & 0x7F
        current >>= 7
        lengths[active] += 1
        finished = np.where((byte & 0x40) == 0, current == 0, current == -1)
        active &= ~finished

    total = int(lengths.sum())
    starts = np.cumsum(lengths) - lengths
    out = np.zeros(total, dtype=np.uint8)
    for k in range(int(lengths.max(initial=0))):
        mask = lengths > k
        chunk = (v[mask] >> (7 * k)) & 0x7F
        continuation = np.where(k < lengths[mask] - 1, 0x80, 0)
        out[starts[mask] + k] = (chunk | continuation).astype(np.uint8)

    stream.write(LEB128_MAGIC)
    write_uint32(stream, total)
    stream.write(out.tobytes())