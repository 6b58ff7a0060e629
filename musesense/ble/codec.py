"""Byte and bit decoders for the packed integer formats used by Muse headsets.

Every function is pure. Malformed input (wrong length, not enough bytes)
yields an empty array rather than an exception so a single bad BLE
notification never stops the stream.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def sanitize(values: np.ndarray) -> np.ndarray:
    """Return a float64 copy with NaN and ±Inf replaced by 0."""
    return np.nan_to_num(
        np.asarray(values, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0
    )


def unpack_12bit_triplets(data: bytes) -> np.ndarray:
    """Unpack every 3 bytes into two 12-bit values.

    ``(a << 4) | (b >> 4)`` and ``((b & 0xF) << 8) | c``.
    Returns an empty array if the length is not a multiple of 3.
    """
    if len(data) % 3 != 0:
        logger.debug("12-bit unpack: %d bytes is not a multiple of 3", len(data))
        return np.array([], dtype=np.uint16)

    raw = np.frombuffer(bytes(data), dtype=np.uint8).astype(np.uint16).reshape(-1, 3)
    out = np.empty((raw.shape[0], 2), dtype=np.uint16)
    out[:, 0] = (raw[:, 0] << 4) | (raw[:, 1] >> 4)
    out[:, 1] = ((raw[:, 1] & 0xF) << 8) | raw[:, 2]
    return out.reshape(-1)


def pack_to_u16_be(hi: int, lo: int) -> int:
    """Combine two bytes into a big-endian unsigned 16-bit value."""
    return ((hi & 0xFF) << 8) | (lo & 0xFF)


def _fixed_width(data: bytes, count: int, width: int, dtype: str) -> np.ndarray:
    needed = count * width
    if count < 0 or needed > len(data):
        logger.debug(
            "Cannot decode %d x %d-byte values from %d bytes", count, width, len(data)
        )
        return np.array([], dtype=dtype)
    return np.frombuffer(bytes(data[:needed]), dtype=dtype, count=count)


def unpack_u16_be_array(data: bytes, count: int) -> np.ndarray:
    return _fixed_width(data, count, 2, ">u2").astype(np.uint16)


def unpack_int16_be_array(data: bytes, count: int) -> np.ndarray:
    return _fixed_width(data, count, 2, ">i2").astype(np.int16)


def unpack_int16_le_array(data: bytes, count: int) -> np.ndarray:
    return _fixed_width(data, count, 2, "<i2").astype(np.int16)


def unpack_u24_be_array(data: bytes, count: int) -> np.ndarray:
    """Decode ``count`` 3-byte big-endian unsigned values."""
    needed = count * 3
    if count < 0 or needed > len(data):
        logger.debug("Cannot decode %d uint24 values from %d bytes", count, len(data))
        return np.array([], dtype=np.uint32)
    raw = np.frombuffer(bytes(data[:needed]), dtype=np.uint8).astype(np.uint32)
    raw = raw.reshape(count, 3)
    return (raw[:, 0] << 16) | (raw[:, 1] << 8) | raw[:, 2]


def bytes_to_bits(data: bytes, n_bytes: int | None = None) -> np.ndarray:
    """Expand bytes into a bit array, least significant bit of each byte first."""
    if n_bytes is not None:
        data = data[:n_bytes]
    return np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8), bitorder="little")


def extract_bits(bits: np.ndarray, bit_start: int, bit_width: int) -> int:
    """Read a little-endian integer field from a bit array built by ``bytes_to_bits``."""
    if bit_start < 0 or bit_width <= 0 or bit_start + bit_width > len(bits):
        logger.debug(
            "Bit field [%d, %d) outside %d-bit array", bit_start, bit_start + bit_width, len(bits)
        )
        return 0
    field = bits[bit_start:bit_start + bit_width].astype(np.int64)
    return int(np.sum(field << np.arange(bit_width, dtype=np.int64)))


def unpack_packed_matrix(
    data: bytes, n_samples: int, n_channels: int, bit_width: int
) -> np.ndarray:
    """Decode an LSB-first bit-packed ``n_samples x n_channels`` integer matrix."""
    n_bytes = (n_samples * n_channels * bit_width + 7) // 8
    if len(data) < n_bytes:
        logger.debug("Packed matrix needs %d bytes, got %d", n_bytes, len(data))
        return np.empty((0, n_channels), dtype=np.int64)

    bits = bytes_to_bits(data, n_bytes)
    values = np.zeros((n_samples, n_channels), dtype=np.int64)
    for sample_idx in range(n_samples):
        for channel_idx in range(n_channels):
            bit_start = (sample_idx * n_channels + channel_idx) * bit_width
            values[sample_idx, channel_idx] = extract_bits(bits, bit_start, bit_width)
    return values
