"""Legacy Muse 2 / Muse S packets, one characteristic per channel.

Every notification starts with a 2-byte big-endian packet counter followed
by a channel-specific payload:

    EEG      18 bytes = 12 x uint12, MSB-first
    PPG      18 bytes = 6 x uint24 big-endian
    ACCEL    18 bytes = 3 x (x, y, z) int16 big-endian
    GYRO     same layout as ACCEL
    BATTERY  8 bytes = 4 x uint16 big-endian (charge, fuel gauge, ADC, temperature)
"""

from __future__ import annotations

import logging

import numpy as np

from . import codec
from .packets import SampleBatch
from .protocol import (
    ACCEL_SCALE_FACTOR,
    BATTERY_PCT_DIVIDEND,
    EEG_MIDPOINT,
    GYRO_SCALE_FACTOR,
    LEGACY_EEG_CHANNELS,
    PPG_CHANNELS,
    PPG_SAMPLES_PER_PACKET,
    SAMPLES_PER_PACKET,
    SCALE_FACTOR,
    Channel,
)

logger = logging.getLogger(__name__)

HEADER_SIZE = 2
XYZ_VALUES = 9


def packet_index(packet: bytes) -> int | None:
    """Read the 2-byte counter that prefixes every legacy notification."""
    if len(packet) < HEADER_SIZE:
        return None
    return codec.pack_to_u16_be(packet[0], packet[1])


def decode_eeg(payload: bytes, midpoint: float = EEG_MIDPOINT) -> np.ndarray:
    """Decode 18 bytes of packed 12-bit samples into 12 µV values."""
    raw = codec.unpack_12bit_triplets(payload[: SAMPLES_PER_PACKET * 3 // 2])
    if len(raw) != SAMPLES_PER_PACKET:
        return np.array([], dtype=np.float64)
    return codec.sanitize(SCALE_FACTOR * (raw.astype(np.float64) - midpoint))


def decode_ppg(payload: bytes) -> np.ndarray:
    raw = codec.unpack_u24_be_array(payload, PPG_SAMPLES_PER_PACKET)
    return raw.astype(np.float64)


def decode_xyz(payload: bytes, scale: float) -> np.ndarray:
    """Average the three (x, y, z) readings in a packet into one scaled triple."""
    raw = codec.unpack_int16_be_array(payload, XYZ_VALUES)
    if len(raw) != XYZ_VALUES:
        return np.array([], dtype=np.float64)
    # x, y, z, x, y, z, x, y, z
    per_axis = raw.astype(np.float64).reshape(3, 3)
    return codec.sanitize(per_axis.mean(axis=0) * scale)


def decode_battery(payload: bytes) -> np.ndarray:
    """Return [percentage, fuel gauge mV, ADC mV, temperature]."""
    raw = codec.unpack_u16_be_array(payload, 4)
    if len(raw) != 4:
        return np.array([], dtype=np.float64)
    charge, fuel_gauge, adc, temperature = (float(v) for v in raw)
    return np.array(
        [charge / BATTERY_PCT_DIVIDEND, fuel_gauge * 2.2, adc, temperature],
        dtype=np.float64,
    )


class LegacyParser:
    """Decodes single-channel notifications from Muse 2 / Muse S firmware.

    The caller names the channel (resolved from the characteristic UUID).
    Control replies are text, not samples, and are left to
    ``ControlMessageParser``.
    """

    def __init__(self, eeg_midpoint: float = EEG_MIDPOINT):
        self.eeg_midpoint = eeg_midpoint

    def parse(
        self, channel: Channel, packet: bytes, timestamp: float
    ) -> list[SampleBatch]:
        index = packet_index(packet)
        if index is None:
            logger.debug("%s: packet too short for header (%d bytes)", channel.value, len(packet))
            return []
        payload = bytes(packet[HEADER_SIZE:])

        if channel in LEGACY_EEG_CHANNELS:
            samples = decode_eeg(payload, self.eeg_midpoint)
        elif channel in PPG_CHANNELS:
            samples = decode_ppg(payload)
        elif channel == Channel.ACCEL:
            samples = decode_xyz(payload, ACCEL_SCALE_FACTOR)
        elif channel == Channel.GYRO:
            samples = decode_xyz(payload, GYRO_SCALE_FACTOR)
        elif channel == Channel.BATTERY:
            samples = decode_battery(payload)
        else:
            return []

        if len(samples) == 0:
            logger.debug(
                "%s: dropped malformed packet %d (%d payload bytes)",
                channel.value, index, len(payload),
            )
            return []

        return [
            SampleBatch(
                channel=channel,
                timestamp=timestamp,
                samples=samples,
                packet_index=index,
            )
        ]
