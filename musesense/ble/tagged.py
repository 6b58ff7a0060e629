"""Tagged-protocol parser for newer Muse hardware.

Message structure::

    MESSAGE (one BLE notification)
      └─ PACKET [len][index][clock <u32][3 reserved][tag][3 reserved][valid == 0]
           ├─ first sub-packet: raw data of the header's tag, no sub-header
           └─ further sub-packets: [tag][index][3 reserved][data]

The hardware clock runs at 256 kHz. Roughly a quarter of packets share a
clock value with a neighbour and a few percent run backwards, so the clock
is carried as ``device_time`` for reference while gating downstream uses
the transport's arrival time.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum

import numpy as np

from . import codec
from .packets import SampleBatch
from .protocol import EEG_CHANNELS, HEART_CHANNEL, Channel

logger = logging.getLogger(__name__)

PACKET_HEADER_SIZE = 14
SUBPACKET_HEADER_SIZE = 5
DEVICE_CLOCK_HZ = 256000.0

EEG_SCALE = 1450.0 / 16383.0
ACC_SCALE = 0.0000610352
GYRO_SCALE = -0.0074768
OPTICS_SCALE = 1.0 / 32768.0
BATTERY_SCALE = 1.0 / 256.0


class SensorType(Enum):
    EEG = "EEG"
    OPTICS = "OPTICS"
    ACCGYRO = "ACCGYRO"
    BATTERY = "BATTERY"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class SensorConfig:
    type: SensorType
    n_channels: int
    n_samples: int
    rate: float
    data_len: int


SENSORS: dict[int, SensorConfig] = {
    0x11: SensorConfig(SensorType.EEG, 4, 4, 256.0, 28),
    0x12: SensorConfig(SensorType.EEG, 8, 2, 256.0, 28),
    0x34: SensorConfig(SensorType.OPTICS, 4, 3, 64.0, 30),
    0x35: SensorConfig(SensorType.OPTICS, 8, 2, 64.0, 40),
    0x36: SensorConfig(SensorType.OPTICS, 16, 1, 64.0, 40),
    0x47: SensorConfig(SensorType.ACCGYRO, 6, 3, 52.0, 36),
    0x53: SensorConfig(SensorType.UNKNOWN, 0, 0, 0.0, 24),
    0x98: SensorConfig(SensorType.BATTERY, 1, 1, 1.0, 20),
}


@dataclass(frozen=True)
class PacketHeader:
    length: int
    index: int
    clock: int
    tag: int
    valid: bool

    @property
    def device_time(self) -> float:
        return self.clock / DEVICE_CLOCK_HZ


def parse_header(packet: bytes) -> PacketHeader | None:
    if len(packet) < PACKET_HEADER_SIZE:
        return None
    clock = struct.unpack_from("<I", packet, 2)[0]
    tag = packet[9]
    valid = tag in SENSORS and packet[13] == 0
    return PacketHeader(
        length=packet[0], index=packet[1], clock=clock, tag=tag, valid=valid
    )


def decode_eeg(data: bytes, n_channels: int) -> np.ndarray | None:
    """Decode 28 bytes of 14-bit values into (samples, channels) µV."""
    if len(data) < 28:
        return None
    n_samples = 4 if n_channels == 4 else 2
    raw = codec.unpack_packed_matrix(data[:28], n_samples, n_channels, 14)
    return codec.sanitize(raw * EEG_SCALE)


def decode_accgyro(data: bytes) -> np.ndarray | None:
    """Decode 36 bytes into 3 rows of [acc_x, acc_y, acc_z, gyro_x, gyro_y, gyro_z]."""
    raw = codec.unpack_int16_le_array(data, 18)
    if len(raw) != 18:
        return None
    values = raw.astype(np.float64).reshape(3, 6)
    values[:, 0:3] *= ACC_SCALE
    values[:, 3:6] *= GYRO_SCALE
    return values


def decode_optics(data: bytes, n_channels: int) -> np.ndarray | None:
    """Decode 20-bit optical readings; only the 4-channel layout is supported."""
    if n_channels != 4 or len(data) < 30:
        return None
    raw = codec.unpack_packed_matrix(data[:30], 3, 4, 20)
    return codec.sanitize(raw * OPTICS_SCALE)


def decode_battery(data: bytes) -> float | None:
    if len(data) < 2:
        return None
    (raw_soc,) = struct.unpack_from("<H", data, 0)
    return raw_soc * BATTERY_SCALE


class TaggedParser:
    """Stateful parser for tagged-protocol notifications.

    EEG arrives in small sub-packets (4 or 2 samples per channel), so each
    electrode keeps a FIFO and a fixed-size window per electrode is emitted
    once all four FIFOs hold enough samples, mirroring the legacy 12-sample
    packets.
    """

    def __init__(self, eeg_window: int = 12):
        self.eeg_window = eeg_window
        self._eeg_fifos: dict[Channel, list[float]] = {ch: [] for ch in EEG_CHANNELS}

    def parse(self, payload: bytes, timestamp: float) -> list[SampleBatch]:
        payload = bytes(payload)
        batches: list[SampleBatch] = []
        offset = 0
        total = len(payload)

        while offset < total:
            length = payload[offset]
            if length == 0 or offset + length > total:
                logger.debug(
                    "Stopping at offset %d: declared length %d, %d bytes left",
                    offset, length, total - offset,
                )
                break

            header = parse_header(payload[offset:offset + length])
            if header is None:
                logger.debug("Packet at offset %d shorter than its header", offset)
                break

            data = payload[offset + PACKET_HEADER_SIZE:offset + length]
            batches.extend(self._parse_subpackets(header, data, timestamp))
            offset += length

        return batches

    def _parse_subpackets(
        self, header: PacketHeader, data: bytes, timestamp: float
    ) -> list[SampleBatch]:
        batches: list[SampleBatch] = []
        offset = 0

        # First sub-packet has no tag; its type is the header's tag
        if header.valid:
            config = SENSORS[header.tag]
            if config.data_len > 0 and config.data_len <= len(data):
                batches.extend(
                    self._decode(header, header.tag, data[:config.data_len], timestamp)
                )
                offset = config.data_len

        while offset + SUBPACKET_HEADER_SIZE <= len(data):
            tag = data[offset]
            config = SENSORS.get(tag)
            if config is None:
                logger.debug("Unknown tag 0x%02x in packet %d", tag, header.index)
                break
            if config.data_len == 0:
                break
            start = offset + SUBPACKET_HEADER_SIZE
            end = start + config.data_len
            if end > len(data):
                logger.debug("Truncated 0x%02x sub-packet in packet %d", tag, header.index)
                break
            batches.extend(self._decode(header, tag, data[start:end], timestamp))
            offset = end

        return batches

    def _decode(
        self, header: PacketHeader, tag: int, data: bytes, timestamp: float
    ) -> list[SampleBatch]:
        config = SENSORS[tag]

        def batch(channel: Channel, samples) -> SampleBatch:
            return SampleBatch(
                channel=channel,
                timestamp=timestamp,
                samples=np.asarray(samples, dtype=np.float64),
                packet_index=header.index,
                device_time=header.device_time,
            )

        if config.type == SensorType.EEG:
            rows = decode_eeg(data, config.n_channels)
            if rows is None:
                return []
            for channel_idx, channel in enumerate(EEG_CHANNELS):
                self._eeg_fifos[channel].extend(rows[:, channel_idx].tolist())
            return [batch(ch, samples) for ch, samples in self._drain_eeg()]

        if config.type == SensorType.ACCGYRO:
            rows = decode_accgyro(data)
            if rows is None:
                return []
            latest = rows[-1]
            return [batch(Channel.ACCEL, latest[0:3]), batch(Channel.GYRO, latest[3:6])]

        if config.type == SensorType.BATTERY:
            percent = decode_battery(data)
            if percent is None:
                return []
            return [batch(Channel.BATTERY, [percent])]

        if config.type == SensorType.OPTICS:
            rows = decode_optics(data, config.n_channels)
            if rows is None:
                return []
            # Inner-left/right NIR and IR averaged into one PPG trace
            return [batch(HEART_CHANNEL, rows.mean(axis=1))]

        return []

    def _drain_eeg(self) -> list[tuple[Channel, list[float]]]:
        windows: list[tuple[Channel, list[float]]] = []
        n = self.eeg_window
        while all(len(fifo) >= n for fifo in self._eeg_fifos.values()):
            for channel in EEG_CHANNELS:
                fifo = self._eeg_fifos[channel]
                windows.append((channel, fifo[:n]))
                del fifo[:n]
        return windows

    def reset(self) -> None:
        for fifo in self._eeg_fifos.values():
            fifo.clear()
