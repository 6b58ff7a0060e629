"""Per-channel sample buffers and time-gated epoch assembly."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..ble.packets import SampleBatch
from ..ble.protocol import SAMPLES_PER_PACKET, Channel
from ..ringbuffer import RingBuffer


class ChannelBuffer:
    """Holds the most recent ``capacity`` samples of one channel.

    Alongside the samples it keeps the arrival timestamp of each batch, one
    per packet, so the buffer knows when its newest data arrived.

    Usage::

        buf = ChannelBuffer(capacity=256, samples_per_packet=12)
        buf.append(batch.samples, batch.timestamp)
        if buf.is_full:
            window = buf.window()
    """

    def __init__(self, capacity: int = 256, samples_per_packet: int = SAMPLES_PER_PACKET):
        self.capacity = capacity
        self._buf = np.zeros(capacity, dtype=np.float64)
        self._write_pos = 0
        self._count = 0
        self.timestamps: RingBuffer[float] = RingBuffer(
            max(1, capacity // samples_per_packet)
        )

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count == self.capacity

    @property
    def latest_timestamp(self) -> float | None:
        recent = self.timestamps.last(1)
        return recent[0] if recent else None

    def append(self, samples: np.ndarray, timestamp: float) -> None:
        """Append samples, dropping the oldest ones past capacity."""
        samples = np.asarray(samples, dtype=np.float64)
        n = len(samples)
        self.timestamps.append(timestamp)
        if n == 0:
            return

        if n >= self.capacity:
            self._buf[:] = samples[-self.capacity:]
            self._write_pos = 0
            self._count = self.capacity
            return

        pos = self._write_pos
        end = pos + n
        if end <= self.capacity:
            self._buf[pos:end] = samples
        else:
            first = self.capacity - pos
            self._buf[pos:] = samples[:first]
            self._buf[:n - first] = samples[first:]

        self._write_pos = end % self.capacity
        self._count = min(self._count + n, self.capacity)

    def window(self) -> np.ndarray:
        """Return a chronological copy of the buffered samples."""
        if self._count == 0:
            return np.array([], dtype=np.float64)
        pos = self._write_pos
        start = (pos - self._count) % self.capacity
        if start < pos:
            return self._buf[start:pos].copy()
        return np.concatenate([self._buf[start:], self._buf[:pos]])

    def clear(self) -> None:
        self._buf[:] = 0.0
        self._write_pos = 0
        self._count = 0
        self.timestamps.clear()


@dataclass(frozen=True)
class Epoch:
    channel: Channel
    samples: np.ndarray = field(repr=False)
    timestamp: float
    sequence: int


class EpochAssembler:
    """Turns a stream of sample batches into evenly spaced analysis epochs.

    Each channel has its own buffer and its own gate. An epoch is released
    when the buffer holds a full window and the newest timestamp is at least
    ``interval`` seconds past the channel's previous epoch, so the analysis
    rate stays fixed however fast packets arrive.
    """

    def __init__(
        self,
        window: int = 256,
        samples_per_packet: int = SAMPLES_PER_PACKET,
        interval: float = 0.1,
    ):
        if samples_per_packet < 1 or window < samples_per_packet:
            raise ValueError(
                f"window ({window}) must hold at least one packet ({samples_per_packet})"
            )
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        self.window = window
        self.samples_per_packet = samples_per_packet
        self.interval = interval
        self._buffers: dict[Channel, ChannelBuffer] = {}
        self._last_emission: dict[Channel, float] = {}
        self._sequence: dict[Channel, int] = {}

    def buffer(self, channel: Channel) -> ChannelBuffer:
        if channel not in self._buffers:
            self._buffers[channel] = ChannelBuffer(self.window, self.samples_per_packet)
            self._last_emission[channel] = 0.0
            self._sequence[channel] = 0
        return self._buffers[channel]

    def add(self, batch: SampleBatch) -> Epoch | None:
        buf = self.buffer(batch.channel)
        buf.append(batch.samples, batch.timestamp)

        latest = buf.latest_timestamp
        if not buf.is_full or latest is None:
            return None
        if latest < self._last_emission[batch.channel] + self.interval:
            return None

        self._last_emission[batch.channel] = latest
        self._sequence[batch.channel] += 1
        return Epoch(
            channel=batch.channel,
            samples=buf.window(),
            timestamp=latest,
            sequence=self._sequence[batch.channel],
        )

    def reset(self) -> None:
        self._buffers.clear()
        self._last_emission.clear()
        self._sequence.clear()
