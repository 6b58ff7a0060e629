"""Packet sources and decoded sample batches."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from .protocol import Channel


@dataclass(frozen=True)
class Legacy:
    """A legacy notification: one characteristic carries exactly one channel."""
    channel: Channel


@dataclass(frozen=True)
class Tagged:
    """A tagged-protocol notification: sub-packets name their own sensors."""


PacketSource = Union[Legacy, Tagged]


@dataclass(frozen=True)
class RawPacket:
    source: PacketSource
    timestamp: float
    payload: bytes
    packet_index: int | None = None


@dataclass(frozen=True)
class SampleBatch:
    """Decoded samples for one logical channel.

    ``timestamp`` is the arrival time given by the transport. ``device_time``
    is the headset clock in seconds when the protocol provides one; it is not
    guaranteed to be monotonic.
    """
    channel: Channel
    timestamp: float
    samples: np.ndarray = field(repr=False)
    packet_index: int | None = None
    device_time: float | None = None

    def __len__(self) -> int:
        return len(self.samples)

