"""Latest spectrum per electrode, with region views and per-epoch caching."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

import numpy as np

from ..ble.protocol import EEG_CHANNELS, Channel
from ..ringbuffer import RingBuffer
from .bands import ALL_BANDS, BandMapper, FrequencyBand
from .spectrum import SpectrumResult


class Region(Enum):
    LEFT = (Channel.TP9, Channel.AF7)
    RIGHT = (Channel.AF8, Channel.TP10)
    FRONT = (Channel.AF7, Channel.AF8)
    SIDES = (Channel.TP9, Channel.TP10)
    HEADSET = EEG_CHANNELS

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self.value


Target = Union[Region, Channel]

HISTORY_LENGTH = 75


@dataclass(frozen=True)
class BandSummary:
    """Statistics over the recent values of one band on one target.

    ``percent`` is the newest value as a fraction of the highest in the
    history, 0 when the history holds no positive value.
    """
    latest: float
    highest: float
    lowest: float
    range: float
    average: float
    percent: float

    @classmethod
    def from_values(cls, values: list[float]) -> "BandSummary":
        arr = np.asarray(values, dtype=np.float64)
        highest = float(arr.max())
        lowest = float(arr.min())
        latest = float(arr[-1])
        return cls(
            latest=latest,
            highest=highest,
            lowest=lowest,
            range=highest - lowest,
            average=float(arr.mean()),
            percent=latest / highest if highest > 0 else 0.0,
        )


class SpectrumStore:
    """Canonical store of the newest ``SpectrumResult`` for each electrode.

    Every stored result advances ``sequence``. Derived values (region
    averages, band values, relative power) are cached as
    ``(sequence, value)`` and recomputed only when the sequence has moved,
    so any number of readers share one computation per epoch. The cache is
    guarded by a single lock so readers may live on other threads.

    Each update also appends the band values of the updated electrode and
    of every region containing it to a ring of ``history_length`` entries;
    ``summary`` reports highest, lowest, range, average and percent over
    that ring. A ``history_length`` of 0 disables the history.
    """

    def __init__(
        self,
        mapper: BandMapper,
        channels: tuple[Channel, ...] = EEG_CHANNELS,
        history_length: int = HISTORY_LENGTH,
    ):
        self.mapper = mapper
        self.channels = tuple(channels)
        self.history_length = history_length
        self._history: dict[tuple[FrequencyBand, Target], RingBuffer[float]] = {}
        self._latest: dict[Channel, SpectrumResult] = {}
        self._sequence = 0
        self._cache: dict[tuple, tuple[int, Any]] = {}
        self._lock = threading.Lock()

    @property
    def sequence(self) -> int:
        return self._sequence

    def update(self, result: SpectrumResult) -> bool:
        """Store a result; returns False for channels the store does not track."""
        if result.channel not in self.channels:
            return False
        with self._lock:
            self._latest[result.channel] = result
            self._sequence += 1
            if self.history_length > 0:
                self._record_history(result.channel)
        return True

    def _record_history(self, channel: Channel) -> None:
        # Called with the lock held
        targets = [channel] + [r for r in Region if channel in r.channels]
        for target in targets:
            spectrum = self._average(target)
            for band in ALL_BANDS:
                ring = self._history.get((band, target))
                if ring is None:
                    ring = self._history[(band, target)] = RingBuffer(self.history_length)
                ring.append(self.mapper.band_value(band, spectrum))

    def latest(self, channel: Channel) -> SpectrumResult | None:
        with self._lock:
            return self._latest.get(channel)

    def _cached(self, key: tuple, compute: Callable[[], Any]) -> Any:
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None and hit[0] == self._sequence:
                return hit[1]
            value = compute()
            self._cache[key] = (self._sequence, value)
            return value

    def _channels_for(self, target: Target) -> tuple[Channel, ...]:
        if isinstance(target, Region):
            return target.channels
        return (target,)

    def _average(self, target: Target) -> np.ndarray:
        # Called with the lock held
        spectra = [
            self._latest[ch].values
            for ch in self._channels_for(target)
            if ch in self._latest
        ]
        if not spectra:
            return np.array([], dtype=np.float64)
        return np.mean(np.vstack(spectra), axis=0)

    def average_spectrum(self, target: Target = Region.HEADSET) -> np.ndarray:
        """Bin-wise mean of the latest spectra of the target's electrodes."""
        return self._cached(("average", target), lambda: self._average(target))

    def band_value(self, band: FrequencyBand, target: Target = Region.HEADSET) -> float:
        return self._cached(
            ("band", band, target),
            lambda: self.mapper.band_value(band, self._average(target)),
        )

    def relative(self, band: FrequencyBand, target: Target = Region.HEADSET) -> float:
        return self._cached(
            ("relative", band, target),
            lambda: self.mapper.relative(band, self._average(target)),
        )

    def history(self, band: FrequencyBand, target: Target = Region.HEADSET) -> list[float]:
        """Recent values of ``band`` on ``target``, oldest first."""
        with self._lock:
            ring = self._history.get((band, target))
            return ring.to_list() if ring is not None else []

    def summary(self, band: FrequencyBand, target: Target = Region.HEADSET) -> BandSummary | None:
        """Statistics over the history of ``band`` on ``target``, None while empty."""

        def compute() -> BandSummary | None:
            ring = self._history.get((band, target))
            if ring is None or len(ring) == 0:
                return None
            return BandSummary.from_values(ring.to_list())

        return self._cached(("summary", band, target), compute)

    def clear(self) -> None:
        with self._lock:
            self._latest.clear()
            self._cache.clear()
            self._history.clear()
            self._sequence = 0
