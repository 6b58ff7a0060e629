"""EEG frequency bands and their mapping onto FFT bins."""

from __future__ import annotations

from enum import Enum

import numpy as np

from ..ble.protocol import SAMPLE_RATE


class FrequencyBand(Enum):
    DELTA = (1.0, 3.0)
    THETA = (4.0, 7.0)
    ALPHA = (8.0, 12.0)
    BETA = (13.0, 29.0)
    GAMMA = (30.0, 44.0)

    @property
    def low(self) -> float:
        return self.value[0]

    @property
    def high(self) -> float:
        return self.value[1]


ALL_BANDS = list(FrequencyBand)


class BandMapper:
    """Maps frequency ranges onto bins of a one-sided spectrum.

    The frequency axis and the bin range of every band are computed once
    at construction. Lookups pick the bin whose centre frequency is closest
    to the requested one.

    Usage::

        mapper = BandMapper(sample_rate=256, window_size=256)
        alpha = mapper.band_value(FrequencyBand.ALPHA, result.values)
        share = mapper.relative(FrequencyBand.ALPHA, result.values)
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        window_size: int = 256,
        ranges: dict[FrequencyBand, tuple[float, float]] | None = None,
    ):
        if sample_rate <= 0 or window_size < 2:
            raise ValueError(
                f"Invalid mapper geometry: sample_rate={sample_rate}, window_size={window_size}"
            )
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.n_bins = window_size // 2
        self.resolution = sample_rate / window_size
        self.frequencies = np.arange(self.n_bins + 1) * self.resolution
        # Highest frequency present in an n_bins long spectrum
        self.max_frequency = float(self.frequencies[self.n_bins - 1])

        ranges = ranges or {}
        self.ranges: dict[FrequencyBand, tuple[float, float]] = {
            band: tuple(ranges.get(band, band.value)) for band in ALL_BANDS
        }
        self.bins: dict[FrequencyBand, tuple[int, int]] = {
            band: (self.bin_for_frequency(low), self.bin_for_frequency(high))
            for band, (low, high) in self.ranges.items()
        }

    @classmethod
    def from_names(
        cls,
        sample_rate: int,
        window_size: int,
        named_ranges: dict[str, tuple[float, float]],
    ) -> "BandMapper":
        """Build a mapper from ``{"alpha": (8, 12), ...}`` style settings."""
        try:
            ranges = {FrequencyBand[name.upper()]: edges for name, edges in named_ranges.items()}
        except KeyError as exc:
            raise ValueError(f"Unknown band name {exc.args[0]!r}") from None
        return cls(sample_rate, window_size, ranges)

    def bin_for_frequency(self, frequency: float) -> int:
        return int(np.argmin(np.abs(self.frequencies - frequency)))

    def bins_for_range(self, low_hz: float, high_hz: float) -> tuple[int, int]:
        """Bin pair for a custom range, clamped to ``[0, max_frequency]``."""
        low_hz = min(max(low_hz, 0.0), self.max_frequency)
        high_hz = min(max(high_hz, 0.0), self.max_frequency)
        return self.bin_for_frequency(low_hz), self.bin_for_frequency(high_hz)

    @staticmethod
    def slice(bins: tuple[int, int], spectrum) -> np.ndarray:
        """Return ``spectrum[low..high]`` inclusive, clamped to its bounds.

        Reversed bins are swapped. An empty spectrum or a range lying
        entirely outside it gives an empty array.
        """
        spectrum = np.asarray(spectrum, dtype=np.float64)
        if spectrum.ndim != 1 or spectrum.size == 0 or len(bins) != 2:
            return np.array([], dtype=np.float64)
        low, high = sorted(int(b) for b in bins)
        last = spectrum.size - 1
        if high < 0 or low > last:
            return np.array([], dtype=np.float64)
        low = max(low, 0)
        high = min(high, last)
        return spectrum[low:high + 1]

    def slice_range(self, low_hz: float, high_hz: float, spectrum) -> np.ndarray:
        return self.slice(self.bins_for_range(low_hz, high_hz), spectrum)

    @staticmethod
    def _mean(values: np.ndarray) -> float:
        if values.size == 0:
            return 0.0
        mean = float(np.mean(values))
        return mean if np.isfinite(mean) else 0.0

    def band_value(self, band: FrequencyBand, spectrum) -> float:
        return self._mean(self.slice(self.bins[band], spectrum))

    def range_value(self, low_hz: float, high_hz: float, spectrum) -> float:
        return self._mean(self.slice_range(low_hz, high_hz, spectrum))

    def relative_all(self, spectrum) -> dict[FrequencyBand, float]:
        """Share of each band in the summed value of all five bands."""
        values = {band: max(self.band_value(band, spectrum), 0.0) for band in ALL_BANDS}
        total = sum(values.values())
        if not np.isfinite(total) or total <= 0:
            return {band: 0.0 for band in ALL_BANDS}

        shares = {}
        for band, value in values.items():
            share = value / total
            shares[band] = share if np.isfinite(share) and share >= 0 else 0.0
        return shares

    def relative(self, band: FrequencyBand, spectrum) -> float:
        return self.relative_all(spectrum)[band]
