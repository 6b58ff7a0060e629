"""Spectral engine: Hamming-windowed FFT of one EEG epoch."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from scipy.signal import get_window

from ..ble.codec import sanitize
from ..ble.protocol import Channel

SCALINGS = ("power", "magnitude")


class SpectrumLengthError(ValueError):
    """Raised when an epoch does not match the engine's window size."""


@dataclass(frozen=True)
class SpectrumResult:
    """One-sided spectrum of an epoch, ``window_size // 2`` bins long."""
    channel: Channel | None
    values: np.ndarray = field(repr=False)
    decibels: np.ndarray | None = field(default=None, repr=False)
    timestamp: float = 0.0
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.values)


class SpectralEngine:
    """Windowed real FFT for a fixed window size.

    The Hamming window and its coherent gain and equivalent noise bandwidth
    are computed once per engine and reused for every transform.

    Two scalings are available:

    ``"power"``
        ``|X|² / (N² · cg²)`` with every bin except DC doubled for the
        discarded negative frequencies; ``decibels`` is ``10·log10(power)``.
    ``"magnitude"``
        ``|X|`` with values below ``noise_floor`` zeroed; ``decibels`` is
        ``20·log10(|X| / (N/2)) + 1``, the Muse SDK convention.

    Usage::

        engine = SpectralEngine(256)
        result = engine.transform(epoch.samples, channel=epoch.channel)
    """

    def __init__(
        self,
        window_size: int = 256,
        scaling: str = "power",
        noise_floor: float | None = None,
    ):
        if window_size < 2 or window_size & (window_size - 1):
            raise ValueError(f"window_size must be a power of two >= 2, got {window_size}")
        if scaling not in SCALINGS:
            raise ValueError(f"scaling must be one of {SCALINGS}, got {scaling!r}")

        self.window_size = window_size
        self.scaling = scaling
        self.noise_floor = noise_floor
        self.n_bins = window_size // 2

        # Periodic window, as used for spectral analysis
        self.window = get_window("hamming", window_size)
        self.coherent_gain = float(self.window.sum() / window_size)
        self.enbw = float(
            window_size * np.sum(self.window ** 2) / np.sum(self.window) ** 2
        )
        self._power_scale = 1.0 / (window_size ** 2 * self.coherent_gain ** 2)

    def transform(
        self,
        samples: np.ndarray,
        channel: Channel | None = None,
        timestamp: float = 0.0,
        sequence: int = 0,
    ) -> SpectrumResult:
        samples = np.asarray(samples, dtype=np.float64)
        if samples.shape != (self.window_size,):
            raise SpectrumLengthError(
                f"Expected {self.window_size} samples, got {samples.size}"
            )

        spectrum = np.fft.rfft(sanitize(samples) * self.window)[: self.n_bins]

        if self.scaling == "power":
            values, decibels = self._power(spectrum)
        else:
            values, decibels = self._magnitude(spectrum)

        return SpectrumResult(
            channel=channel,
            values=sanitize(values),
            decibels=sanitize(decibels),
            timestamp=timestamp,
            sequence=sequence,
        )

    def _power(self, spectrum: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        power = (spectrum.real ** 2 + spectrum.imag ** 2) * self._power_scale
        power[1:] *= 2.0
        with np.errstate(divide="ignore"):
            decibels = 10.0 * np.log10(power)
        return power, decibels

    def _magnitude(self, spectrum: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        magnitude = np.abs(spectrum)
        if self.noise_floor is not None:
            magnitude[magnitude < self.noise_floor] = 0.0
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(magnitude / self.n_bins) + 1.0
        return magnitude, decibels
