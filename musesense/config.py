"""musesense configuration: dataclass-based config with sensible defaults."""

from __future__ import annotations

from dataclasses import dataclass, field

from .ble.protocol import (
    EEG_MIDPOINT,
    PPG_SAMPLE_RATE,
    SAMPLE_RATE,
    SAMPLES_PER_PACKET,
)

# Muse band edges in Hz
DEFAULT_BANDS: dict[str, tuple[float, float]] = {
    "delta": (1.0, 3.0),
    "theta": (4.0, 7.0),
    "alpha": (8.0, 12.0),
    "beta": (13.0, 29.0),
    "gamma": (30.0, 44.0),
}


@dataclass
class MuseSenseConfig:
    # BLE
    device_name: str = "Muse-31A9"
    protocol: str = "legacy"            # "legacy" (Muse 2 / S) or "tagged" (newer firmware)
    scan_timeout: float = 10.0
    connect_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 2.0

    # EEG
    sample_rate: int = SAMPLE_RATE
    samples_per_packet: int = SAMPLES_PER_PACKET
    fft_window: int = 256               # samples per epoch, power of two
    epoch_interval: float = 0.1         # 100ms between epochs per channel
    eeg_midpoint: float = EEG_MIDPOINT
    spectrum_scaling: str = "power"     # "power" or "magnitude"
    noise_floor: float | None = None    # magnitude scaling only
    bands: dict[str, tuple[float, float]] = field(
        default_factory=lambda: dict(DEFAULT_BANDS)
    )

    # PPG / heart
    ppg_sample_rate: int = PPG_SAMPLE_RATE
    min_beat_interval: float = 0.30     # caps rate at 200 bpm
    min_nn_interval: float = 0.4        # 150 bpm
    max_nn_interval: float = 1.8        # ~33 bpm
    nn_outlier_tolerance: float = 0.15  # fraction of the recent median
    nn_outlier_min_history: int = 5
    nn_median_window: int = 20
    nn_history: int = 60
    bpm_history: int = 100
    threshold_alpha: float = 0.01
    threshold_k: float = 0.5            # threshold = mean + k * std

    # Stream normalizer
    normalizer_alpha: float = 0.01
    normalizer_smoothing: float = 0.2
    normalizer_range_decay: float = 0.001

    # Motion
    motion_window: int = 32
    motion_noise_floor: float = 0.02
    motion_full_range: float = 0.6

    # Band history kept per electrode and region
    band_history: int = 75

    def validate(self) -> None:
        """Raise ValueError if the settings cannot produce a working pipeline."""
        n = self.fft_window
        if n < 2 or n & (n - 1):
            raise ValueError(f"fft_window must be a power of two >= 2, got {n}")
        if self.samples_per_packet < 1 or self.samples_per_packet > n:
            raise ValueError(
                f"samples_per_packet must be in [1, {n}], got {self.samples_per_packet}"
            )
        if self.epoch_interval < 0:
            raise ValueError("epoch_interval must be >= 0")
        if self.spectrum_scaling not in ("power", "magnitude"):
            raise ValueError(f"Unknown spectrum_scaling {self.spectrum_scaling!r}")
        if self.protocol not in ("legacy", "tagged"):
            raise ValueError(f"Unknown protocol {self.protocol!r}")
        if self.min_nn_interval >= self.max_nn_interval:
            raise ValueError("min_nn_interval must be below max_nn_interval")
        if self.motion_full_range <= self.motion_noise_floor:
            raise ValueError("motion_full_range must exceed motion_noise_floor")
        if self.band_history < 0:
            raise ValueError("band_history must be >= 0")
        for name, (low, high) in self.bands.items():
            if name.lower() not in DEFAULT_BANDS:
                raise ValueError(f"Unknown band {name!r}, expected one of {sorted(DEFAULT_BANDS)}")
            if low < 0 or high < 0:
                raise ValueError(f"Band {name!r} has a negative edge")
            if low > high:
                raise ValueError(f"Band {name!r} has low edge {low} above high edge {high}")
