"""StreamNormalizer: maps a raw scalar stream onto 0..1 regardless of device range."""

from __future__ import annotations

import math


class StreamNormalizer:
    """Adaptive 0..1 normalizer for one scalar stream.

    Each sample is first range-scaled against a rolling min/max that slowly
    decays toward its midpoint, then turned into a z-score against EWMA
    statistics. The z-score is clamped to ``±z_clamp`` and mapped onto 0..1,
    and optionally smoothed with an EMA.

    Muse 2/S and newer headsets report optical readings on very different
    scales; after this stage both look alike to the heartbeat analyzer.
    """

    def __init__(
        self,
        alpha: float = 0.01,
        smoothing: float = 0.2,
        range_decay: float = 0.001,
        z_clamp: float = 2.0,
    ):
        if z_clamp <= 0:
            raise ValueError(f"z_clamp must be > 0, got {z_clamp}")
        self.alpha = alpha
        self.smoothing = smoothing
        self.range_decay = range_decay
        self.z_clamp = z_clamp
        self.reset()

    def reset(self) -> None:
        self.mean = 0.0
        self.variance = 0.0
        self.initialized = False
        self.ema: float | None = None
        self.min_val = math.inf
        self.max_val = -math.inf

    def update(self, x: float, smoothing_on: bool = True) -> float:
        x = float(x)
        if not math.isfinite(x):
            x = 0.0

        self.min_val = min(self.min_val, x)
        self.max_val = max(self.max_val, x)
        if self.range_decay > 0:
            mid = (self.min_val + self.max_val) * 0.5
            self.min_val += self.range_decay * (mid - self.min_val)
            self.max_val += self.range_decay * (mid - self.max_val)
        span = max(self.max_val - self.min_val, 1e-9)
        sample = (x - self.min_val) / span

        if not self.initialized:
            self.mean = sample
            self.variance = 0.0
            self.initialized = True
        else:
            diff = sample - self.mean
            self.mean += self.alpha * diff
            self.variance = (1.0 - self.alpha) * (self.variance + self.alpha * diff * diff)

        std = math.sqrt(max(self.variance, 1e-9))
        z = (sample - self.mean) / std
        z = min(max(z, -self.z_clamp), self.z_clamp)
        normalized = (z + self.z_clamp) / (2.0 * self.z_clamp)

        if not smoothing_on:
            return normalized

        if self.ema is None:
            self.ema = normalized
        else:
            self.ema = self.smoothing * normalized + (1.0 - self.smoothing) * self.ema
        return self.ema
