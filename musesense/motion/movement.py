"""Movement intensity from recent accelerometer spread."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..ringbuffer import RingBuffer


@dataclass(frozen=True)
class MovementSample:
    x: float
    y: float
    z: float
    movement: float  # 0 = still, 1 = full-scale motion


class MovementEstimator:
    """Maps the spread of the last ``window`` accelerometer readings onto 0..1.

    The spread is the Euclidean norm of the per-axis ranges (max - min).
    Spreads at or below ``noise_floor`` read as 0, spreads at or above
    ``full_range`` read as 1.
    """

    def __init__(self, window: int = 32, noise_floor: float = 0.02, full_range: float = 0.6):
        if full_range <= noise_floor:
            raise ValueError(
                f"full_range ({full_range}) must exceed noise_floor ({noise_floor})"
            )
        self.noise_floor = noise_floor
        self.full_range = full_range
        self._axes: tuple[RingBuffer[float], ...] = tuple(RingBuffer(window) for _ in range(3))

    @staticmethod
    def _spread(buf: RingBuffer[float]) -> float:
        values = buf.to_list()
        if not values:
            return 0.0
        return max(values) - min(values)

    def update(self, x: float, y: float, z: float) -> MovementSample:
        for buf, value in zip(self._axes, (x, y, z)):
            buf.append(float(value) if math.isfinite(value) else 0.0)

        r = math.sqrt(sum(self._spread(buf) ** 2 for buf in self._axes))
        movement = (r - self.noise_floor) / (self.full_range - self.noise_floor)
        movement = min(1.0, max(0.0, movement))
        return MovementSample(x=float(x), y=float(y), z=float(z), movement=movement)

    def reset(self) -> None:
        for buf in self._axes:
            buf.clear()
