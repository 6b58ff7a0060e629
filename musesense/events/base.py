"""Event types emitted by the processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class EventType(Enum):
    SPECTRUM = auto()
    HEARTBEAT = auto()
    MOVEMENT = auto()
    BATTERY = auto()
    CONTROL = auto()


@dataclass
class Event:
    type: EventType
    timestamp: float
    value: float = 0.0        # headline scalar: bpm, movement, battery %
    payload: Any = None       # SpectrumResult, HeartEvent, MovementSample, dict
    metadata: dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Event({self.type.name}, value={self.value:.1f})"
