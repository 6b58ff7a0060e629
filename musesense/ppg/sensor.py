"""PPG sensor stage: normalization, heartbeat analysis and a respiration stream."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..ble.packets import SampleBatch
from ..config import MuseSenseConfig
from ..ringbuffer import RingBuffer
from .heartbeat import HeartbeatAnalyzer, HeartEvent
from .normalizer import StreamNormalizer

BLOOD_FLOW_WINDOW = 128


@dataclass(frozen=True)
class PPGProfile:
    """Respiration tuning per headset generation.

    A higher ``lp_alpha`` follows breathing faster but lets more of the
    heartbeat through into the baseline.
    """
    name: str
    lp_alpha: float
    baseline_window: int
    resp_window: int = 16


LEGACY = PPGProfile("legacy", lp_alpha=0.03, baseline_window=24)
TAGGED = PPGProfile("tagged", lp_alpha=0.02, baseline_window=64)

PROFILES = {p.name: p for p in (LEGACY, TAGGED)}


@dataclass(frozen=True)
class PPGStreams:
    blood_flow: np.ndarray = field(repr=False)
    respiration: np.ndarray = field(repr=False)


class PPGSensor:
    """Owns the full processing chain of one optical sensor.

    Raw readings are normalized to 0..1 and fed sample by sample to the
    heartbeat analyzer. The same normalized values drive a slow low-pass
    baseline; how far the oldest baseline value sits above the window
    minimum, averaged, normalized and inverted, forms the respiration
    stream.

    Usage::

        sensor = PPGSensor(config, LEGACY)
        for event in sensor.process(batch):
            print(event.bpm)
        streams = sensor.streams()
    """

    def __init__(
        self,
        config: MuseSenseConfig | None = None,
        profile: PPGProfile = LEGACY,
    ):
        self.config = config or MuseSenseConfig()
        self.profile = profile
        self.heartbeat = HeartbeatAnalyzer(self.config)
        self.blood_flow_normalizer = self._normalizer()
        self.resp_normalizer = self._normalizer()

        self.blood_flow: RingBuffer[float] = RingBuffer(BLOOD_FLOW_WINDOW)
        self.baseline: RingBuffer[float] = RingBuffer(profile.baseline_window)
        self.baseline_rise: RingBuffer[float] = RingBuffer(profile.baseline_window)
        self.respiration: RingBuffer[float] = RingBuffer(profile.resp_window)
        self._lp_baseline: float | None = None
        self._next_time = 0.0

    def _normalizer(self) -> StreamNormalizer:
        cfg = self.config
        return StreamNormalizer(
            alpha=cfg.normalizer_alpha,
            smoothing=cfg.normalizer_smoothing,
            range_decay=cfg.normalizer_range_decay,
        )

    def process(self, batch: SampleBatch) -> list[HeartEvent]:
        if len(batch) == 0:
            return []

        events = []
        step = 1.0 / self.config.ppg_sample_rate
        # Batches sharing one arrival time continue the previous batch.
        t = max(batch.timestamp, self._next_time)
        for raw in batch.samples:
            value = self.blood_flow_normalizer.update(raw, smoothing_on=True)
            self.blood_flow.append(value)

            if self._lp_baseline is None:
                self._lp_baseline = value
            else:
                self._lp_baseline += self.profile.lp_alpha * (value - self._lp_baseline)
            self.baseline.append(self._lp_baseline)

            event = self.heartbeat.update(t, value)
            if event is not None:
                events.append(event)
            t += step

        self._next_time = t
        self._update_respiration()
        return events

    def _update_respiration(self) -> None:
        baseline = self.baseline.to_list()
        if not baseline:
            return
        self.baseline_rise.append(baseline[0] - min(baseline))
        mean_rise = float(np.mean(self.baseline_rise.to_list()))
        self.respiration.append(1.0 - self.resp_normalizer.update(mean_rise, smoothing_on=True))

    def streams(self) -> PPGStreams | None:
        """Blood-flow and respiration traces, or None while warming up."""
        resp = self.respiration.to_list()
        if not resp or resp[0] == 0.0:
            return None
        return PPGStreams(
            blood_flow=np.asarray(self.blood_flow.to_list(), dtype=np.float64),
            respiration=np.asarray(resp, dtype=np.float64),
        )

    def reset(self) -> None:
        self.heartbeat.reset()
        self.blood_flow_normalizer.reset()
        self.resp_normalizer.reset()
        self.blood_flow.clear()
        self.baseline.clear()
        self.baseline_rise.clear()
        self.respiration.clear()
        self._lp_baseline = None
        self._next_time = 0.0
