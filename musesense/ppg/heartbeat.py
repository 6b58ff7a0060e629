"""Heartbeat detection and HRV metrics from a normalized PPG stream."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from ..config import MuseSenseConfig
from ..ringbuffer import RingBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeartEvent:
    timestamp: float
    bpm: float              # mean of the recent beat-to-beat rates
    current_bpm: float      # rate from this beat's interval alone
    pulse_strength: float   # peak minus preceding trough
    sdnn_ms: float
    rmssd_ms: float
    hrv_index: float        # 0..100


@dataclass
class BeatState:
    """Mutable per-stream detector state."""
    last_sample: float | None = None
    rising: bool = False
    peak: float = 0.0
    peak_time: float = 0.0
    trough: float = 0.0
    last_beat_time: float | None = None
    # EWMA statistics behind the adaptive threshold
    mean: float = 0.0
    variance: float = 0.0
    stats_initialized: bool = False


def sdnn_ms(intervals) -> float:
    """Population standard deviation of NN intervals, in milliseconds."""
    values = np.asarray(intervals, dtype=np.float64)
    if values.size < 2:
        return 0.0
    result = float(np.std(values)) * 1000.0
    return result if math.isfinite(result) else 0.0


def rmssd_ms(intervals) -> float:
    """Root mean square of successive NN differences, in milliseconds."""
    values = np.asarray(intervals, dtype=np.float64)
    if values.size < 2:
        return 0.0
    result = float(np.sqrt(np.mean(np.diff(values) ** 2))) * 1000.0
    return result if math.isfinite(result) else 0.0


def hrv_index(rmssd: float, low: float = 10.0, high: float = 100.0) -> float:
    """Rescale RMSSD (ms) from ``[low, high]`` onto 0..100."""
    clamped = min(max(rmssd, low), high)
    return (clamped - low) / (high - low) * 100.0


class HeartbeatAnalyzer:
    """Streaming beat detector for one PPG sensor.

    A beat candidate is the top of a rise: the moment the signal stops
    rising. It is confirmed when it clears an adaptive threshold
    (EWMA mean plus ``threshold_k`` standard deviations) and comes at least
    ``min_beat_interval`` after the previous confirmed beat. The first
    confirmed beat only anchors timing.

    Every confirmed interval feeds the BPM history. Only intervals inside
    ``[min_nn_interval, max_nn_interval]`` and, once enough history exists,
    within ``nn_outlier_tolerance`` of the recent median feed the HRV
    history.

    Usage::

        analyzer = HeartbeatAnalyzer()
        for t, x in zip(times, normalized):
            event = analyzer.update(t, x)
            if event:
                print(f"{event.bpm:.0f} bpm")
    """

    def __init__(self, config: MuseSenseConfig | None = None):
        self.config = config or MuseSenseConfig()
        self.state = BeatState()
        self.bpm_history: RingBuffer[float] = RingBuffer(self.config.bpm_history)
        self.nn_history: RingBuffer[float] = RingBuffer(self.config.nn_history)

    @property
    def threshold(self) -> float:
        s = self.state
        return s.mean + self.config.threshold_k * math.sqrt(max(s.variance, 0.0))

    def _update_threshold(self, sample: float) -> None:
        s = self.state
        if not s.stats_initialized:
            s.mean = sample
            s.variance = 0.0
            s.stats_initialized = True
            return
        alpha = self.config.threshold_alpha
        diff = sample - s.mean
        s.mean += alpha * diff
        s.variance = (1.0 - alpha) * (s.variance + alpha * diff * diff)

    def update(self, timestamp: float, sample: float) -> HeartEvent | None:
        sample = float(sample)
        if not math.isfinite(sample):
            sample = 0.0
        s = self.state
        self._update_threshold(sample)

        if s.last_sample is None:
            s.last_sample = sample
            s.trough = sample
            return None

        rising = sample > s.last_sample
        event = None

        if rising:
            if not s.rising or sample > s.peak:
                s.peak = sample
                s.peak_time = timestamp
        else:
            if s.rising:
                # The previous sample was a local maximum
                event = self._candidate(s.peak, s.peak_time, s.trough)
                s.trough = sample
            else:
                s.trough = min(s.trough, sample)

        s.rising = rising
        s.last_sample = sample
        return event

    def process(self, timestamps, samples) -> list[HeartEvent]:
        events = []
        for timestamp, sample in zip(timestamps, samples):
            event = self.update(float(timestamp), sample)
            if event is not None:
                events.append(event)
        return events

    def _candidate(self, peak: float, peak_time: float, trough: float) -> HeartEvent | None:
        s = self.state
        if peak <= self.threshold:
            return None

        if s.last_beat_time is None:
            s.last_beat_time = peak_time
            return None

        interval = peak_time - s.last_beat_time
        if interval < self.config.min_beat_interval:
            return None
        s.last_beat_time = peak_time

        current_bpm = 60.0 / interval
        self.bpm_history.append(current_bpm)
        if self._is_normal(interval):
            self.nn_history.append(interval)
        else:
            logger.debug("Beat interval %.3fs kept out of HRV history", interval)

        nn = self.nn_history.to_list()
        rmssd = rmssd_ms(nn)
        return HeartEvent(
            timestamp=peak_time,
            bpm=float(np.mean(self.bpm_history.to_list())),
            current_bpm=current_bpm,
            pulse_strength=peak - trough,
            sdnn_ms=sdnn_ms(nn),
            rmssd_ms=rmssd,
            hrv_index=hrv_index(rmssd),
        )

    def _is_normal(self, interval: float) -> bool:
        cfg = self.config
        if not cfg.min_nn_interval <= interval <= cfg.max_nn_interval:
            return False
        if len(self.nn_history) < cfg.nn_outlier_min_history:
            return True
        median = float(np.median(self.nn_history.last(cfg.nn_median_window)))
        return abs(interval - median) <= cfg.nn_outlier_tolerance * median

    def reset(self) -> None:
        self.state = BeatState()
        self.bpm_history.clear()
        self.nn_history.clear()
