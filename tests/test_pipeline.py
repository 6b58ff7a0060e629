"""End-to-end tests: raw notifications in, events out, no hardware."""

import struct

import numpy as np
import pytest

from musesense.ble.packets import Legacy, Tagged
from musesense.ble.protocol import EEG_CHANNELS, Channel
from musesense.config import MuseSenseConfig
from musesense.context import AnalysisContext
from musesense.eeg.spectrum import SpectrumResult
from musesense.events.base import EventType
from musesense.pipeline import Pipeline


def _legacy(payload: bytes, index: int = 0) -> bytes:
    return struct.pack(">H", index) + payload


def _eeg_packet(samples_12bit) -> bytes:
    """Pack 12 raw 12-bit samples into an 18-byte legacy payload."""
    out = bytearray()
    for a, b in zip(samples_12bit[0::2], samples_12bit[1::2]):
        out += bytes([a >> 4, ((a & 0xF) << 4) | (b >> 8), b & 0xFF])
    return _legacy(bytes(out))


def _pack_bits(values, bit_width: int) -> bytes:
    """LSB-first bit packing of a row-major sample matrix."""
    flat = np.asarray(values, dtype=np.int64).reshape(-1)
    bits = ((flat[:, None] >> np.arange(bit_width)) & 1).astype(np.uint8).reshape(-1)
    return np.packbits(bits, bitorder="little").tobytes()


def _tagged(subpackets: list[tuple[int, bytes]], index: int = 1) -> bytes:
    """One tagged notification: the first entry rides in the header, the rest carry sub-headers."""
    first_tag, first_data = subpackets[0]
    body = first_data + b"".join(bytes([tag, index]) + bytes(3) + data for tag, data in subpackets[1:])
    header = bytes([14 + len(body), index]) + struct.pack("<I", 0) + bytes(3) + bytes([first_tag]) + bytes(4)
    return header + body


def _optics_subpackets(seconds: float, heart_hz: float) -> list[tuple[int, bytes]]:
    """Four-channel optics sub-packets, 3 samples each, carrying a pulse sine."""
    n = int(seconds * 64) // 3 * 3
    t = np.arange(n) / 64
    raw = (500000 + 20000 * np.sin(2 * np.pi * heart_hz * t)).astype(np.int64)
    rows = np.repeat(raw[:, None], 4, axis=1)
    return [(0x34, _pack_bits(rows[i:i + 3], 20)) for i in range(0, n, 3)]


class TestContext:
    def test_from_config(self):
        context = AnalysisContext.from_config(MuseSenseConfig(fft_window=512))
        assert context.engine.window_size == 512
        assert len(context.mapper.frequencies) == 257

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            AnalysisContext.from_config(MuseSenseConfig(fft_window=300))
        with pytest.raises(ValueError):
            AnalysisContext.from_config(MuseSenseConfig(spectrum_scaling="db"))


class TestLegacyPipeline:
    def test_eeg_produces_spectrum(self):
        pipeline = Pipeline(MuseSenseConfig())
        published = []
        pipeline.bus.subscribe(EventType.SPECTRUM, published.append)

        # 10 Hz sine around the ADC midpoint
        t = np.arange(22 * 12) / 256
        raw = (2048 + 400 * np.sin(2 * np.pi * 10 * t)).astype(int)
        events = []
        for i in range(22):
            packet = _eeg_packet(raw[i * 12:(i + 1) * 12].tolist())
            events += pipeline.process(Legacy(Channel.AF7), packet, round((i + 1) * 0.01, 6))

        assert [e.type for e in events] == [EventType.SPECTRUM]
        assert len(published) == 1 and published[0] is events[0]
        result = events[0].payload
        assert isinstance(result, SpectrumResult)
        assert result.channel == Channel.AF7
        assert abs(int(np.argmax(result.values[1:])) + 1 - 10) <= 1
        assert pipeline.store.latest(Channel.AF7) is result

    def test_aux_not_analysed(self):
        pipeline = Pipeline()
        packet = _eeg_packet([2048] * 12)
        events = []
        for i in range(22):
            events += pipeline.process(Legacy(Channel.AUX), packet, round((i + 1) * 0.01, 6))
        assert events == []
        assert pipeline.store.sequence == 0

    def test_battery(self):
        pipeline = Pipeline()
        payload = struct.pack(">4H", 51200, 1000, 3700, 25)
        events = pipeline.process(Legacy(Channel.BATTERY), _legacy(payload), 1.0)
        assert len(events) == 1
        assert events[0].type == EventType.BATTERY
        assert events[0].value == pytest.approx(100.0)

    def test_accel_movement(self):
        pipeline = Pipeline()
        still = _legacy(struct.pack(">9h", *([0, 0, 16384] * 3)))
        events = [pipeline.process(Legacy(Channel.ACCEL), still, i * 0.02)[0] for i in range(5)]
        assert all(e.type == EventType.MOVEMENT for e in events)
        assert events[-1].value == 0.0

    def test_control_reply(self):
        pipeline = Pipeline()
        text = b'{"rc":0}'
        events = pipeline.process(Legacy(Channel.CONTROL), bytes([len(text)]) + text, 1.0)
        assert events[0].type == EventType.CONTROL
        assert events[0].payload == {"rc": 0}

    def test_heartbeat_from_ppg2(self):
        pipeline = Pipeline()
        t = np.arange(64 * 20) / 64
        raw = (50000 + 2000 * np.sin(2 * np.pi * t)).astype(int)
        events = []
        for i in range(0, len(raw), 6):
            chunk = raw[i:i + 6]
            if len(chunk) < 6:
                break
            payload = b"".join(int(v).to_bytes(3, "big") for v in chunk)
            events += pipeline.process(Legacy(Channel.PPG2), _legacy(payload, i), i / 64)
        beats = [e for e in events if e.type == EventType.HEARTBEAT]
        assert len(beats) >= 10
        assert beats[-1].payload.current_bpm == pytest.approx(60.0, rel=0.05)

    def test_other_ppg_sensors_silent(self):
        pipeline = Pipeline()
        payload = _legacy(b"\x01\x00\x00" * 6)
        assert pipeline.process(Legacy(Channel.PPG1), payload, 1.0) == []

    def test_malformed_packet(self):
        pipeline = Pipeline()
        assert pipeline.process(Legacy(Channel.AF7), b"\x00", 1.0) == []


class TestTaggedPipeline:
    def test_battery(self):
        pipeline = Pipeline(MuseSenseConfig(protocol="tagged"))
        data = struct.pack("<H", 512) + bytes(18)
        events = pipeline.process(Tagged(), _tagged([(0x98, data)]), 5.0)
        assert len(events) == 1
        assert events[0].type == EventType.BATTERY
        assert events[0].value == pytest.approx(2.0)
        assert events[0].timestamp == 5.0

    def test_eeg_produces_spectrum_per_electrode(self):
        pipeline = Pipeline(MuseSenseConfig(protocol="tagged"))
        t = np.arange(22 * 12) / 256
        raw = (8192 + 3000 * np.sin(2 * np.pi * 10 * t)).astype(np.int64)
        rows = np.repeat(raw[:, None], 4, axis=1)

        events = []
        for i in range(22):
            # Three 4-sample EEG sub-packets in one notification
            chunk = rows[i * 12:(i + 1) * 12]
            subpackets = [(0x11, _pack_bits(chunk[j:j + 4], 14)) for j in range(0, 12, 4)]
            events += pipeline.process(Tagged(), _tagged(subpackets, index=i), round((i + 1) * 0.01, 6))

        assert [e.type for e in events] == [EventType.SPECTRUM] * 4
        assert [e.payload.channel for e in events] == list(EEG_CHANNELS)
        for event in events:
            # DC only leaks into bin 1
            assert abs(int(np.argmax(event.payload.values[2:])) + 2 - 10) <= 1
        assert pipeline.store.sequence == 4

    def _heartbeats(self, subpackets_per_notification: int):
        pipeline = Pipeline(MuseSenseConfig(protocol="tagged"))
        subpackets = _optics_subpackets(20.0, heart_hz=1.25)
        k = subpackets_per_notification
        beats = []
        for i in range(0, len(subpackets) - k + 1, k):
            # Every sub-packet of a notification shares its arrival time
            events = pipeline.process(Tagged(), _tagged(subpackets[i:i + k]), i * 3 / 64)
            beats += [e.payload for e in events if e.type == EventType.HEARTBEAT]
        return beats

    def test_heartbeat_from_optics(self):
        beats = self._heartbeats(1)
        assert len(beats) >= 12
        assert beats[-1].current_bpm == pytest.approx(75.0, rel=0.05)

    def test_several_optics_subpackets_per_notification(self):
        single = self._heartbeats(1)
        grouped = self._heartbeats(4)
        assert len(grouped) >= 12
        assert [b.timestamp for b in grouped] == pytest.approx([b.timestamp for b in single[:len(grouped)]])
        assert grouped[-1].current_bpm == pytest.approx(75.0, rel=0.05)
        assert grouped[-1].rmssd_ms == pytest.approx(single[len(grouped) - 1].rmssd_ms)
        assert grouped[-1].rmssd_ms < 25.0
