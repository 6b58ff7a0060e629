"""Unit tests for byte/bit decoding and legacy Muse 2 packets."""

import numpy as np
import pytest

from musesense.ble import codec
from musesense.ble.legacy import LegacyParser, decode_eeg
from musesense.ble.protocol import (
    CHANNEL_NAMES,
    CHANNEL_UUIDS,
    CMD_HALT,
    CMD_RESUME,
    EEG_CHANNELS,
    SAMPLE_RATE,
    SAMPLES_PER_PACKET,
    SCALE_FACTOR,
    UUID_CHANNELS,
    Channel,
)


def _legacy(payload: bytes, index: int = 7) -> bytes:
    return bytes([index >> 8, index & 0xFF]) + bytes(payload)


class TestCodec:
    def test_12bit_triplet(self):
        values = codec.unpack_12bit_triplets(b"\x12\x34\x56")
        assert list(values) == [0x123, 0x456]

    def test_12bit_length_not_multiple_of_three(self):
        assert len(codec.unpack_12bit_triplets(b"\x12\x34\x56\x78")) == 0

    def test_12bit_count_and_range(self):
        """Random input of 3k bytes decodes to 2k values within 12 bits."""
        data = np.random.default_rng(0).integers(0, 256, 30, dtype=np.uint8).tobytes()
        values = codec.unpack_12bit_triplets(data)
        assert len(values) == 20
        assert values.min() >= 0
        assert values.max() <= 4095

    def test_pack_to_u16_be(self):
        assert codec.pack_to_u16_be(0x12, 0x34) == 0x1234

    def test_int16_little_endian(self):
        assert list(codec.unpack_int16_le_array(b"\xff\xff\x01\x00", 2)) == [-1, 1]

    def test_int16_big_endian(self):
        assert list(codec.unpack_int16_be_array(b"\xff\xfe\x00\x02", 2)) == [-2, 2]

    def test_fixed_width_insufficient_bytes(self):
        assert len(codec.unpack_u16_be_array(b"\x00\x01\x02", 2)) == 0
        assert len(codec.unpack_u24_be_array(b"\x00\x01", 1)) == 0

    def test_u24(self):
        assert list(codec.unpack_u24_be_array(b"\x01\x00\x00\x00\x00\xff", 2)) == [65536, 255]

    def test_bits_lsb_first(self):
        assert list(codec.bytes_to_bits(b"\x01")) == [1, 0, 0, 0, 0, 0, 0, 0]

    def test_extract_bits_little_endian(self):
        bits = codec.bytes_to_bits(b"\x34\x12")
        assert codec.extract_bits(bits, 0, 16) == 0x1234
        assert codec.extract_bits(bits, 4, 8) == 0x23

    def test_extract_bits_out_of_range(self):
        bits = codec.bytes_to_bits(b"\xff")
        assert codec.extract_bits(bits, 4, 8) == 0

    def test_packed_matrix_14bit(self):
        """Two 14-bit values packed back to back, LSB first."""
        value = 5 | (9 << 14)
        data = value.to_bytes(4, "little")
        matrix = codec.unpack_packed_matrix(data, 1, 2, 14)
        assert matrix.tolist() == [[5, 9]]

    def test_sanitize(self):
        out = codec.sanitize(np.array([np.nan, np.inf, -np.inf, 1.5]))
        assert out.tolist() == [0.0, 0.0, 0.0, 1.5]


class TestLegacyEEG:
    def test_returns_12_samples(self):
        batches = LegacyParser().parse(Channel.AF7, _legacy(bytes(18)), 1.0)
        assert len(batches) == 1
        assert len(batches[0]) == SAMPLES_PER_PACKET

    def test_midpoint_decodes_to_zero(self):
        """12-bit 0x800 is the ADC midpoint and maps to 0 µV."""
        packet = _legacy(bytes([0x80, 0x08, 0x00] * 6))
        batch = LegacyParser().parse(Channel.TP9, packet, 1.0)[0]
        assert np.allclose(batch.samples, 0.0)

    def test_max_values(self):
        batch = LegacyParser().parse(Channel.TP10, _legacy(b"\xff" * 18), 1.0)[0]
        expected = (0xFFF - 2048) * SCALE_FACTOR
        assert np.allclose(batch.samples, expected)

    def test_configurable_midpoint(self):
        payload = bytes([0x80, 0x08, 0x00] * 6)
        assert np.allclose(decode_eeg(payload, midpoint=0), 1000.0)
        assert np.allclose(decode_eeg(payload, midpoint=2040), 8 * SCALE_FACTOR)

    def test_header_bytes_ignored(self):
        payload = bytes([0x80] * 18)
        a = LegacyParser().parse(Channel.AF8, _legacy(payload, 0), 1.0)[0]
        b = LegacyParser().parse(Channel.AF8, _legacy(payload, 0xFFFF), 1.0)[0]
        assert np.array_equal(a.samples, b.samples)
        assert b.packet_index == 0xFFFF

    def test_arrival_timestamp_carried(self):
        batch = LegacyParser().parse(Channel.AF7, _legacy(bytes(18)), 12.5)[0]
        assert batch.timestamp == 12.5
        assert batch.device_time is None

    def test_truncated_packet_dropped(self):
        assert LegacyParser().parse(Channel.AF7, _legacy(bytes(10)), 1.0) == []
        assert LegacyParser().parse(Channel.AF7, b"\x00", 1.0) == []


class TestLegacySensors:
    def test_ppg(self):
        payload = b"\x01\x00\x00" * 6
        batch = LegacyParser().parse(Channel.PPG2, _legacy(payload), 1.0)[0]
        assert batch.samples.tolist() == [65536.0] * 6

    def test_accel_averages_axes(self):
        values = [100, -1000, 16384, 200, -1000, 16384, 300, -1000, 16384]
        payload = b"".join(v.to_bytes(2, "big", signed=True) for v in values)
        batch = LegacyParser().parse(Channel.ACCEL, _legacy(payload), 1.0)[0]
        assert batch.samples == pytest.approx([200 * 0.0000610, -1000 * 0.0000610, 16384 * 0.0000610])

    def test_gyro_uses_gyro_scale(self):
        payload = b"".join((10).to_bytes(2, "big", signed=True) for _ in range(9))
        batch = LegacyParser().parse(Channel.GYRO, _legacy(payload), 1.0)[0]
        assert batch.samples == pytest.approx([10 * 0.0074768] * 3)

    def test_battery(self):
        payload = b"".join(v.to_bytes(2, "big") for v in (51200, 1000, 3700, 25))
        batch = LegacyParser().parse(Channel.BATTERY, _legacy(payload), 1.0)[0]
        assert batch.samples.tolist() == pytest.approx([100.0, 2200.0, 3700.0, 25.0])

    def test_control_is_not_a_sample_channel(self):
        assert LegacyParser().parse(Channel.CONTROL, _legacy(b"\x02{}"), 1.0) == []


class TestProtocolConstants:
    def test_channel_names(self):
        assert CHANNEL_NAMES == ["TP9", "AF7", "AF8", "TP10"]

    def test_uuid_lookup_round_trips(self):
        for channel in EEG_CHANNELS:
            assert UUID_CHANNELS[CHANNEL_UUIDS[channel]] == channel

    def test_sample_rate(self):
        assert SAMPLE_RATE == 256

    def test_commands_are_bytearrays(self):
        assert isinstance(CMD_RESUME, bytearray)
        assert isinstance(CMD_HALT, bytearray)
