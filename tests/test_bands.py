"""Unit tests for band-to-bin mapping and relative band power."""

import numpy as np
import pytest

from musesense.config import DEFAULT_BANDS
from musesense.eeg.bands import ALL_BANDS, BandMapper, FrequencyBand


@pytest.fixture
def mapper():
    return BandMapper(sample_rate=256, window_size=256)


class TestGeometry:
    def test_frequency_axis(self, mapper):
        assert len(mapper.frequencies) == 129
        assert mapper.frequencies[10] == pytest.approx(10.0)
        assert mapper.max_frequency == pytest.approx(127.0)

    def test_preset_bins(self, mapper):
        assert mapper.bins[FrequencyBand.ALPHA] == (8, 12)
        assert mapper.bins[FrequencyBand.GAMMA] == (30, 44)

    def test_bins_follow_resolution(self):
        mapper = BandMapper(sample_rate=256, window_size=512)
        assert mapper.bins[FrequencyBand.ALPHA] == (16, 24)

    def test_nearest_bin(self, mapper):
        assert mapper.bin_for_frequency(10.4) == 10
        assert mapper.bin_for_frequency(10.6) == 11

    def test_custom_range_clamped(self, mapper):
        assert mapper.bins_for_range(100.0, 500.0) == (100, 127)
        assert mapper.bins_for_range(-5.0, 2.0) == (0, 2)

    def test_from_names(self):
        mapper = BandMapper.from_names(256, 256, {**DEFAULT_BANDS, "alpha": (7.0, 13.0)})
        assert mapper.bins[FrequencyBand.ALPHA] == (7, 13)
        assert mapper.bins[FrequencyBand.BETA] == (13, 29)

    def test_from_names_unknown_band(self):
        with pytest.raises(ValueError):
            BandMapper.from_names(256, 256, {"mu": (8.0, 13.0)})


class TestSlice:
    def test_inclusive(self):
        assert BandMapper.slice((2, 4), np.arange(10)).tolist() == [2, 3, 4]

    def test_reordered(self):
        assert BandMapper.slice((5, 2), np.arange(10)).tolist() == [2, 3, 4, 5]

    def test_clamped(self):
        assert BandMapper.slice((8, 20), np.arange(10)).tolist() == [8, 9]

    def test_empty_inputs(self):
        assert len(BandMapper.slice((0, 3), [])) == 0
        assert len(BandMapper.slice((20, 30), np.arange(10))) == 0


class TestBandValues:
    def test_band_value_is_mean(self, mapper):
        spectrum = np.zeros(128)
        spectrum[8:13] = [1, 2, 3, 4, 5]
        assert mapper.band_value(FrequencyBand.ALPHA, spectrum) == pytest.approx(3.0)

    def test_band_value_empty_spectrum(self, mapper):
        assert mapper.band_value(FrequencyBand.ALPHA, []) == 0.0

    def test_range_value(self, mapper):
        spectrum = np.arange(128, dtype=float)
        assert mapper.range_value(20.0, 22.0, spectrum) == pytest.approx(21.0)

    def test_relative_sums_to_one(self, mapper):
        spectrum = np.random.default_rng(1).uniform(0.1, 5.0, 128)
        shares = mapper.relative_all(spectrum)
        assert sum(shares.values()) == pytest.approx(1.0)
        assert all(0.0 < s < 1.0 for s in shares.values())

    def test_relative_of_zero_spectrum(self, mapper):
        for band in ALL_BANDS:
            assert mapper.relative(band, np.zeros(128)) == 0.0

    def test_negative_band_floored(self, mapper):
        spectrum = np.ones(128)
        spectrum[1:4] = -10.0
        assert mapper.relative(FrequencyBand.DELTA, spectrum) == 0.0
        assert mapper.relative(FrequencyBand.ALPHA, spectrum) == pytest.approx(0.25)

    def test_nan_spectrum(self, mapper):
        spectrum = np.full(128, np.nan)
        assert mapper.relative(FrequencyBand.ALPHA, spectrum) == 0.0
