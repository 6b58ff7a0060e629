"""AnalysisContext: shared, read-only analysis resources built once per process."""

from __future__ import annotations

from dataclasses import dataclass

from .config import MuseSenseConfig
from .eeg.bands import BandMapper
from .eeg.spectrum import SpectralEngine


@dataclass(frozen=True)
class AnalysisContext:
    """Everything that depends only on configuration.

    Built once at start-up and handed to every component that needs band
    tables or the FFT engine, instead of module-level singletons.
    """
    config: MuseSenseConfig
    mapper: BandMapper
    engine: SpectralEngine

    @classmethod
    def from_config(cls, config: MuseSenseConfig | None = None) -> "AnalysisContext":
        config = config or MuseSenseConfig()
        config.validate()
        mapper = BandMapper.from_names(config.sample_rate, config.fft_window, config.bands)
        engine = SpectralEngine(
            config.fft_window,
            scaling=config.spectrum_scaling,
            noise_floor=config.noise_floor,
        )
        return cls(config=config, mapper=mapper, engine=engine)
