"""Demultiplexer: single entry point over both protocol generations."""

from __future__ import annotations

from .legacy import LegacyParser
from .packets import Legacy, PacketSource, RawPacket, SampleBatch, Tagged
from .protocol import EEG_MIDPOINT
from .tagged import TaggedParser


class Demultiplexer:
    """Routes raw payloads to the parser for their protocol generation.

    The legacy parser is stateless. The tagged parser keeps per-electrode
    FIFOs between calls, so one Demultiplexer lives for the whole session.

    Usage::

        demux = Demultiplexer()
        for batch in demux.parse(Legacy(Channel.AF7), payload, timestamp):
            ...
    """

    def __init__(self, eeg_midpoint: float = EEG_MIDPOINT, eeg_window: int = 12):
        self.legacy = LegacyParser(eeg_midpoint=eeg_midpoint)
        self.tagged = TaggedParser(eeg_window=eeg_window)

    def parse(
        self, source: PacketSource, payload: bytes, timestamp: float
    ) -> list[SampleBatch]:
        if isinstance(source, Legacy):
            return self.legacy.parse(source.channel, payload, timestamp)
        if isinstance(source, Tagged):
            return self.tagged.parse(payload, timestamp)
        raise TypeError(f"Unsupported packet source: {source!r}")

    def parse_packet(self, packet: RawPacket) -> list[SampleBatch]:
        return self.parse(packet.source, packet.payload, packet.timestamp)
