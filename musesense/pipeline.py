"""Pipeline: wires BLE packets through decoding and analysis into events."""

from __future__ import annotations

import asyncio
import logging

from .ble.connection import MuseConnection
from .ble.demux import Demultiplexer
from .ble.packets import Legacy, PacketSource, SampleBatch
from .ble.protocol import EEG_CHANNELS, HEART_CHANNEL, Channel, ControlMessageParser
from .config import MuseSenseConfig
from .context import AnalysisContext
from .eeg.stream import EpochAssembler
from .eeg.store import SpectrumStore
from .events.base import Event, EventType
from .events.bus import EventBus
from .motion.movement import MovementEstimator
from .ppg.sensor import PROFILES, PPGSensor

logger = logging.getLogger(__name__)


class Pipeline:
    """Orchestrates decoding and analysis for one headset.

    ``process`` is the synchronous core: feed it every notification in
    arrival order and it returns (and publishes on ``bus``) the events that
    notification produced. ``start`` connects to real hardware and drives
    ``process`` from the BLE callbacks.

    Usage::

        pipeline = Pipeline(MuseSenseConfig(protocol="legacy"))
        pipeline.bus.subscribe(EventType.HEARTBEAT, lambda e: print(e.value))
        await pipeline.start()  # blocks until cancelled
    """

    def __init__(
        self,
        config: MuseSenseConfig | None = None,
        context: AnalysisContext | None = None,
    ):
        self.context = context or AnalysisContext.from_config(config)
        self.config = c = self.context.config

        self.demux = Demultiplexer(eeg_midpoint=c.eeg_midpoint, eeg_window=c.samples_per_packet)
        self.control = ControlMessageParser()
        self.assembler = EpochAssembler(c.fft_window, c.samples_per_packet, c.epoch_interval)
        self.store = SpectrumStore(self.context.mapper, history_length=c.band_history)
        self.ppg = PPGSensor(c, PROFILES[c.protocol])
        self.movement = MovementEstimator(c.motion_window, c.motion_noise_floor, c.motion_full_range)
        self.bus = EventBus()

        self.connection = MuseConnection(
            c.device_name,
            protocol=c.protocol,
            scan_timeout=c.scan_timeout,
            connect_timeout=c.connect_timeout,
            max_retries=c.max_retries,
            retry_delay=c.retry_delay,
        )
        self._stopped: asyncio.Event | None = None

    def process(self, source: PacketSource, payload: bytes, timestamp: float) -> list[Event]:
        """Decode one notification and run every analysis it feeds."""
        if isinstance(source, Legacy) and source.channel == Channel.CONTROL:
            events = self._control(payload, timestamp)
        else:
            events = []
            for batch in self.demux.parse(source, payload, timestamp):
                events.extend(self._route(batch))

        for event in events:
            self.bus.publish(event)
        return events

    def _control(self, payload: bytes, timestamp: float) -> list[Event]:
        message = self.control.feed(payload)
        if message is None:
            return []
        logger.debug("Control reply: %s", message)
        return [Event(EventType.CONTROL, timestamp, payload=message)]

    def _route(self, batch: SampleBatch) -> list[Event]:
        channel = batch.channel

        if channel in EEG_CHANNELS:
            epoch = self.assembler.add(batch)
            if epoch is None:
                return []
            result = self.context.engine.transform(
                epoch.samples,
                channel=epoch.channel,
                timestamp=epoch.timestamp,
                sequence=epoch.sequence,
            )
            self.store.update(result)
            return [
                Event(
                    EventType.SPECTRUM,
                    epoch.timestamp,
                    payload=result,
                    metadata={"channel": channel.value},
                )
            ]

        if channel == HEART_CHANNEL:
            return [
                Event(EventType.HEARTBEAT, beat.timestamp, value=beat.bpm, payload=beat)
                for beat in self.ppg.process(batch)
            ]

        if channel == Channel.ACCEL and len(batch) >= 3:
            x, y, z = (float(v) for v in batch.samples[:3])
            sample = self.movement.update(x, y, z)
            return [Event(EventType.MOVEMENT, batch.timestamp, value=sample.movement, payload=sample)]

        if channel == Channel.BATTERY:
            return [
                Event(EventType.BATTERY, batch.timestamp, value=float(batch.samples[0]), payload=batch)
            ]

        # AUX, PPG1, PPG3 and gyro carry no analysis of their own
        return []

    async def start(self) -> None:
        """Connect to the headset and process notifications until cancelled."""
        self._stopped = asyncio.Event()
        self.connection.on_packet(self.process)

        await self.connection.connect()
        logger.info("Pipeline running (%s protocol). Press Ctrl+C to stop.", self.config.protocol)

        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Ask a running ``start`` to return."""
        if self._stopped is not None:
            self._stopped.set()

    async def _shutdown(self) -> None:
        await self.connection.disconnect()
        logger.info("Pipeline stopped.")
