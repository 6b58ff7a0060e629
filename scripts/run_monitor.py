#!/usr/bin/env python3
"""Connect to Muse and print band power, heart rate, movement and battery in real-time."""

import argparse
import asyncio
import logging
import signal
import time

from musesense.ble.protocol import Channel
from musesense.config import MuseSenseConfig
from musesense.eeg.bands import ALL_BANDS, FrequencyBand
from musesense.eeg.store import Region
from musesense.events.base import Event, EventType
from musesense.pipeline import Pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--device", default=MuseSenseConfig.device_name)
    parser.add_argument("--protocol", choices=["legacy", "tagged"], default="legacy")
    parser.add_argument("--scaling", choices=["power", "magnitude"], default="power")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


async def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    config = MuseSenseConfig(
        device_name=args.device,
        protocol=args.protocol,
        spectrum_scaling=args.scaling,
    )
    pipeline = Pipeline(config)
    last_bands = 0.0

    def print_bands(event: Event) -> None:
        nonlocal last_bands
        # One line per second is plenty
        if event.timestamp - last_bands < 1.0:
            return
        last_bands = event.timestamp
        shares = "  ".join(
            f"{band.name.lower()}={pipeline.store.relative(band, Region.HEADSET):.2f}"
            for band in ALL_BANDS
        )
        alpha = pipeline.store.summary(FrequencyBand.ALPHA, Region.HEADSET)
        peak = f"  alpha {alpha.percent:.0%} of peak" if alpha is not None else ""
        print(f"  [{time.strftime('%H:%M:%S')}] {shares}{peak}")

    def print_event(event: Event) -> None:
        if event.type == EventType.HEARTBEAT:
            beat = event.payload
            print(f"  heart {beat.bpm:5.1f} bpm  rmssd {beat.rmssd_ms:5.1f} ms  hrv {beat.hrv_index:3.0f}")
        elif event.type == EventType.MOVEMENT and event.value > 0:
            print(f"  movement {event.value:.2f}")
        elif event.type == EventType.BATTERY:
            print(f"  battery {event.value:.0f}%")
        elif event.type == EventType.CONTROL:
            print(f"  control {event.payload}")

    # AF7 epochs pace the band line
    pipeline.bus.subscribe(EventType.SPECTRUM, print_bands, channel=Channel.AF7)
    pipeline.bus.subscribe(None, print_event)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(pipeline.stop()))

    await pipeline.start()


if __name__ == "__main__":
    asyncio.run(main())
