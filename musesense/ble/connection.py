"""MuseConnection: BLE lifecycle for Muse headsets."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from collections.abc import Callable
from typing import Any

from bleak import BleakClient, BleakScanner

from .packets import Legacy, PacketSource, Tagged
from .protocol import (
    CHANNEL_UUIDS,
    CMD_HALT,
    CMD_PRESET_1035,
    CMD_RESUME,
    CMD_START_TAGGED,
    CONTROL_UUID,
    EEG_CHANNELS,
    PPG_CHANNELS,
    TAGGED_UUIDS,
    Channel,
)

logger = logging.getLogger(__name__)

PacketCallback = Callable[[PacketSource, bytes, float], None]

LEGACY_STREAMS = EEG_CHANNELS + PPG_CHANNELS + (
    Channel.ACCEL,
    Channel.GYRO,
    Channel.BATTERY,
    Channel.CONTROL,
)


class MuseConnection:
    """Manage scanning, connecting, and streaming from a Muse headset.

    Raw notifications are handed to callbacks untouched, together with the
    packet source and the arrival time; decoding happens downstream.

    Usage::

        conn = MuseConnection("Muse-31A9")
        conn.on_packet(my_callback)  # called with (source, payload, timestamp)
        await conn.connect()
        await asyncio.sleep(20)
        await conn.disconnect()
    """

    def __init__(
        self,
        device_name: str,
        *,
        protocol: str = "legacy",
        scan_timeout: float = 10.0,
        connect_timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        if protocol not in ("legacy", "tagged"):
            raise ValueError(f"Unknown protocol {protocol!r}")
        self.device_name = device_name
        self.protocol = protocol
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._callbacks: list[PacketCallback] = []
        self._client: BleakClient | None = None
        self._device: Any = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected and self._client is not None and self._client.is_connected

    def on_packet(self, callback: PacketCallback) -> None:
        """Register a callback: ``callback(source, payload, timestamp)``."""
        self._callbacks.append(callback)

    def subscriptions(self) -> dict[str, PacketSource]:
        """Characteristic UUID to packet source, for the configured protocol."""
        subs: dict[str, PacketSource] = {CONTROL_UUID: Legacy(Channel.CONTROL)}
        if self.protocol == "tagged":
            for uuid in TAGGED_UUIDS:
                subs[uuid] = Tagged()
        else:
            for channel in LEGACY_STREAMS:
                subs[CHANNEL_UUIDS[channel]] = Legacy(channel)
        return subs

    def _make_notify_callback(self, source: PacketSource):
        def callback(_sender: Any, data: bytearray) -> None:
            ts = asyncio.get_running_loop().time()
            payload = bytes(data)
            for cb in self._callbacks:
                cb(source, payload, ts)
        return callback

    async def _scan(self) -> None:
        logger.info("Scanning for %s...", self.device_name)
        self._device = await BleakScanner.find_device_by_name(
            self.device_name, timeout=self.scan_timeout
        )
        if not self._device:
            raise RuntimeError(
                f"{self.device_name} not found. Is it in pairing mode?"
            )
        logger.info("Found: %s (%s)", self._device.name, self._device.address)

    async def _trust(self) -> None:
        """Trust the device via bluetoothctl to avoid BlueZ auth issues."""
        try:
            subprocess.run(
                ["bluetoothctl", "trust", self._device.address],
                capture_output=True,
                timeout=5,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug("bluetoothctl trust skipped: %s", e)

    async def _start_streaming(self) -> None:
        if self.protocol == "tagged":
            await self._client.write_gatt_char(CONTROL_UUID, CMD_HALT)
            await self._client.write_gatt_char(CONTROL_UUID, CMD_PRESET_1035)
            await self._client.write_gatt_char(CONTROL_UUID, CMD_START_TAGGED)
        else:
            await self._client.write_gatt_char(CONTROL_UUID, CMD_RESUME)

    async def connect(self) -> None:
        """Scan, trust, and connect with retries. Starts streaming."""
        await self._scan()
        await self._trust()

        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info("Connecting (attempt %d/%d)...", attempt, self.max_retries)
                self._client = BleakClient(
                    self._device, timeout=self.connect_timeout
                )
                await self._client.connect()
                self._connected = True
                logger.info("Connected: %s", self._client.is_connected)

                for uuid, source in self.subscriptions().items():
                    await self._client.start_notify(
                        uuid, self._make_notify_callback(source)
                    )

                await self._start_streaming()
                return
            except Exception as e:
                self._connected = False
                logger.warning("Connection attempt %d failed: %s", attempt, e)
                if attempt < self.max_retries:
                    logger.info("Retrying in %.1fs...", self.retry_delay)
                    await asyncio.sleep(self.retry_delay)

        raise RuntimeError("All connection attempts failed.")

    async def disconnect(self) -> None:
        """Stop streaming and disconnect gracefully."""
        if not self._client:
            return

        try:
            await self._client.write_gatt_char(CONTROL_UUID, CMD_HALT)
            for uuid in self.subscriptions():
                await self._client.stop_notify(uuid)
        except Exception as e:
            logger.debug("Stop streaming failed, likely already disconnected: %s", e)

        try:
            await self._client.disconnect()
        except Exception as e:
            logger.debug("Disconnect failed: %s", e)

        self._connected = False
        self._client = None
