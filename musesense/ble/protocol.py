"""Muse BLE protocol: UUIDs, channels, commands, constants and control replies."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Channel(Enum):
    TP9 = "TP9"
    AF7 = "AF7"
    AF8 = "AF8"
    TP10 = "TP10"
    AUX = "AUX"
    PPG1 = "PPG1"
    PPG2 = "PPG2"
    PPG3 = "PPG3"
    ACCEL = "ACCEL"
    GYRO = "GYRO"
    BATTERY = "BATTERY"
    CONTROL = "CONTROL"


# Left ear, left forehead, right forehead, right ear
EEG_CHANNELS = (Channel.TP9, Channel.AF7, Channel.AF8, Channel.TP10)
LEGACY_EEG_CHANNELS = EEG_CHANNELS + (Channel.AUX,)
PPG_CHANNELS = (Channel.PPG1, Channel.PPG2, Channel.PPG3)

# PPG2 is the medium-sensitivity sensor and the one used for heart analysis
HEART_CHANNEL = Channel.PPG2

CHANNEL_NAMES = [ch.value for ch in EEG_CHANNELS]

# GATT characteristic UUIDs (Muse 2 / Muse S)
CONTROL_UUID = "273e0001-4c4d-454d-96be-f03bac821358"

CHANNEL_UUIDS = {
    Channel.TP9:     "273e0003-4c4d-454d-96be-f03bac821358",
    Channel.AF7:     "273e0004-4c4d-454d-96be-f03bac821358",
    Channel.AF8:     "273e0005-4c4d-454d-96be-f03bac821358",
    Channel.TP10:    "273e0006-4c4d-454d-96be-f03bac821358",
    Channel.AUX:     "273e0007-4c4d-454d-96be-f03bac821358",
    Channel.GYRO:    "273e0009-4c4d-454d-96be-f03bac821358",
    Channel.ACCEL:   "273e000a-4c4d-454d-96be-f03bac821358",
    Channel.BATTERY: "273e000b-4c4d-454d-96be-f03bac821358",
    Channel.PPG1:    "273e000f-4c4d-454d-96be-f03bac821358",
    Channel.PPG2:    "273e0010-4c4d-454d-96be-f03bac821358",
    Channel.PPG3:    "273e0011-4c4d-454d-96be-f03bac821358",
    Channel.CONTROL: CONTROL_UUID,
}

UUID_CHANNELS = {uuid: ch for ch, uuid in CHANNEL_UUIDS.items()}

# Newer (tagged sub-packet) hardware multiplexes the sensors on two characteristics
TAGGED_UUIDS = (
    "273e0013-4c4d-454d-96be-f03bac821358",
    "273e0014-4c4d-454d-96be-f03bac821358",
)

# Control commands
CMD_RESUME = bytearray([0x02, 0x64, 0x0A])  # 'd': start streaming
CMD_HALT = bytearray([0x02, 0x68, 0x0A])    # 'h': stop streaming
CMD_STATUS = bytearray([0x02, 0x73, 0x0A])
CMD_PRESET_1035 = bytearray([0x06, 0x70, 0x31, 0x30, 0x33, 0x35, 0x0A])  # EEG4 + optics4
CMD_START_TAGGED = bytearray([0x06, 0x64, 0x63, 0x30, 0x30, 0x31, 0x0A])  # "dc001"

# Legacy stream parameters
SAMPLE_RATE = 256
SAMPLES_PER_PACKET = 12
PPG_SAMPLES_PER_PACKET = 6
PPG_SAMPLE_RATE = 64
SCALE_FACTOR = 0.48828125  # 2000 / 4096
EEG_MIDPOINT = 2048        # some firmware decoders use 2040
ACCEL_SCALE_FACTOR = 0.0000610
GYRO_SCALE_FACTOR = 0.0074768
BATTERY_PCT_DIVIDEND = 512.0

# Longest control reply kept while waiting for its closing brace
MAX_CONTROL_MESSAGE = 4096


class ControlMessageParser:
    """Reassembles the JSON-like status replies sent on the control characteristic.

    Each notification starts with a byte giving the number of valid characters
    that follow. A reply can span several notifications and ends with ``}``.
    """

    def __init__(self) -> None:
        self._message = ""

    def feed(self, payload: bytes) -> dict[str, Any] | None:
        if not payload:
            return None

        length = min(payload[0], len(payload) - 1)
        for byte in payload[1:1 + length]:
            char = chr(byte)
            self._message += char
            if char == "}":
                message, self._message = self._message, ""
                return self._decode(message)
            if len(self._message) > MAX_CONTROL_MESSAGE:
                logger.debug("Dropping unterminated control reply of %d chars", len(self._message))
                self._message = ""
        return None

    @staticmethod
    def _decode(message: str) -> dict[str, Any] | None:
        start = message.find("{")
        if start < 0:
            logger.debug("Control reply without opening brace: %r", message)
            return None
        try:
            decoded = json.loads(message[start:])
        except json.JSONDecodeError:
            logger.debug("Undecodable control reply: %r", message)
            return None
        if not isinstance(decoded, dict) or not decoded:
            return None
        return decoded

    def reset(self) -> None:
        self._message = ""
