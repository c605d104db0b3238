"""
ICOM CI-V Protocol Handler
Builds the scope and power CI-V frames and writes them to the radio
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import serial

from .models import RadioConfig

logger = logging.getLogger(__name__)


class CIVCommand(IntEnum):
    """CI-V command codes"""
    SET_LEVEL = 0x14
    SCOPE = 0x27


class LevelSubCommand(IntEnum):
    """Sub commands of SET_LEVEL (0x14)"""
    RF_POWER = 0x0A


class ScopeSubCommand(IntEnum):
    """Sub commands of SCOPE (0x27)"""
    FIXED_MODE = 0x14
    EDGE_SET = 0x16
    REF_LEVEL = 0x19
    FIXED_EDGES = 0x1E


# CI-V protocol constants
CIV_PREAMBLE = 0xFE
CIV_EOM = 0xFD  # End of message
CONTROLLER_ADDRESS = 0xE0

# Scope display selector, 0x00 = main scope
MAIN_SCOPE = 0x00


@dataclass
class CIVMessage:
    """Represents a CI-V protocol message"""
    destination: int
    source: int
    command: int
    sub_command: Optional[int] = None
    data: bytes = b""

    def to_bytes(self) -> bytes:
        """Convert message to bytes for transmission"""
        msg = bytes([CIV_PREAMBLE, CIV_PREAMBLE, self.destination, self.source, self.command])
        if self.sub_command is not None:
            msg += bytes([self.sub_command])
        msg += self.data
        msg += bytes([CIV_EOM])
        return msg


def to_bcd_byte(value: int) -> int:
    """Pack a number 0-99 as one BCD byte, tens in the high nibble"""
    if not 0 <= value <= 99:
        raise ValueError(f"Value out of BCD byte range: {value}")
    return ((value // 10) << 4) | (value % 10)


def from_bcd_byte(byte: int) -> int:
    return ((byte >> 4) & 0x0F) * 10 + (byte & 0x0F)


def freq_to_bcd(frequency: int) -> bytes:
    """Convert frequency in Hz to BCD format (5 bytes, LSB first).

    Example: 7.200.000 Hz = 0x00 0x00 0x20 0x07 0x00
    """
    freq = frequency
    bcd = []
    for _ in range(5):
        bcd.append((freq % 10) | ((freq // 10 % 10) << 4))
        freq //= 100
    return bytes(bcd)


def bcd_to_freq(bcd_data: bytes) -> int:
    """Convert BCD format (LSB first) to frequency in Hz"""
    frequency = 0
    multiplier = 1
    for byte in bcd_data:
        low_nibble = byte & 0x0F
        high_nibble = (byte >> 4) & 0x0F
        frequency += low_nibble * multiplier
        multiplier *= 10
        frequency += high_nibble * multiplier
        multiplier *= 10
    return frequency


def power_percent_to_level(percent: int) -> int:
    """Map 0-100 % to the radio's 0-255 power setting.

    ICOM rounds up: 1 % is 3, 50 % is 128, 100 % is 255.
    """
    percent = max(0, min(100, int(percent)))
    return (255 * percent + 99) // 100


def _scope_message(civ_address: int, sub_command: int, data: bytes) -> CIVMessage:
    return CIVMessage(
        destination=civ_address,
        source=CONTROLLER_ADDRESS,
        command=CIVCommand.SCOPE,
        sub_command=sub_command,
        data=data,
    )


def set_fixed_mode_frame(civ_address: int) -> bytes:
    """Put the main scope in fixed (non-scrolling) edge mode"""
    return _scope_message(
        civ_address, ScopeSubCommand.FIXED_MODE, bytes([MAIN_SCOPE, 0x01])
    ).to_bytes()


def set_edge_set_frame(civ_address: int, edge_set: int) -> bytes:
    """Select which fixed edge memory (1-3) the scope uses"""
    return _scope_message(
        civ_address, ScopeSubCommand.EDGE_SET, bytes([MAIN_SCOPE, to_bcd_byte(edge_set)])
    ).to_bytes()


def set_edges_frame(
    civ_address: int, edge_segment: int, edge_set: int, lower_khz: int, upper_khz: int
) -> bytes:
    """Write lower and upper edges (kHz) into one fixed edge memory.

    Layout after the sub command:
    - Byte 0: edge segment (BCD)
    - Byte 1: edge set
    - Bytes 2-6: lower edge (5 bytes BCD, Hz, LSB first)
    - Bytes 7-11: upper edge (5 bytes BCD, Hz, LSB first)
    """
    data = (
        bytes([to_bcd_byte(edge_segment), to_bcd_byte(edge_set)])
        + freq_to_bcd(lower_khz * 1000)
        + freq_to_bcd(upper_khz * 1000)
    )
    return _scope_message(civ_address, ScopeSubCommand.FIXED_EDGES, data).to_bytes()


def set_ref_level_frame(civ_address: int, ref_level: int) -> bytes:
    """Set the scope reference level in whole dB.

    Data is 00 <|level| BCD> <0.1 dB, always 00> <sign, 01 = negative>
    """
    magnitude = abs(ref_level)
    data = bytes([MAIN_SCOPE, to_bcd_byte(magnitude), 0x00, 0x01 if ref_level < 0 else 0x00])
    return _scope_message(civ_address, ScopeSubCommand.REF_LEVEL, data).to_bytes()


def set_power_level_frame(civ_address: int, percent: int, barefoot: bool = False) -> bytes:
    """Set RF power from a percentage, full power when running barefoot"""
    level = 255 if barefoot else power_percent_to_level(percent)
    data = bytes([(level // 100) % 10, to_bcd_byte(level % 100)])
    return CIVMessage(
        destination=civ_address,
        source=CONTROLLER_ADDRESS,
        command=CIVCommand.SET_LEVEL,
        sub_command=LevelSubCommand.RF_POWER,
        data=data,
    ).to_bytes()


def decode_power_level(frame: bytes) -> int:
    """Read the 0-255 power setting back out of a SET_LEVEL frame"""
    return frame[6] * 100 + from_bcd_byte(frame[7])


class Transport(ABC):
    """Byte sink for CI-V frames"""

    last_error: Optional[str] = None

    @abstractmethod
    def write(self, frame: bytes) -> bool:
        """Send one frame, False if it did not reach the radio"""

    def close(self) -> None:
        pass


class NullTransport(Transport):
    """Discards every frame, for running without a radio attached"""

    def write(self, frame: bytes) -> bool:
        logger.debug("No radio, dropping %s", frame.hex(" "))
        return True


class SerialTransport(Transport):
    """Write-only CI-V link over a serial port"""

    WRITE_TIMEOUT = 1.0

    def __init__(self, config: RadioConfig):
        self.config = config
        self.serial: Optional[serial.Serial] = None
        self.last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.serial is not None and self.serial.is_open

    @property
    def description(self) -> str:
        if self.is_connected:
            return self.config.port
        return f"{self.config.port} - failed to open"

    def connect(self) -> bool:
        """Open the serial port, 8N1 at the configured speed"""
        try:
            self.serial = serial.Serial(
                port=self.config.port,
                baudrate=self.config.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                write_timeout=self.WRITE_TIMEOUT,
            )
            self.last_error = None
            logger.info("Opened %s at %d baud", self.config.port, self.config.baud_rate)
            return True
        except (serial.SerialException, ValueError) as e:
            self.serial = None
            self.last_error = str(e)
            logger.warning("Failed to open %s: %s", self.config.port, e)
            return False

    def close(self) -> None:
        """Close connection to the radio"""
        if self.serial and self.serial.is_open:
            self.serial.close()
        self.serial = None

    def reset(self, config: Optional[RadioConfig] = None) -> bool:
        """Re-open the port, e.g. after the port or speed was changed"""
        self.close()
        if config is not None:
            self.config = config
        return self.connect()

    def write(self, frame: bytes) -> bool:
        if not self.is_connected:
            return False
        try:
            self.serial.write(frame)
            self.serial.flush()
        except (serial.SerialException, OSError) as e:
            if self.last_error is None:
                logger.warning("Write to %s failed: %s", self.config.port, e)
            self.last_error = str(e)
            return False
        self.last_error = None
        return True
