"""
Logger Broadcast Listeners
Receive N1MM Logger+ and DXLog.net UDP broadcasts and feed band/mode changes to the engine
"""

import logging
import socket
import threading
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .engine import Engine
from .models import Mode, classify_mode, classify_mode_prefix, resolve_band

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 65535


@dataclass
class RadioInfo:
    """N1MM RadioInfo datagram, only the fields we care about"""
    station_name: str = ""
    radio_nr: int = 0
    freq: int = 0
    """Receive frequency in Hz"""
    tx_freq: int = 0
    mode: str = ""
    active_radio_nr: int = 0
    focus_radio_nr: int = 0

    @property
    def frequency_khz(self) -> int:
        return (self.freq + 500) // 1000


def parse_radio_info(text: str) -> Optional[RadioInfo]:
    """Parse an N1MM datagram.

    Returns None for datagrams that are not RadioInfo and an all-zero
    RadioInfo for anything that cannot be parsed.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return RadioInfo()
    if root.tag != "RadioInfo":
        return None

    def text_of(tag: str) -> str:
        return (root.findtext(tag) or "").strip()

    def int_of(tag: str) -> int:
        value = text_of(tag)
        return int(value) if value else 0

    try:
        return RadioInfo(
            station_name=text_of("StationName"),
            radio_nr=int_of("RadioNr"),
            freq=int_of("Freq"),
            tx_freq=int_of("TXFreq"),
            mode=text_of("Mode"),
            active_radio_nr=int_of("ActiveRadioNr"),
            focus_radio_nr=int_of("FocusRadioNr"),
        )
    except ValueError:
        return RadioInfo()


# DXLog.net datagram layout, in UTF-16 characters
DXLOG_SENDER_OFFSET = 0
DXLOG_TYPE_OFFSET = 32
DXLOG_BAND_OFFSET = 56
DXLOG_MODE_OFFSET = 66
DXLOG_FREQUENCY_OFFSETS = {1: 101, 2: 121}
DXLOG_STATION_INFO = "STI"


@dataclass
class StationInfo:
    """DXLog station info (STI) datagram"""
    sender: str
    band: str
    mode: str
    """First two characters of the mode"""
    frequency: int
    """Frequency in kHz"""


def _terminated_field(text: str, offset: int) -> str:
    end = text.find("\0", offset)
    return text[offset:] if end < 0 else text[offset:end]


def parse_station_info(
    data: bytes, station: str, radio_number: int = 1, encoding: str = "utf-16-le"
) -> Optional[StationInfo]:
    """Parse a DXLog datagram from the given station.

    Returns None for other datagram types or other stations. Raises
    ValueError if the frequency field is not a number.
    """
    if radio_number not in DXLOG_FREQUENCY_OFFSETS:
        raise ValueError(f"Unsupported radio number: {radio_number}")

    text = data.decode(encoding, errors="replace")
    sender = _terminated_field(text, DXLOG_SENDER_OFFSET)
    if text[DXLOG_TYPE_OFFSET:DXLOG_TYPE_OFFSET + 3] != DXLOG_STATION_INFO or sender != station:
        return None

    # Frequency is sent in tens of Hz
    digits = _terminated_field(text, DXLOG_FREQUENCY_OFFSETS[radio_number])
    frequency = int(digits) // 100

    return StationInfo(
        sender=sender,
        band=_terminated_field(text, DXLOG_BAND_OFFSET),
        mode=text[DXLOG_MODE_OFFSET:DXLOG_MODE_OFFSET + 2],
        frequency=frequency,
    )


class RadioInfoListener(ABC):
    """Receives one logger's broadcasts on a background thread.

    Datagrams are handled one at a time in arrival order. Only a change of
    band or mode is passed on to the engine, so front panel changes on the
    radio survive frequency updates within the same band.
    """

    name = "logger"

    def __init__(self, engine: Engine, port: int, host: str = ""):
        self.engine = engine
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @abstractmethod
    def decode(self, data: bytes) -> Optional[tuple[int, Mode]]:
        """Return (frequency kHz, mode) for a relevant report, None otherwise"""

    def report(self, frequency: int, mode: Mode) -> bool:
        """Pass a frequency report on, returns True if the band/mode changed"""
        band = resolve_band(frequency)
        if not band.is_valid:
            return False
        if self.engine.is_current(band.index, mode):
            self.engine.note_frequency(frequency)
            return False
        return self.engine.on_band_mode_changed(frequency, band.index, mode)

    def handle_datagram(self, data: bytes) -> bool:
        """Decode and act on one datagram, never raises"""
        try:
            decoded = self.decode(data)
            if decoded is None:
                return False
            return self.report(*decoded)
        except Exception as e:
            logger.debug("%s: dropped datagram: %s", self.name, e)
            return False

    def start(self) -> None:
        """Bind the UDP port and start receiving. Raises OSError if the port is taken"""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.settimeout(0.5)
        self._sock = sock
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"{self.name}-udp", daemon=True
        )
        self._thread.start()
        logger.info("Listening for %s broadcasts on UDP port %d", self.name, self.port)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def bound_port(self) -> Optional[int]:
        """Actual UDP port, differs from port when port 0 was asked for"""
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                data, _addr = self._sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.debug("%s: receive failed: %s", self.name, e)
                continue
            self.handle_datagram(data)


class N1MMListener(RadioInfoListener):
    """N1MM Logger+ RadioInfo XML broadcasts.

    Follows the reports for one fixed radio number (radio 1 unless configured
    otherwise), whichever radio N1MM considers active.
    """

    name = "N1MM"

    def __init__(self, engine: Engine, port: int, radio_number: int = 1, host: str = ""):
        super().__init__(engine, port, host)
        self.radio_number = radio_number

    def decode(self, data: bytes) -> Optional[tuple[int, Mode]]:
        info = parse_radio_info(data.decode("ascii", errors="replace"))
        if info is None or info.radio_nr != self.radio_number:
            return None
        return info.frequency_khz, classify_mode(info.mode)


class DXLogListener(RadioInfoListener):
    """DXLog.net station info broadcasts from one station"""

    name = "DXLog"

    def __init__(
        self,
        engine: Engine,
        port: int,
        station: str,
        radio_number: int = 1,
        host: str = "",
        encoding: str = "utf-16-le",
    ):
        super().__init__(engine, port, host)
        self.station = station
        self.radio_number = radio_number
        self.encoding = encoding

    def decode(self, data: bytes) -> Optional[tuple[int, Mode]]:
        info = parse_station_info(data, self.station, self.radio_number, self.encoding)
        if info is None:
            return None
        return info.frequency, classify_mode_prefix(info.mode)
