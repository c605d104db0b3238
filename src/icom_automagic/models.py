"""
ICOM Automagic Data Models
Band table, mode classification and configuration structures
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional


class Mode(IntEnum):
    """Coarse operating modes, each with its own set of band settings"""
    CW = 0
    PHONE = 1
    DIGITAL = 2

    @property
    def label(self) -> str:
        return MODE_LABELS[self]


MODE_LABELS = {
    Mode.CW: "CW",
    Mode.PHONE: "Phone",
    Mode.DIGITAL: "Digital",
}

# Logger mode strings that count as phone
PHONE_MODES = ("USB", "LSB", "AM", "SSB", "FM")

# DXLog only gives us reliable first two characters of the mode
PHONE_MODE_PREFIXES = tuple(m[:2] for m in PHONE_MODES)


def classify_mode(raw_mode: Optional[str]) -> Mode:
    """Map a logger mode string to CW, Phone or Digital.

    Anything that is not CW or a phone mode (RTTY, PSK31, FT8, ...) is Digital.
    """
    if raw_mode == "CW":
        return Mode.CW
    if raw_mode in PHONE_MODES:
        return Mode.PHONE
    return Mode.DIGITAL


def classify_mode_prefix(raw_mode: Optional[str]) -> Mode:
    """Same partition as classify_mode, matched on the first two characters"""
    prefix = (raw_mode or "")[:2]
    if prefix == "CW":
        return Mode.CW
    if prefix in PHONE_MODE_PREFIXES:
        return Mode.PHONE
    return Mode.DIGITAL


@dataclass(frozen=True)
class BandInfo:
    """One entry of the MHz -> band table"""

    index: int
    """Internal band index, INVALID_BAND for frequencies outside any band"""

    name: str
    """Band name for display (e.g. 20m)"""

    edge_segment: int
    """Radio scope edge range the band lives in (CI-V 27 1E)"""

    @property
    def is_valid(self) -> bool:
        return self.index != INVALID_BAND


INVALID_BAND = -1
UNKNOWN_BAND = BandInfo(index=INVALID_BAND, name="?m", edge_segment=0)

# Band definitions: (name, first MHz, last MHz, scope edge segment)
# HF/6m/4m segments follow the IC-7300/IC-7610 fixed edge ranges,
# 2m and 70cm use the per-band edge memories of the IC-9700/IC-705.
BAND_DEFINITIONS = (
    ("160m", 1, 1, 2),
    ("80m", 3, 3, 3),
    ("60m", 5, 5, 3),
    ("40m", 7, 7, 4),
    ("30m", 10, 10, 5),
    ("20m", 14, 14, 6),
    ("17m", 18, 18, 7),
    ("15m", 21, 21, 8),
    ("12m", 24, 24, 9),
    ("10m", 28, 29, 10),
    ("6m", 50, 53, 12),
    ("4m", 70, 70, 13),
    ("2m", 144, 147, 1),
    ("70cm", 430, 449, 2),
)

BAND_COUNT = len(BAND_DEFINITIONS)
BAND_NAMES = tuple(name for name, _, _, _ in BAND_DEFINITIONS)

# Highest MHz value covered by the table is TABLE_SIZE - 1
TABLE_SIZE = 470


def _build_band_table() -> tuple[BandInfo, ...]:
    table = [UNKNOWN_BAND] * TABLE_SIZE
    for index, (name, first_mhz, last_mhz, segment) in enumerate(BAND_DEFINITIONS):
        info = BandInfo(index=index, name=name, edge_segment=segment)
        for mhz in range(first_mhz, last_mhz + 1):
            table[mhz] = info
    return tuple(table)


BAND_TABLE = _build_band_table()


def resolve_mhz(mhz: int) -> BandInfo:
    """Look up a whole-MHz value in the band table"""
    if 0 <= mhz < TABLE_SIZE:
        return BAND_TABLE[mhz]
    return UNKNOWN_BAND


def resolve_band(frequency_khz: int) -> BandInfo:
    """Get band information for a frequency in kHz"""
    return resolve_mhz(int(frequency_khz) // 1000)


def band_by_index(index: int) -> BandInfo:
    """Band information for an internal band index"""
    if not 0 <= index < BAND_COUNT:
        return UNKNOWN_BAND
    name, _, _, segment = BAND_DEFINITIONS[index]
    return BandInfo(index=index, name=name, edge_segment=segment)


@dataclass
class BandModeSettings:
    """Waterfall and power settings for one band in one mode"""

    lower_edge: int = 0
    """Lower waterfall edge in kHz"""

    upper_edge: int = 0
    """Upper waterfall edge in kHz"""

    ref_level: int = 0
    """Scope reference level in dB"""

    ref_level_zoomed: int = 0
    """Scope reference level in dB while zoomed"""

    power: int = 0
    """Transmit power in percent"""

    def clamped(self) -> "BandModeSettings":
        """Copy with levels forced into what the radio accepts"""
        return BandModeSettings(
            lower_edge=max(0, self.lower_edge),
            upper_edge=max(0, self.upper_edge),
            ref_level=clamp(self.ref_level, REF_LEVEL_MIN, REF_LEVEL_MAX),
            ref_level_zoomed=clamp(self.ref_level_zoomed, REF_LEVEL_MIN, REF_LEVEL_MAX),
            power=clamp(self.power, POWER_MIN, POWER_MAX),
        )


# Scope reference level range of the supported radios, dB
REF_LEVEL_MIN = -20
REF_LEVEL_MAX = 20

POWER_MIN = 0
POWER_MAX = 100


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# CI-V addresses for supported radio models
RADIO_MODELS = {
    "IC-7300": 0x94,
    "IC-7600": 0x7A,
    "IC-7610": 0x98,
    "IC-7700": 0x74,
    "IC-7800": 0x6A,
    "IC-7850": 0x8E,
    "IC-7851": 0x8E,
}

DEFAULT_RADIO_MODEL = "IC-7300"
BAUD_RATES = (4800, 9600, 19200)
EDGE_SETS = (1, 2, 3)

# Logger radio numbers (SO2R radio 1 or 2)
RADIO_NUMBERS = (1, 2)


def civ_address_for_model(model: str) -> int:
    """CI-V address for a radio model, IC-7300 for anything unknown"""
    return RADIO_MODELS.get(model, RADIO_MODELS[DEFAULT_RADIO_MODEL])


def _empty_band_settings() -> list[BandModeSettings]:
    return [BandModeSettings() for _ in range(BAND_COUNT)]


@dataclass
class RadioConfig:
    """Radio connection configuration"""

    port: str = "COM5"
    """Serial port path (e.g., COM5 or /dev/ttyUSB0)"""

    baud_rate: int = 19200
    """Baud rate"""

    civ_address: int = 0x94
    """CI-V address of the radio (default 0x94 for IC-7300)"""


@dataclass
class AutomagicConfig:
    """Everything remembered between runs"""

    cw: list[BandModeSettings] = field(default_factory=_empty_band_settings)
    phone: list[BandModeSettings] = field(default_factory=_empty_band_settings)
    digital: list[BandModeSettings] = field(default_factory=_empty_band_settings)

    zoom_width: int = 20
    """Total width of the zoomed waterfall in kHz"""

    radio_model: str = DEFAULT_RADIO_MODEL
    port: str = "COM5"
    baud_rate: int = 19200
    civ_address: int = 0x94

    edge_set: int = 1
    """Which of the radio's scope edge memories to write (1-3)"""

    n1mm_port: int = 12060
    dxlog_port: int = 9888

    dxlog_station: str = ""
    """Only DXLog datagrams from this station name are used"""

    radio_number: int = 1
    """Logger radio number whose reports are followed"""

    barefoot: bool = False
    always_on_top: bool = False
    window_top: float = 100.0
    window_left: float = 100.0

    def settings_for(self, mode: Mode) -> list[BandModeSettings]:
        if mode == Mode.CW:
            return self.cw
        if mode == Mode.PHONE:
            return self.phone
        return self.digital

    def radio_config(self) -> RadioConfig:
        return RadioConfig(
            port=self.port,
            baud_rate=self.baud_rate,
            civ_address=self.civ_address,
        )


def parse_int(value) -> int:
    """Parse user input (text or number) as an integer, raising ValueError"""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    return int(str(value).strip())
