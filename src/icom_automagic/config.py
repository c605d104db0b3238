"""
ICOM Automagic Settings
Load and save the settings remembered between runs
"""

import json
import logging
from pathlib import Path

from .models import (
    BAND_COUNT,
    BAUD_RATES,
    EDGE_SETS,
    RADIO_MODELS,
    RADIO_NUMBERS,
    AutomagicConfig,
    BandModeSettings,
    Mode,
    civ_address_for_model,
)

logger = logging.getLogger(__name__)

# Default settings file
DEFAULT_CONFIG_FILE = Path.home() / ".icom_automagic.json"

# Per mode arrays as stored on disk, in BandModeSettings field order
LEVEL_KEYS = (
    ("lower_edges", "lower_edge"),
    ("upper_edges", "upper_edge"),
    ("ref_levels", "ref_level"),
    ("ref_levels_zoomed", "ref_level_zoomed"),
    ("power_levels", "power"),
)

# Simple values that can be changed with "config --set"
SCALAR_KEYS = (
    "zoom_width",
    "radio_model",
    "port",
    "baud_rate",
    "edge_set",
    "n1mm_port",
    "dxlog_port",
    "dxlog_station",
    "radio_number",
    "barefoot",
    "always_on_top",
)


def _parse_levels(value) -> list[int]:
    """Accept a list of ints or the old ';' separated string"""
    if isinstance(value, str):
        return [int(s) for s in value.split(";") if s.strip()]
    return [int(v) for v in value]


def _settings_from_dict(data: dict) -> list[BandModeSettings]:
    columns = {attr: _parse_levels(data.get(key, [])) for key, attr in LEVEL_KEYS}
    settings = []
    for band in range(BAND_COUNT):
        settings.append(BandModeSettings(**{
            attr: values[band] if band < len(values) else 0
            for attr, values in columns.items()
        }).clamped())
    return settings


def _settings_to_dict(settings: list[BandModeSettings]) -> dict:
    return {
        key: [getattr(s, attr) for s in settings]
        for key, attr in LEVEL_KEYS
    }


def config_to_dict(config: AutomagicConfig) -> dict:
    data: dict = {key: getattr(config, key) for key in SCALAR_KEYS}
    data["civ_address"] = config.civ_address
    data["window"] = {"top": config.window_top, "left": config.window_left}
    data["bands"] = {
        mode.label: _settings_to_dict(config.settings_for(mode)) for mode in Mode
    }
    return data


def _parse_address(value) -> int:
    if isinstance(value, str):
        value = int(value, 0)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise ValueError(f"Not a CI-V address: {value!r}")
    return value


def config_from_dict(data: dict) -> AutomagicConfig:
    """Build a config from saved data, falling back to defaults per key.

    Scalars go through the same checks as set_config_value, band levels are
    clamped to what the radio accepts.
    """
    config = AutomagicConfig()
    for key in SCALAR_KEYS:
        if key not in data:
            continue
        value = data[key]
        try:
            if value is None or isinstance(value, (dict, list)):
                raise ValueError(f"Not a setting value: {value!r}")
            set_config_value(config, key, str(value))
        except ValueError as e:
            logger.warning("Ignoring saved %s: %s", key, e)

    if "civ_address" in data:
        try:
            config.civ_address = _parse_address(data["civ_address"])
        except ValueError as e:
            logger.warning("Ignoring saved civ_address: %s", e)

    window = data.get("window", {})
    try:
        config.window_top = float(window.get("top", config.window_top))
        config.window_left = float(window.get("left", config.window_left))
    except (TypeError, ValueError):
        logger.warning("Ignoring saved window position")

    bands = data.get("bands", {})
    config.cw = _settings_from_dict(bands.get(Mode.CW.label, {}))
    config.phone = _settings_from_dict(bands.get(Mode.PHONE.label, {}))
    config.digital = _settings_from_dict(bands.get(Mode.DIGITAL.label, {}))
    return config


def load_config(filepath: Path = DEFAULT_CONFIG_FILE) -> AutomagicConfig:
    """Load settings, defaults if the file is missing or unreadable"""
    if not filepath.exists():
        return AutomagicConfig()
    try:
        with open(filepath, encoding="utf-8") as f:
            return config_from_dict(json.load(f))
    except (IOError, json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Failed to load %s, using defaults: %s", filepath, e)
        return AutomagicConfig()


def save_config(config: AutomagicConfig, filepath: Path = DEFAULT_CONFIG_FILE) -> bool:
    try:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2)
        return True
    except IOError as e:
        logger.error("Failed to save %s: %s", filepath, e)
        return False


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value}")


def set_config_value(config: AutomagicConfig, key: str, value: str) -> None:
    """Change one setting from text, as the settings dialog would.

    Raises ValueError for unknown keys or values the radio cannot use.
    """
    if key not in SCALAR_KEYS:
        raise ValueError(f"Unknown setting: {key}")

    if key == "radio_model":
        if value not in RADIO_MODELS:
            raise ValueError(f"Unknown radio model: {value}")
        config.radio_model = value
        config.civ_address = civ_address_for_model(value)
    elif key in ("port", "dxlog_station"):
        setattr(config, key, value)
    elif key in ("barefoot", "always_on_top"):
        setattr(config, key, _parse_bool(value))
    else:
        number = int(value)
        if key == "baud_rate" and number not in BAUD_RATES:
            raise ValueError(f"Unsupported baud rate: {number}")
        if key == "edge_set" and number not in EDGE_SETS:
            raise ValueError(f"Edge set must be one of {EDGE_SETS}")
        if key == "zoom_width" and number <= 0:
            raise ValueError("Zoom width must be positive")
        if key == "radio_number" and number not in RADIO_NUMBERS:
            raise ValueError(f"Radio number must be one of {RADIO_NUMBERS}")
        if key in ("n1mm_port", "dxlog_port") and not 0 < number < 65536:
            raise ValueError(f"Not a UDP port: {number}")
        setattr(config, key, number)
