"""
ICOM Automagic - Flask control panel API
Zoom and band/mode buttons, edge entry, sliders, barefoot toggle and settings over HTTP
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request

from .civ_protocol import SerialTransport
from .config import SCALAR_KEYS, config_to_dict, save_config, set_config_value
from .engine import Engine, EngineState

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Global state
engine: Optional[Engine] = None
config_file: Optional[Path] = None


def set_engine(new_engine: Optional[Engine], new_config_file: Optional[Path] = None) -> None:
    global engine, config_file
    engine = new_engine
    config_file = new_config_file


def state_to_dict(state: EngineState) -> dict:
    """Convert engine state to a dict for JSON response."""
    return {
        "status": state.status.value,
        "radio_info_received": state.radio_info_received,
        "frequency": state.frequency,
        "band": state.band.name,
        "mode": state.mode.label if state.mode is not None else "",
        "zoomed": state.zoomed,
        "barefoot": state.barefoot,
        "lower_edge": state.lower_edge,
        "upper_edge": state.upper_edge,
        "ref_level": state.ref_level,
        "power": 100 if state.barefoot else state.power,
    }


def _result(success: bool):
    return jsonify({"success": success, "state": state_to_dict(engine.snapshot())})


def _no_engine():
    return jsonify({"success": False, "message": "Engine not running"}), 503


@app.route("/api/status")
def get_status():
    """Get current band/mode state and radio connection."""
    if engine is None:
        return _no_engine()
    transport = engine.transport
    data = state_to_dict(engine.snapshot())
    data["zoom_width"] = engine.config.zoom_width
    data["radio_model"] = engine.config.radio_model
    data["connection"] = (
        transport.description if isinstance(transport, SerialTransport) else "No radio"
    )
    data["last_error"] = transport.last_error
    return jsonify(data)


@app.route("/api/zoom", methods=["POST"])
def zoom():
    """Zoom in around the current frequency."""
    if engine is None:
        return _no_engine()
    return _result(engine.zoom_in())


@app.route("/api/band-mode", methods=["POST"])
def band_mode():
    """Back to the stored band/mode edges."""
    if engine is None:
        return _no_engine()
    return _result(engine.band_mode_button())


@app.route("/api/edges", methods=["POST"])
def set_edges():
    """Set lower and upper edges (kHz) for the current band/mode."""
    if engine is None:
        return _no_engine()
    data = request.get_json(silent=True) or {}
    return _result(engine.edit_edges(data.get("lower"), data.get("upper")))


@app.route("/api/ref-level", methods=["POST"])
def set_ref_level():
    if engine is None:
        return _no_engine()
    data = request.get_json(silent=True) or {}
    return _result(engine.edit_ref_level(data.get("value")))


@app.route("/api/power", methods=["POST"])
def set_power():
    if engine is None:
        return _no_engine()
    data = request.get_json(silent=True) or {}
    return _result(engine.edit_power_level(data.get("value")))


@app.route("/api/barefoot", methods=["POST"])
def barefoot():
    if engine is None:
        return _no_engine()
    return _result(engine.toggle_barefoot())


@app.route("/api/config", methods=["GET"])
def get_config():
    """Get the settings that can be changed while running."""
    if engine is None:
        return _no_engine()
    data = config_to_dict(engine.config)
    return jsonify({key: data[key] for key in SCALAR_KEYS + ("civ_address",)})


@app.route("/api/config", methods=["POST"])
def update_config():
    """Change settings, re-open the serial port and send the current band/mode again.

    All values are checked before any is applied. Logger ports, station and
    radio number take effect on the next start.
    """
    if engine is None:
        return _no_engine()
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"success": False, "message": "Expected a JSON object"}), 400

    updated = replace(engine.config)
    try:
        for key, value in data.items():
            set_config_value(updated, key, str(value))
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    transport = engine.transport
    radio_config = updated.radio_config()
    if isinstance(transport, SerialTransport) and radio_config != transport.config:
        transport.reset(radio_config)

    engine.apply_config(updated)
    if config_file is not None:
        save_config(updated, config_file)
    logger.info("Settings changed: %s", ", ".join(data))
    return _result(True)


def launch(
    new_engine: Engine,
    host: str = "127.0.0.1",
    port: int = 5000,
    new_config_file: Optional[Path] = None,
) -> None:
    """Serve the control panel API until interrupted."""
    set_engine(new_engine, new_config_file)
    logger.info("Control panel on http://%s:%d/api/status", host, port)
    app.run(host=host, port=port, debug=False, use_reloader=False)
