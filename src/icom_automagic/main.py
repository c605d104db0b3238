"""
ICOM Automagic - Main Entry Point
Command-line interface for following N1MM/DXLog band and mode on an ICOM radio
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from .civ_protocol import (
    NullTransport,
    SerialTransport,
    Transport,
    set_edge_set_frame,
    set_edges_frame,
    set_fixed_mode_frame,
    set_power_level_frame,
    set_ref_level_frame,
)
from .config import (
    DEFAULT_CONFIG_FILE,
    SCALAR_KEYS,
    config_to_dict,
    load_config,
    save_config,
    set_config_value,
)
from .engine import Engine, EngineState
from .listeners import DXLogListener, N1MMListener
from .logging_config import setup_logging
from .models import BAND_DEFINITIONS, AutomagicConfig, Mode


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser"""
    parser = argparse.ArgumentParser(
        prog="icom-automagic",
        description="Keep an ICOM radio's waterfall and power in step with N1MM or DXLog",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_FILE,
        help=f"Settings file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Follow the logger and control the radio")
    run_parser.add_argument(
        "--no-radio",
        action="store_true",
        help="Do not open the serial port, only log what would be sent",
    )
    run_parser.add_argument(
        "--web",
        action="store_true",
        help="Serve the control panel API",
    )
    run_parser.add_argument(
        "--web-port",
        type=int,
        default=5000,
        help="Control panel port (default: 5000)",
    )
    run_parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write a debug log to this file",
    )

    # Config command
    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument(
        "--set",
        "-s",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help=f"Change a setting ({', '.join(SCALAR_KEYS)})",
    )

    # Bands command
    bands_parser = subparsers.add_parser("bands", help="Show bands and stored settings")
    bands_parser.add_argument(
        "--mode",
        "-m",
        choices=[m.label for m in Mode],
        help="Show stored settings for one mode",
    )

    # Encode command
    encode_parser = subparsers.add_parser("encode", help="Print a CI-V frame in hex")
    encode_parser.add_argument(
        "--address",
        "-a",
        type=lambda x: int(x, 0),
        help="CI-V address of radio (default: from settings)",
    )
    encode_sub = encode_parser.add_subparsers(dest="frame", required=True)
    encode_sub.add_parser("fixed", help="Fixed scope mode")
    edge_set_parser = encode_sub.add_parser("edge-set", help="Select edge set")
    edge_set_parser.add_argument("slot", type=int)
    edges_parser = encode_sub.add_parser("edges", help="Fixed scope edges")
    edges_parser.add_argument("lower", type=int, help="Lower edge in kHz")
    edges_parser.add_argument("upper", type=int, help="Upper edge in kHz")
    edges_parser.add_argument("--segment", type=int, required=True)
    edges_parser.add_argument("--slot", type=int, default=1)
    ref_parser = encode_sub.add_parser("ref", help="Reference level")
    ref_parser.add_argument("level", type=int, help="dB, e.g. -6")
    power_parser = encode_sub.add_parser("power", help="RF power")
    power_parser.add_argument("percent", type=int)
    power_parser.add_argument("--barefoot", action="store_true")

    return parser


def describe_state(state: EngineState) -> str:
    """One status line, like the band/mode display of the control window"""
    mode = state.mode.label if state.mode is not None else "-"
    line = (
        f"{state.band.name} {mode} {state.frequency} kHz  "
        f"scope {state.lower_edge}-{state.upper_edge} kHz  ref {state.ref_level:+d} dB  "
    )
    line += "power barefoot" if state.barefoot else f"power {state.power}%"
    if state.zoomed:
        line += "  [zoomed]"
    return line


def cmd_run(config: AutomagicConfig, args: argparse.Namespace) -> int:
    """Run until interrupted, then save settings"""
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    transport: Transport
    if args.no_radio:
        transport = NullTransport()
        print("Running without radio")
    else:
        transport = SerialTransport(config.radio_config())
        if transport.connect():
            print(f"{config.radio_model} on {config.port}")
        else:
            print(f"Warning: {transport.description} ({transport.last_error})")

    engine = Engine(config, transport)
    engine.subscribe(lambda state: print(describe_state(state)))
    listeners = [
        N1MMListener(engine, config.n1mm_port, config.radio_number),
        DXLogListener(engine, config.dxlog_port, config.dxlog_station, config.radio_number),
    ]

    started = []
    try:
        for listener in listeners:
            try:
                listener.start()
                started.append(listener)
            except OSError as e:
                print(f"Error: cannot listen on UDP port {listener.port}: {e}")
        if not started:
            return 1

        if args.web:
            from .ui import launch
            launch(engine, port=args.web_port, new_config_file=args.config)
        else:
            print("Waiting for logger broadcasts, Ctrl-C to quit.")
            while True:
                time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        for listener in started:
            listener.stop()
        transport.close()
        engine.config.barefoot = engine.state.barefoot
        save_config(engine.config, args.config)

    return 0


def cmd_config(config: AutomagicConfig, args: argparse.Namespace) -> int:
    """Show or change settings"""
    if not args.set:
        data = config_to_dict(config)
        for key in SCALAR_KEYS + ("civ_address",):
            value = data[key]
            if key == "civ_address":
                value = f"0x{value:02X}"
            print(f"{key:<14} {value}")
        return 0

    for assignment in args.set:
        key, sep, value = assignment.partition("=")
        if not sep:
            print(f"Error: expected KEY=VALUE, got {assignment}")
            return 1
        try:
            set_config_value(config, key.strip(), value.strip())
        except ValueError as e:
            print(f"Error: {e}")
            return 1

    if not save_config(config, args.config):
        print("Failed to save settings.")
        return 1
    print(f"Saved settings to {args.config}")
    return 0


def cmd_bands(config: AutomagicConfig, args: argparse.Namespace) -> int:
    """List bands, with stored settings when a mode is given"""
    if args.mode is None:
        print(f"{'Band':<6} {'MHz':>9} {'Segment':>8}")
        print("-" * 25)
        for name, first, last, segment in BAND_DEFINITIONS:
            mhz = str(first) if first == last else f"{first}-{last}"
            print(f"{name:<6} {mhz:>9} {segment:>8}")
        return 0

    mode = next(m for m in Mode if m.label == args.mode)
    print(f"{'Band':<6} {'Lower':>7} {'Upper':>7} {'Ref':>4} {'RefZ':>5} {'Pwr':>4}")
    print("-" * 38)
    for (name, _, _, _), s in zip(BAND_DEFINITIONS, config.settings_for(mode)):
        print(
            f"{name:<6} {s.lower_edge:>7} {s.upper_edge:>7} "
            f"{s.ref_level:>+4} {s.ref_level_zoomed:>+5} {s.power:>3}%"
        )
    return 0


def cmd_encode(config: AutomagicConfig, args: argparse.Namespace) -> int:
    """Print the frame for one command"""
    address = args.address if args.address is not None else config.civ_address
    try:
        if args.frame == "fixed":
            frame = set_fixed_mode_frame(address)
        elif args.frame == "edge-set":
            frame = set_edge_set_frame(address, args.slot)
        elif args.frame == "edges":
            frame = set_edges_frame(address, args.segment, args.slot, args.lower, args.upper)
        elif args.frame == "ref":
            frame = set_ref_level_frame(address, args.level)
        else:
            frame = set_power_level_frame(address, args.percent, args.barefoot)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(frame.hex(" ").upper())
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    config = load_config(args.config)

    # Dispatch command
    commands = {
        "run": cmd_run,
        "config": cmd_config,
        "bands": cmd_bands,
        "encode": cmd_encode,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(config, args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
