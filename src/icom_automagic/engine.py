"""
ICOM Automagic Engine
Follows the logger's band and mode and keeps the radio's scope and power in step
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from .band_mode_store import BandModeStore
from .civ_protocol import (
    Transport,
    set_edge_set_frame,
    set_edges_frame,
    set_fixed_mode_frame,
    set_power_level_frame,
    set_ref_level_frame,
)
from .models import (
    POWER_MAX,
    POWER_MIN,
    REF_LEVEL_MAX,
    REF_LEVEL_MIN,
    UNKNOWN_BAND,
    AutomagicConfig,
    BandInfo,
    Mode,
    band_by_index,
    clamp,
    parse_int,
)

logger = logging.getLogger(__name__)


class EngineStatus(Enum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"
    ZOOMED = "zoomed"


@dataclass
class EngineState:
    """What the engine last told the radio, and why"""

    status: EngineStatus = EngineStatus.UNINITIALIZED
    frequency: int = 0
    """Last reported operating frequency in kHz"""

    band: BandInfo = UNKNOWN_BAND
    mode: Optional[Mode] = None
    barefoot: bool = False

    lower_edge: int = 0
    upper_edge: int = 0
    ref_level: int = 0
    power: int = 0

    @property
    def radio_info_received(self) -> bool:
        return self.status is not EngineStatus.UNINITIALIZED

    @property
    def zoomed(self) -> bool:
        return self.status is EngineStatus.ZOOMED


StateCallback = Callable[[EngineState], None]


class Engine:
    """Band/mode state machine.

    Every public method takes the engine lock, so logger listener threads and
    user edits are applied one at a time. Observers get a copy of the state
    after each change.
    """

    def __init__(
        self,
        config: AutomagicConfig,
        transport: Transport,
        store: Optional[BandModeStore] = None,
    ):
        self.config = config
        self.transport = transport
        self.store = store or BandModeStore(config)
        self.state = EngineState(barefoot=config.barefoot)
        self._lock = threading.Lock()
        self._observers: list[StateCallback] = []

    # --- Observers ---

    def subscribe(self, callback: StateCallback) -> None:
        self._observers.append(callback)

    def unsubscribe(self, callback: StateCallback) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def snapshot(self) -> EngineState:
        with self._lock:
            return replace(self.state)

    def _notify(self, state: EngineState) -> None:
        for callback in list(self._observers):
            callback(state)

    # --- Radio output ---
    # Frames are built before any state change. A setting that cannot be
    # encoded raises with nothing sent and the state untouched.

    def _send(self, frames: list[bytes]) -> None:
        for frame in frames:
            if not self.transport.write(frame):
                logger.debug("Frame not delivered: %s", frame.hex(" "))

    def _edge_frames(self, band: BandInfo, lower_edge: int, upper_edge: int) -> list[bytes]:
        address = self.config.civ_address
        return [
            set_fixed_mode_frame(address),
            set_edge_set_frame(address, self.config.edge_set),
            set_edges_frame(
                address, band.edge_segment, self.config.edge_set, lower_edge, upper_edge
            ),
        ]

    def _ref_level_frame(self, ref_level: int) -> bytes:
        return set_ref_level_frame(self.config.civ_address, ref_level)

    def _power_frame(self, power: int, barefoot: bool) -> bytes:
        return set_power_level_frame(self.config.civ_address, power, barefoot)

    # --- Logger driven ---

    def is_current(self, band_index: int, mode: Mode) -> bool:
        """True if the engine is already set up for this band and mode"""
        with self._lock:
            return (
                self.state.radio_info_received
                and self.state.band.index == band_index
                and self.state.mode == mode
            )

    def note_frequency(self, frequency: int) -> None:
        """Remember the live frequency without touching the radio"""
        with self._lock:
            if self.state.radio_info_received:
                self.state.frequency = frequency

    def on_band_mode_changed(self, frequency: int, band_index: int, mode: Mode) -> bool:
        """Load the stored settings for a new band/mode and send them to the radio.

        Leaves zoom. Frequencies outside any known band are ignored. Raises
        ValueError, with nothing sent, if the stored settings cannot be encoded.
        """
        band = band_by_index(band_index)
        if not band.is_valid:
            logger.debug("Ignoring %d kHz, not in a known band", frequency)
            return False

        with self._lock:
            self._track(frequency, band, Mode(mode), self.state.barefoot)
            state = replace(self.state)
        logger.info("Band/mode now %s %s (%d kHz)", band.name, state.mode.label, frequency)
        self._notify(state)
        return True

    def _track(self, frequency: int, band: BandInfo, mode: Mode, barefoot: bool) -> None:
        settings = self.store.get(band.index, mode)
        frames = self._edge_frames(band, settings.lower_edge, settings.upper_edge)
        frames.append(self._ref_level_frame(settings.ref_level))
        frames.append(self._power_frame(settings.power, barefoot))

        self.state.status = EngineStatus.TRACKING
        self.state.barefoot = barefoot
        self.state.frequency = frequency
        self.state.band = band
        self.state.mode = mode
        self.state.lower_edge = settings.lower_edge
        self.state.upper_edge = settings.upper_edge
        self.state.ref_level = settings.ref_level
        self.state.power = settings.power
        self._send(frames)

    def refresh(self) -> bool:
        """Send the current band/mode settings again, e.g. after a settings change"""
        with self._lock:
            if not self.state.radio_info_received:
                return False
            self._track(
                self.state.frequency, self.state.band, self.state.mode, self.config.barefoot
            )
            state = replace(self.state)
        self._notify(state)
        return True

    def apply_config(self, config: AutomagicConfig) -> bool:
        """Switch to new settings and push them if we know the band"""
        with self._lock:
            self.config = config
            self.store = BandModeStore(config)
            if not self.state.radio_info_received:
                self.state.barefoot = config.barefoot
        return self.refresh()

    # --- User driven ---

    def edit_edges(self, lower, upper) -> bool:
        """Store and send new waterfall edges for the current band/mode.

        Input that does not parse, or lower not below upper, is ignored.
        Always returns to the unzoomed view.
        """
        try:
            lower_edge = parse_int(lower)
            upper_edge = parse_int(upper)
        except ValueError:
            return False
        if lower_edge <= 0 or lower_edge >= upper_edge:
            return False

        with self._lock:
            if not self.state.radio_info_received:
                return False
            band, mode = self.state.band, self.state.mode
            ref_level = self.store.get(band.index, mode).ref_level
            frames = self._edge_frames(band, lower_edge, upper_edge)
            frames.append(self._ref_level_frame(ref_level))

            self.store.update(band.index, mode, lower_edge=lower_edge, upper_edge=upper_edge)
            self.state.status = EngineStatus.TRACKING
            self.state.lower_edge = lower_edge
            self.state.upper_edge = upper_edge
            self.state.ref_level = ref_level
            self._send(frames)
            state = replace(self.state)
        self._notify(state)
        return True

    def zoom_in(self) -> bool:
        """Narrow the waterfall to zoom_width kHz around the live frequency"""
        with self._lock:
            if not self.state.radio_info_received:
                return False
            width = self.config.zoom_width
            settings = self.store.get(self.state.band.index, self.state.mode)
            lower_edge = self.state.frequency - width // 2
            upper_edge = lower_edge + width
            frames = self._edge_frames(self.state.band, lower_edge, upper_edge)
            frames.append(self._ref_level_frame(settings.ref_level_zoomed))

            self.state.status = EngineStatus.ZOOMED
            self.state.lower_edge = lower_edge
            self.state.upper_edge = upper_edge
            self.state.ref_level = settings.ref_level_zoomed
            self._send(frames)
            state = replace(self.state)
        self._notify(state)
        return True

    def band_mode_button(self) -> bool:
        """Back to the stored edges and reference level of the current band/mode"""
        with self._lock:
            if not self.state.radio_info_received:
                return False
            settings = self.store.get(self.state.band.index, self.state.mode)
            frames = self._edge_frames(
                self.state.band, settings.lower_edge, settings.upper_edge
            )
            frames.append(self._ref_level_frame(settings.ref_level))

            self.state.status = EngineStatus.TRACKING
            self.state.lower_edge = settings.lower_edge
            self.state.upper_edge = settings.upper_edge
            self.state.ref_level = settings.ref_level
            self._send(frames)
            state = replace(self.state)
        self._notify(state)
        return True

    def edit_ref_level(self, value) -> bool:
        """Send a new reference level right away.

        Remembered for the current band/mode (zoomed or not) once the logger
        has told us where we are.
        """
        try:
            ref_level = parse_int(value)
        except ValueError:
            return False
        ref_level = clamp(ref_level, REF_LEVEL_MIN, REF_LEVEL_MAX)

        with self._lock:
            self.state.ref_level = ref_level
            self._send([self._ref_level_frame(ref_level)])
            if self.state.radio_info_received:
                field_name = "ref_level_zoomed" if self.state.zoomed else "ref_level"
                self.store.update(
                    self.state.band.index, self.state.mode, **{field_name: ref_level}
                )
            state = replace(self.state)
        self._notify(state)
        return True

    def edit_power_level(self, value) -> bool:
        """Send a new power level (percent), full power while barefoot"""
        try:
            power = parse_int(value)
        except ValueError:
            return False
        power = clamp(power, POWER_MIN, POWER_MAX)

        with self._lock:
            self.state.power = power
            self._send([self._power_frame(power, self.state.barefoot)])
            if self.state.radio_info_received:
                self.store.update(self.state.band.index, self.state.mode, power=power)
            state = replace(self.state)
        self._notify(state)
        return True

    def toggle_barefoot(self) -> bool:
        with self._lock:
            if not self.state.radio_info_received:
                return False
            barefoot = not self.state.barefoot
            frame = self._power_frame(self.state.power, barefoot)
            self.state.barefoot = barefoot
            self.config.barefoot = barefoot
            self._send([frame])
            state = replace(self.state)
        logger.info("Barefoot %s", "on" if state.barefoot else "off")
        self._notify(state)
        return True
