import pytest

from icom_automagic.civ_protocol import Transport
from icom_automagic.engine import Engine
from icom_automagic.models import AutomagicConfig, BandModeSettings, Mode

BAND_40M = 3
BAND_20M = 5


class RecordingTransport(Transport):
    """Keeps every frame written"""

    def __init__(self, fail: bool = False):
        self.frames: list[bytes] = []
        self.fail = fail
        self.last_error = None

    def write(self, frame: bytes) -> bool:
        if self.fail:
            self.last_error = "write failed"
            return False
        self.frames.append(frame)
        return True


@pytest.fixture
def config() -> AutomagicConfig:
    config = AutomagicConfig(zoom_width=20, edge_set=3)
    config.phone[BAND_20M] = BandModeSettings(
        lower_edge=14150, upper_edge=14350, ref_level=5, ref_level_zoomed=-3, power=60
    )
    config.cw[BAND_40M] = BandModeSettings(
        lower_edge=7000, upper_edge=7040, ref_level=-6, ref_level_zoomed=2, power=40
    )
    return config


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def engine(config, transport) -> Engine:
    return Engine(config, transport)


@pytest.fixture
def tracking_engine(engine, transport) -> Engine:
    """Engine that has seen 14195 kHz USB, with the frames from that cleared"""
    engine.on_band_mode_changed(14195, BAND_20M, Mode.PHONE)
    transport.frames.clear()
    return engine
