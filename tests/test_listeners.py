import socket
import time

import pytest
from conftest import BAND_20M

from icom_automagic.engine import EngineStatus
from icom_automagic.listeners import (
    DXLogListener,
    N1MMListener,
    RadioInfo,
    RadioInfoListener,
    parse_radio_info,
    parse_station_info,
)
from icom_automagic.models import Mode


def radio_info_xml(radio_nr=1, freq=14195000, mode="USB", station="SO2R"):
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        "<RadioInfo>"
        f"<StationName>{station}</StationName>"
        f"<RadioNr>{radio_nr}</RadioNr>"
        f"<Freq>{freq}</Freq>"
        f"<TXFreq>{freq}</TXFreq>"
        f"<Mode>{mode}</Mode>"
        "<OpCall>SM7IUN</OpCall>"
        "<IsRunning>False</IsRunning>"
        "<FocusEntry>0</FocusEntry>"
        "<Antenna>0</Antenna>"
        "<FocusRadioNr>1</FocusRadioNr>"
        "<ActiveRadioNr>2</ActiveRadioNr>"
        "</RadioInfo>"
    ).encode("ascii")


def dxlog_datagram(sender="RUN1", kind="STI", band="14", mode="USB", freq="1419500", offset=101):
    chars = ["\0"] * 160

    def put(at, value):
        chars[at:at + len(value)] = list(value)

    put(0, sender)
    put(32, kind)
    put(56, band)
    put(66, mode)
    put(offset, freq)
    return "".join(chars).encode("utf-16-le")


def test_parse_radio_info():
    info = parse_radio_info(radio_info_xml().decode("ascii"))
    assert info.radio_nr == 1
    assert info.freq == 14195000
    assert info.frequency_khz == 14195
    assert info.mode == "USB"
    assert info.station_name == "SO2R"
    assert info.active_radio_nr == 2


def test_parse_radio_info_other_message():
    assert parse_radio_info("<ContactInfo><call>DL1ABC</call></ContactInfo>") is None


@pytest.mark.parametrize("text", [
    "",
    "<RadioInfo><Freq>14195000",
    "not xml at all",
    "<RadioInfo><RadioNr>one</RadioNr></RadioInfo>",
])
def test_parse_radio_info_defaults_on_garbage(text):
    assert parse_radio_info(text) == RadioInfo()


def test_parse_station_info():
    info = parse_station_info(dxlog_datagram(), "RUN1")
    assert info.sender == "RUN1"
    assert info.frequency == 14195
    assert info.mode == "US"
    assert info.band == "14"


def test_parse_station_info_second_radio():
    data = dxlog_datagram(freq="702500", offset=121)
    assert parse_station_info(data, "RUN1", radio_number=2).frequency == 7025


def test_parse_station_info_filters():
    assert parse_station_info(dxlog_datagram(sender="MULT"), "RUN1") is None
    assert parse_station_info(dxlog_datagram(kind="MSG"), "RUN1") is None


def test_parse_station_info_bad_frequency():
    with pytest.raises(ValueError):
        parse_station_info(dxlog_datagram(freq="14.1"), "RUN1")


def test_n1mm_first_report_starts_tracking(engine, transport):
    listener = N1MMListener(engine, port=0)
    assert listener.handle_datagram(radio_info_xml())

    state = engine.snapshot()
    assert state.status is EngineStatus.TRACKING
    assert state.band.name == "20m"
    assert state.mode is Mode.PHONE
    assert len(transport.frames) == 5


def test_repeated_report_does_not_touch_radio(engine, transport, monkeypatch):
    listener = N1MMListener(engine, port=0)
    listener.handle_datagram(radio_info_xml())
    transport.frames.clear()

    calls = []
    monkeypatch.setattr(engine, "on_band_mode_changed", lambda *args: calls.append(args))
    assert not listener.handle_datagram(radio_info_xml())
    assert not listener.handle_datagram(radio_info_xml(freq=14250000))
    assert calls == []
    assert transport.frames == []
    assert engine.snapshot().frequency == 14250


def test_mode_change_within_band(engine, transport):
    listener = N1MMListener(engine, port=0)
    listener.handle_datagram(radio_info_xml())
    assert listener.handle_datagram(radio_info_xml(freq=14025000, mode="CW"))
    assert engine.snapshot().mode is Mode.CW


def test_n1mm_other_radio_ignored(engine, transport):
    listener = N1MMListener(engine, port=0)
    assert not listener.handle_datagram(radio_info_xml(radio_nr=2))
    assert transport.frames == []

    second = N1MMListener(engine, port=0, radio_number=2)
    assert second.handle_datagram(radio_info_xml(radio_nr=2))


@pytest.mark.parametrize("data", [
    b"<RadioInfo><Freq>",
    b"\xff\xfe\x00garbage",
    radio_info_xml(freq=12000000),
    radio_info_xml(freq=0),
])
def test_n1mm_bad_or_unknown_reports(engine, transport, data):
    listener = N1MMListener(engine, port=0)
    assert not listener.handle_datagram(data)
    assert transport.frames == []
    assert not engine.snapshot().radio_info_received


def test_dxlog_report(engine, transport):
    listener = DXLogListener(engine, port=0, station="RUN1")
    assert listener.handle_datagram(dxlog_datagram(mode="CW", freq="702500"))
    state = engine.snapshot()
    assert state.band.name == "40m"
    assert state.mode is Mode.CW
    assert state.frequency == 7025


def test_dxlog_wrong_station_and_garbage(engine, transport):
    listener = DXLogListener(engine, port=0, station="RUN1")
    assert not listener.handle_datagram(dxlog_datagram(sender="RUN2"))
    assert not listener.handle_datagram(dxlog_datagram(freq="abc"))
    assert not listener.handle_datagram(b"\x00")
    assert transport.frames == []


def test_dxlog_digital_mode(engine):
    listener = DXLogListener(engine, port=0, station="RUN1")
    listener.handle_datagram(dxlog_datagram(mode="RTTY", freq="1408000"))
    assert engine.snapshot().mode is Mode.DIGITAL


def wait_for(condition, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return False


def test_listener_receives_over_udp(engine):
    listener = N1MMListener(engine, port=0, host="127.0.0.1")
    listener.start()
    try:
        assert listener.is_running
        port = listener.bound_port
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.sendto(b"garbage", ("127.0.0.1", port))
            sender.sendto(radio_info_xml(), ("127.0.0.1", port))
        assert wait_for(lambda: engine.is_current(BAND_20M, Mode.PHONE))
        assert listener.is_running
    finally:
        listener.stop()
    assert not listener.is_running


def test_failed_report_is_retried(engine, transport, config):
    config.phone[BAND_20M].ref_level = 150
    listener = N1MMListener(engine, port=0)
    assert not listener.handle_datagram(radio_info_xml())
    assert transport.frames == []

    config.phone[BAND_20M].ref_level = 5
    assert listener.handle_datagram(radio_info_xml())
    assert len(transport.frames) == 5


def test_base_listener_is_abstract(engine):
    with pytest.raises(TypeError):
        RadioInfoListener(engine, port=0)
