from icom_automagic.config import load_config
from icom_automagic.main import describe_state, main
from icom_automagic.models import Mode


def test_encode_edges(tmp_path, capsys):
    code = main([
        "--config", str(tmp_path / "s.json"),
        "encode", "edges", "7000", "7200", "--segment", "4", "--slot", "3",
    ])
    assert code == 0
    assert capsys.readouterr().out.strip() == "FE FE 94 E0 27 1E 04 03 00 00 00 07 00 00 00 20 07 00 FD"


def test_encode_ref_level_with_address(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "s.json"), "encode", "--address", "0x98", "ref", "-6"])
    assert code == 0
    assert capsys.readouterr().out.strip() == "FE FE 98 E0 27 19 00 06 00 01 FD"


def test_encode_power(tmp_path, capsys):
    main(["--config", str(tmp_path / "s.json"), "encode", "power", "100"])
    assert capsys.readouterr().out.strip() == "FE FE 94 E0 14 0A 02 55 FD"


def test_encode_out_of_range(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "s.json"), "encode", "ref", "150"]) == 1


def test_config_set_and_show(tmp_path, capsys):
    path = tmp_path / "s.json"
    code = main(["--config", str(path), "config", "--set", "radio_model=IC-7610", "-s", "zoom_width=40"])
    assert code == 0
    config = load_config(path)
    assert config.civ_address == 0x98
    assert config.zoom_width == 40

    capsys.readouterr()
    main(["--config", str(path), "config"])
    out = capsys.readouterr().out
    assert "IC-7610" in out
    assert "0x98" in out


def test_config_set_invalid(tmp_path, capsys):
    path = tmp_path / "s.json"
    assert main(["--config", str(path), "config", "--set", "edge_set=9"]) == 1
    assert main(["--config", str(path), "config", "--set", "edge_set"]) == 1
    assert not path.exists()


def test_bands(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "s.json"), "bands"]) == 0
    out = capsys.readouterr().out
    assert "160m" in out
    assert "70cm" in out
    assert "430-449" in out

    assert main(["--config", str(tmp_path / "s.json"), "bands", "--mode", "Phone"]) == 0
    assert "20m" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_describe_state(tracking_engine):
    line = describe_state(tracking_engine.snapshot())
    assert line.startswith("20m Phone 14195 kHz")
    assert "scope 14150-14350 kHz" in line
    assert "ref +5 dB" in line
    assert "power 60%" in line

    tracking_engine.zoom_in()
    tracking_engine.toggle_barefoot()
    line = describe_state(tracking_engine.snapshot())
    assert "power barefoot" in line
    assert line.endswith("[zoomed]")


def test_state_changes_are_printed(engine, capsys):
    engine.subscribe(lambda state: print(describe_state(state)))
    engine.on_band_mode_changed(7025, 3, Mode.CW)
    assert "40m CW 7025 kHz" in capsys.readouterr().out
