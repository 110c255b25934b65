import pytest
import yaml

from thermobridge.core.config import BridgeConfig, load_config, save_config
from thermobridge.core.errors import InvalidArgumentError


def test_defaults_when_file_missing(tmp_path):
    cfg = load_config(tmp_path / "absent.yaml")
    assert cfg == BridgeConfig()
    assert cfg.bus_name == "org.thermobridge"
    assert cfg.log_level == "INFO"
    assert cfg.adapters == []
    assert cfg.confirm_indications is True


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "bus_name: org.example.Thermo\n"
        "log_level: debug\n"
        "adapters: [hci1]\n"
        "confirm_indications: false\n"
    )
    cfg = load_config(path)
    assert cfg.bus_name == "org.example.Thermo"
    assert cfg.log_level == "DEBUG"
    assert cfg.adapters == ["hci1"]
    assert cfg.confirm_indications is False


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path) == BridgeConfig()


def test_unknown_keys_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("log_level: INFO\nverbose: true\n")
    with pytest.raises(InvalidArgumentError, match="verbose"):
        load_config(path)


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- hci0\n- hci1\n")
    with pytest.raises(InvalidArgumentError):
        load_config(path)


def test_environment_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("log_level: INFO\nbus_name: org.from.file\n")
    monkeypatch.setenv("THERMOBRIDGE_LOG_LEVEL", "warning")
    monkeypatch.setenv("THERMOBRIDGE_BUS_NAME", "org.from.env")
    cfg = load_config(path)
    assert cfg.log_level == "WARNING"
    assert cfg.bus_name == "org.from.env"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "elsewhere.yaml"
    path.write_text("adapters: [hci2]\n")
    monkeypatch.setenv("THERMOBRIDGE_CONFIG", str(path))
    assert load_config().adapters == ["hci2"]


@pytest.mark.parametrize(
    "kwargs",
    [{"log_level": "chatty"}, {"bus_name": ""}, {"adapters": "hci0"}],
)
def test_invalid_values(kwargs):
    with pytest.raises(InvalidArgumentError):
        BridgeConfig(**kwargs)


def test_save_and_reload(tmp_path):
    cfg = BridgeConfig(log_level="ERROR", adapters=["hci0", "hci1"])
    target = save_config(cfg, tmp_path / "nested" / "config.yaml")
    assert yaml.safe_load(target.read_text())["adapters"] == ["hci0", "hci1"]
    assert load_config(target) == cfg


def test_serves_adapter():
    assert BridgeConfig().serves_adapter("/org/bluez/hci3")
    only = BridgeConfig(adapters=["hci0"])
    assert only.serves_adapter("/org/bluez/hci0")
    assert not only.serves_adapter("/org/bluez/hci1")
