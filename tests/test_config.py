"""
Configuration layering: defaults, file, $PORT
"""
import pytest

from audio_relay.config import Config, deep_update, env_overrides, load_config
from audio_relay.main import parse_args


def test_defaults():
    cfg = load_config(None, environ={})
    assert cfg["server"]["port"] == 3000
    assert cfg["cache"]["stream_ttl_s"] == 300.0
    assert cfg["relay"]["default_content_type"] == "audio/mp4"


def test_yaml_file_overrides_defaults(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text("cache:\n  stream_ttl_s: 60\nsession:\n  key: forwarded\n")

    cfg = load_config(str(path), environ={})
    assert cfg["cache"]["stream_ttl_s"] == 60
    assert cfg["cache"]["search_ttl_s"] == 30.0
    assert cfg["session"]["key"] == "forwarded"


def test_toml_and_json_files(tmp_path):
    toml_path = tmp_path / "relay.toml"
    toml_path.write_text('[relay]\nchunk_size = 4096\n')
    json_path = tmp_path / "relay.json"
    json_path.write_text('{"server": {"host": "127.0.0.1"}}')

    assert load_config(str(toml_path), environ={})["relay"]["chunk_size"] == 4096
    assert load_config(str(json_path), environ={})["server"]["host"] == "127.0.0.1"


def test_missing_or_broken_file_keeps_defaults(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    assert load_config(str(tmp_path / "absent.yaml"), environ={})["server"]["port"] == 3000
    assert load_config(str(broken), environ={})["server"]["port"] == 3000


def test_port_environment_wins_over_file(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text("server:\n  port: 8000\n")
    assert load_config(str(path), environ={"PORT": "9000"})["server"]["port"] == 9000


def test_invalid_port_is_ignored(caplog):
    assert env_overrides({"PORT": "eighty"}) == {}
    assert "invalid PORT" in caplog.text


def test_deep_update_merges_nested():
    dst = {"a": {"b": 1, "c": 2}, "d": 3}
    deep_update(dst, {"a": {"b": 10}, "e": 5})
    assert dst == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}


def test_config_singleton_access():
    config = Config()
    assert config is Config()
    config.set("relay.chunk_size", 1024)
    assert config.get("relay.chunk_size") == 1024
    with pytest.raises(KeyError):
        config.get("relay.no_such_key")


def test_cli_arguments():
    args = parse_args(["--port", "8080", "--log-level", "DEBUG", "--config", "relay.yaml"])
    assert args.port == 8080
    assert args.log_level == "debug"
    assert args.config == "relay.yaml"
    assert args.host is None
