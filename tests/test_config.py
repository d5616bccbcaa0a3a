from pathlib import Path

import config


def test_load_config_copies_example_when_missing(tmp_path, monkeypatch):
    config_dir = tmp_path / ".readltr"
    config_path = config_dir / "config.toml"
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: False)
    for name in ("READLTR_SERVER_URL", "READLTR_SYNC_TIMEOUT", "READLTR_DRAIN_ON_ENQUEUE", "READLTR_LOG_LEVEL", "READLTR_PORT"):
        monkeypatch.delenv(name, raising=False)

    loaded = config.load_config()

    assert config_path.exists()
    assert loaded["sync"]["timeout_seconds"] == 30.0
    assert loaded["sync"]["drain_on_enqueue"] is True
    assert loaded["review"]["default_ease_factor"] == 2.5
    assert loaded["server"]["port"] == 8000


def test_env_overrides_take_precedence(config_dir, monkeypatch):
    monkeypatch.setenv("READLTR_SERVER_URL", "https://readltr.example/")
    monkeypatch.setenv("READLTR_SYNC_TIMEOUT", "12.5")
    monkeypatch.setenv("READLTR_DRAIN_ON_ENQUEUE", "true")
    monkeypatch.setenv("READLTR_LOG_LEVEL", "debug")

    loaded = config.load_config()

    assert loaded["sync"]["server_url"] == "https://readltr.example"
    assert loaded["sync"]["timeout_seconds"] == 12.5
    assert loaded["sync"]["drain_on_enqueue"] is True
    assert loaded["logging"]["level"] == "DEBUG"


def test_get_config_value_reads_nested_section(config_dir):
    assert config.get_config_value("sync", "server_url") == "http://sync.test"
    assert config.get_config_value("sync", "missing", "fallback") == "fallback"
    assert config.get_config_value("nope", "key") is None


def test_ease_factor_below_floor_is_raised(config_dir):
    config_path = Path(config.CONFIG_PATH)
    config_path.write_text("[review]\ndefault_ease_factor = 1.0\n", encoding="utf-8")

    assert config.load_config()["review"]["default_ease_factor"] == 1.3
