import tomllib
import shutil
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import os

CONFIG_DIR = Path.home() / ".readltr"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"

DEFAULT_SERVER_URL = "http://127.0.0.1:5000"
DEFAULT_SYNC_TIMEOUT = 30.0

def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")

def load_config() -> Dict[str, Any]:
    """Load config from ~/.readltr/config.toml, copy example if missing, load .env overrides."""
    load_dotenv()  # .env may carry READLTR_* overrides
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    sync_cfg = config.get("sync", {})
    config["sync"] = {
        "server_url": os.getenv("READLTR_SERVER_URL", sync_cfg.get("server_url", DEFAULT_SERVER_URL)).rstrip("/"),
        "timeout_seconds": float(os.getenv("READLTR_SYNC_TIMEOUT", sync_cfg.get("timeout_seconds", DEFAULT_SYNC_TIMEOUT))),
        "drain_on_enqueue": _as_bool(os.getenv(
            "READLTR_DRAIN_ON_ENQUEUE",
            sync_cfg.get("drain_on_enqueue", True),
        )),
    }
    review_cfg = config.get("review", {})
    config["review"] = {
        "default_ease_factor": max(1.3, float(review_cfg.get("default_ease_factor", 2.5))),
    }
    server_cfg = config.get("server", {})
    config["server"] = {
        "host": server_cfg.get("host", "127.0.0.1"),
        "port": int(os.getenv("READLTR_PORT", server_cfg.get("port", 8000))),
    }
    logging_cfg = config.get("logging", {})
    config["logging"] = {
        "level": os.getenv("READLTR_LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
    }
    return config

def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('sync', 'server_url')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value

def configure_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """Apply the configured log level to the root logger."""
    config = config or load_config()
    level = getattr(logging, config["logging"]["level"], logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logging.getLogger().setLevel(level)
