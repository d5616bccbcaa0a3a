from pathlib import Path
from typing import Dict, List

import pytest

import config
from db import database
from utils.connectivity import ConnectivityState
from utils.sync_queue import SyncQueue
from utils.transport import DeliveryOutcome, TransportResult


def write_test_config(config_path: Path, drain_on_enqueue: bool = False) -> None:
    config_path.write_text(
        "\n".join(
            [
                "[sync]",
                "server_url = \"http://sync.test\"",
                "timeout_seconds = 5",
                f"drain_on_enqueue = {'true' if drain_on_enqueue else 'false'}",
                "",
                "[review]",
                "default_ease_factor = 2.5",
                "",
                "[logging]",
                "level = \"WARNING\"",
            ]
        ),
        encoding="utf-8",
    )


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    config_dir = tmp_path / ".readltr"
    config_dir.mkdir()
    config_path = config_dir / "config.toml"
    write_test_config(config_path)
    for name in ("READLTR_SERVER_URL", "READLTR_SYNC_TIMEOUT", "READLTR_DRAIN_ON_ENQUEUE", "READLTR_LOG_LEVEL", "READLTR_PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: False)
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    return config_dir


@pytest.fixture
def local_db(config_dir, monkeypatch):
    monkeypatch.setattr(database, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(database, "DB_PATH", config_dir / "readltr.db")
    database.init_db()
    return config_dir / "readltr.db"


class FakeServer:
    """In-memory server that honours idempotency keys.

    `script` maps a mutation id to outcomes returned (in order) before the
    server starts accepting that mutation.
    """

    def __init__(self):
        self.records: Dict[str, dict] = {}
        self.requests: List[str] = []
        self.script: Dict[str, List[DeliveryOutcome]] = {}

    async def send(self, mutation):
        self.requests.append(mutation.id)
        scripted = self.script.get(mutation.id)
        if scripted:
            outcome = scripted.pop(0)
            status = 422 if outcome is DeliveryOutcome.PERMANENT else 503
            return TransportResult(outcome, status, f"HTTP {status}")
        if mutation.id not in self.records:
            self.records[mutation.id] = {"kind": mutation.kind.value, "payload": mutation.payload}
        return TransportResult(DeliveryOutcome.ACKNOWLEDGED, 201)


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def connectivity():
    return ConnectivityState(online=True)


@pytest.fixture
def make_queue(local_db, connectivity):
    def _make(transport, **kwargs):
        kwargs.setdefault("drain_on_enqueue", False)
        return SyncQueue(transport, connectivity, **kwargs)

    return _make
