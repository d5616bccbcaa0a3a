import sqlite3

import pytest
from fastapi.testclient import TestClient

from main import app
from utils import mutation_store
from utils.transport import DeliveryOutcome


@pytest.fixture
def client(local_db, fake_server):
    with TestClient(app) as client:
        queue = app.state.sync_queue
        queue.transport = fake_server
        # drains are triggered explicitly below
        queue.detach()
        yield client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_schedule_and_review_highlight(client):
    response = client.post("/review/cards", json={"source_ref": "highlight-9"})
    assert response.status_code == 201
    card = response.json()
    assert card["repetition_count"] == 0
    assert card["ease_factor"] == 2.5

    again = client.post("/review/cards", json={"source_ref": "highlight-9"})
    assert again.json()["id"] == card["id"]

    # not due until tomorrow
    assert client.get("/review/due").json() == []
    assert client.get("/review/due/count").json() == {"count": 0}

    response = client.post(f"/review/cards/{card['id']}/submit", json={"quality": 4})
    assert response.status_code == 200
    reviewed = response.json()
    assert reviewed["repetition_count"] == 1
    assert reviewed["ease_factor"] == pytest.approx(2.5)

    response = client.post(f"/review/cards/{card['id']}/submit", json={"quality": 1})
    assert response.json()["repetition_count"] == 0


def test_review_rejects_out_of_range_quality(client):
    card = client.post("/review/cards", json={"source_ref": "h"}).json()

    for quality in (-1, 6, "five"):
        response = client.post(f"/review/cards/{card['id']}/submit", json={"quality": quality})
        assert response.status_code == 422

    unchanged = client.get(f"/review/cards/{card['id']}").json()
    assert unchanged["repetition_count"] == 0


def test_review_unknown_card(client):
    response = client.post("/review/cards/missing/submit", json={"quality": 3})
    assert response.status_code == 404
    assert client.get("/review/cards/missing").status_code == 404


def test_delete_source_removes_card(client):
    client.post("/review/cards", json={"source_ref": "doomed"})
    assert client.delete("/review/sources/doomed").json() == {"deleted": 1}
    assert client.get("/review/cards").json() == []


def test_source_ref_is_trimmed_on_create_and_delete(client):
    assert client.post("/review/cards", json={"source_ref": "   "}).status_code == 422

    card = client.post("/review/cards", json={"source_ref": "  highlight-7 "}).json()
    assert card["source_ref"] == "highlight-7"
    again = client.post("/review/cards", json={"source_ref": "highlight-7"}).json()
    assert again["id"] == card["id"]

    assert client.delete("/review/sources/%20highlight-7%20").json() == {"deleted": 1}


def test_offline_enqueue_then_reconnect_and_drain(client, fake_server):
    assert client.post("/sync/connectivity", json={"online": False}).json() == {"online": False, "changed": True}

    response = client.post(
        "/sync/mutations",
        json={"kind": "create_article", "payload": {"url": "https://example.com/a"}},
    )
    assert response.status_code == 202
    mutation_id = response.json()["id"]
    assert response.json()["pending"] == 1

    pending = client.get("/sync/pending").json()
    assert [m["id"] for m in pending] == [mutation_id]
    assert pending[0]["status"] == "pending"

    assert client.post("/sync/drain").json() == {"acknowledged": 0, "retried_later": 0, "dead_lettered": 0}

    client.post("/sync/connectivity", json={"online": True})
    report = client.post("/sync/drain").json()
    assert report == {"acknowledged": 1, "retried_later": 0, "dead_lettered": 0}
    assert list(fake_server.records) == [mutation_id]
    assert client.get("/sync/pending/count").json()["count"] == 0


def test_enqueue_validation_errors(client):
    response = client.post("/sync/mutations", json={"kind": "create_highlight", "payload": {"text": "no article"}})
    assert response.status_code == 400

    response = client.post("/sync/mutations", json={"kind": "delete_everything", "payload": {"x": 1}})
    assert response.status_code == 422

    assert client.get("/sync/pending/count").json()["count"] == 0


def test_enqueue_storage_failure_reports_not_saved(client, monkeypatch):
    def disk_full(conn, **kwargs):
        raise sqlite3.OperationalError("database or disk is full")

    monkeypatch.setattr(mutation_store, "insert_mutation", disk_full)
    response = client.post("/sync/mutations", json={"kind": "create_note", "payload": {"content": "x"}})

    assert response.status_code == 507
    assert "not saved" in response.json()["detail"]


def test_dead_letter_endpoints(client, fake_server):
    client.post("/sync/connectivity", json={"online": False})
    mutation_id = client.post(
        "/sync/mutations", json={"kind": "create_note", "payload": {"content": "rejected"}}
    ).json()["id"]
    fake_server.script[mutation_id] = [DeliveryOutcome.PERMANENT, DeliveryOutcome.PERMANENT]
    client.post("/sync/connectivity", json={"online": True})
    client.post("/sync/drain")

    dead = client.get("/sync/dead-letters").json()
    assert [m["id"] for m in dead] == [mutation_id]
    assert dead[0]["status"] == "dead_letter"
    assert client.get("/sync/pending/count").json()["dead_letters"] == 1
    usage = client.get("/offline/usage").json()
    assert usage["pending_mutations"] == client.get("/sync/pending/count").json()["count"] == 1
    assert usage["dead_letters"] == 1

    response = client.post(f"/sync/dead-letters/{mutation_id}/resubmit", json={"payload": {"content": "fixed"}})
    assert response.status_code == 200
    assert response.json()["payload"] == {"content": "fixed"}

    client.post("/sync/drain")
    assert client.delete(f"/sync/dead-letters/{mutation_id}").status_code == 200
    assert client.delete(f"/sync/dead-letters/{mutation_id}").status_code == 404
    assert client.post("/sync/dead-letters/missing/resubmit", json={}).status_code == 404


def test_cached_articles_and_usage(client):
    response = client.put(
        "/offline/articles",
        json={"url": "https://example.com/long-read", "title": "Long read", "content": "body"},
    )
    assert response.status_code == 200
    article = response.json()

    assert client.get(f"/offline/articles/{article['id']}").json()["title"] == "Long read"
    assert [a["id"] for a in client.get("/offline/articles").json()] == [article["id"]]

    usage = client.get("/offline/usage").json()
    assert usage["cached_articles"] == 1
    assert usage["content_bytes"] == 4

    assert client.delete(f"/offline/articles/{article['id']}").status_code == 200
    assert client.get(f"/offline/articles/{article['id']}").status_code == 404

    client.put("/offline/articles", json={"url": "https://example.com/other"})
    assert client.delete("/offline/data").json() == {"cleared": True}
    assert client.get("/offline/articles").json() == []
