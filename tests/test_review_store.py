from datetime import datetime, timedelta, timezone

import pytest

from db import database
from utils import review_store
from utils.errors import CardNotFoundError

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_schedule_highlight_is_idempotent_per_source(local_db):
    with database.get_conn() as conn:
        first = review_store.schedule_highlight(conn, "highlight-42", now=NOW)
        again = review_store.schedule_highlight(conn, "highlight-42", now=NOW + timedelta(hours=5))
        cards = review_store.list_cards(conn)

    assert first.id == again.id
    assert len(cards) == 1
    assert first.repetition_count == 0
    assert first.ease_factor == 2.5
    assert first.due_at == NOW + timedelta(days=1)
    assert first.created_at == NOW


def test_record_review_persists_schedule_and_stamps_updated_at(local_db):
    with database.get_conn() as conn:
        card = review_store.schedule_highlight(conn, "highlight-1", now=NOW)
        reviewed_at = NOW + timedelta(days=1)
        updated = review_store.record_review(conn, card.id, 5, now=reviewed_at)
        reloaded = review_store.get_card(conn, card.id)

    assert updated == reloaded
    assert reloaded.repetition_count == 1
    assert reloaded.ease_factor == pytest.approx(2.6)
    assert reloaded.due_at == reviewed_at + timedelta(days=1)
    assert reloaded.updated_at == reviewed_at
    assert reloaded.created_at == NOW


def test_record_review_unknown_card(local_db):
    with database.get_conn() as conn:
        with pytest.raises(CardNotFoundError):
            review_store.record_review(conn, "missing", 4, now=NOW)


def test_list_due_cards_orders_by_due_date(local_db):
    with database.get_conn() as conn:
        a = review_store.schedule_highlight(conn, "a", now=NOW - timedelta(days=2))
        b = review_store.schedule_highlight(conn, "b", now=NOW - timedelta(days=5))
        review_store.schedule_highlight(conn, "c", now=NOW)
        due = review_store.list_due_cards(conn, NOW)
        count = review_store.due_count(conn, NOW)

    assert [card.id for card in due] == [b.id, a.id]
    assert count == 2


def test_delete_cards_for_source(local_db):
    with database.get_conn() as conn:
        review_store.schedule_highlight(conn, "gone", now=NOW)
        review_store.schedule_highlight(conn, "kept", now=NOW)
        deleted = review_store.delete_cards_for_source(conn, "gone")
        remaining = [card.source_ref for card in review_store.list_cards(conn)]

    assert deleted == 1
    assert remaining == ["kept"]
