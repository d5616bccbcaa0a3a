from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from models.review_card import ReviewCard, ScheduleResult
from utils.errors import CardNotFoundError
from utils.sm2 import DEFAULT_EASE_FACTOR, REVIEW_INTERVALS, get_due_cards, schedule, utcnow

logger = logging.getLogger(__name__)


def to_db_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _card_from_row(row: sqlite3.Row) -> ReviewCard:
    return ReviewCard(
        id=row["id"],
        source_ref=row["source_ref"],
        due_at=from_db_ts(row["due_at"]),
        repetition_count=int(row["repetition_count"]),
        ease_factor=float(row["ease_factor"]),
        created_at=from_db_ts(row["created_at"]),
        updated_at=from_db_ts(row["updated_at"]),
    )


def get_card(conn, card_id: str) -> Optional[ReviewCard]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM review_cards WHERE id = ?", (card_id,))
    row = cursor.fetchone()
    return _card_from_row(row) if row else None


def get_card_for_source(conn, source_ref: str) -> Optional[ReviewCard]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM review_cards WHERE source_ref = ?", (source_ref,))
    row = cursor.fetchone()
    return _card_from_row(row) if row else None


def schedule_highlight(
    conn,
    source_ref: str,
    *,
    now: Optional[datetime] = None,
    ease_factor: float = DEFAULT_EASE_FACTOR,
) -> ReviewCard:
    """Create the review card for a highlight, or return the one it already has."""
    existing = get_card_for_source(conn, source_ref)
    if existing:
        return existing
    now = now or utcnow()
    card_id = uuid.uuid4().hex
    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT OR IGNORE INTO review_cards (
            id, source_ref, due_at, repetition_count, ease_factor, created_at, updated_at
        )
        VALUES (?, ?, ?, 0, ?, ?, ?)
        """,
        (
            card_id,
            source_ref,
            to_db_ts(now + timedelta(days=REVIEW_INTERVALS[0])),
            ease_factor,
            to_db_ts(now),
            to_db_ts(now),
        ),
    )
    conn.commit()
    logger.info("Scheduled highlight %s for review as card %s", source_ref, card_id)
    return get_card_for_source(conn, source_ref)


def list_cards(conn) -> List[ReviewCard]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM review_cards ORDER BY due_at ASC, created_at ASC")
    return [_card_from_row(row) for row in cursor.fetchall()]


def list_due_cards(conn, now: Optional[datetime] = None) -> List[ReviewCard]:
    now = now or utcnow()
    cursor = conn.cursor()
    cursor.execute(
        "SELECT * FROM review_cards WHERE due_at <= ? ORDER BY created_at ASC",
        (to_db_ts(now),),
    )
    return get_due_cards((_card_from_row(row) for row in cursor.fetchall()), now)


def due_count(conn, now: Optional[datetime] = None) -> int:
    return len(list_due_cards(conn, now))


def save_schedule(conn, card_id: str, result: ScheduleResult, now: datetime) -> None:
    cursor = conn.cursor()
    cursor.execute(
        """
        UPDATE review_cards
        SET due_at = ?, repetition_count = ?, ease_factor = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            to_db_ts(result.due_at),
            result.repetition_count,
            result.ease_factor,
            to_db_ts(now),
            card_id,
        ),
    )


def record_review(conn, card_id: str, quality: int, now: Optional[datetime] = None) -> ReviewCard:
    """Apply a recall rating to a stored card and persist the new schedule."""
    card = get_card(conn, card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    now = now or utcnow()
    result = schedule(card, quality, now)
    save_schedule(conn, card_id, result, now)
    conn.commit()
    logger.debug(
        "Card %s rated %s: next review in %s day(s), ease %.2f",
        card_id, quality, result.interval_days, result.ease_factor,
    )
    return get_card(conn, card_id)


def delete_cards_for_source(conn, source_ref: str) -> int:
    """Drop the review card of a deleted highlight."""
    cursor = conn.cursor()
    cursor.execute("DELETE FROM review_cards WHERE source_ref = ?", (source_ref,))
    conn.commit()
    return cursor.rowcount
