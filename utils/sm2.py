from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from models.review_card import ReviewCard, ScheduleResult
from utils.errors import InvalidQualityError

# Fixed early gaps in days, indexed by repetition count starting at 1.
REVIEW_INTERVALS = (1, 3, 7, 14, 30, 60, 120)
MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
PASSING_QUALITY = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_quality(quality: object) -> int:
    """Reject anything that is not an integer on the 0-5 scale."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(quality)
    if not 0 <= quality <= 5:
        raise InvalidQualityError(quality)
    return quality


def update_ease_factor(ease_factor: float, quality: int) -> float:
    """SM-2 ease adjustment, floored at 1.3."""
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def interval_for(repetition_count: int, ease_factor: float) -> int:
    """Days until the next review for a card that just reached repetition_count."""
    if repetition_count <= 0:
        return REVIEW_INTERVALS[0]
    if repetition_count <= len(REVIEW_INTERVALS):
        return REVIEW_INTERVALS[repetition_count - 1]
    return round(REVIEW_INTERVALS[-1] * ease_factor)


def schedule(card: ReviewCard, quality: int, now: Optional[datetime] = None) -> ScheduleResult:
    """Compute the next due date and memory parameters after a recall rating.

    quality runs from 0 (total blackout) to 5 (perfect recall). Anything below 3
    is a lapse and sends the card back to the first interval. The card itself is
    not modified; callers persist the returned fields and stamp updated_at.
    """
    quality = validate_quality(quality)
    if quality < PASSING_QUALITY:
        repetition_count = 0
    else:
        repetition_count = card.repetition_count + 1
    ease_factor = update_ease_factor(card.ease_factor, quality)
    interval_days = interval_for(repetition_count, ease_factor)
    anchor = now or utcnow()
    return ScheduleResult(
        due_at=anchor + timedelta(days=interval_days),
        repetition_count=repetition_count,
        ease_factor=ease_factor,
        interval_days=interval_days,
    )


def get_due_cards(cards: Iterable[ReviewCard], now: Optional[datetime] = None) -> List[ReviewCard]:
    """Cards with due_at <= now, oldest due first. Ties keep their input order."""
    anchor = now or utcnow()
    due = [card for card in cards if card.due_at <= anchor]
    return sorted(due, key=lambda card: card.due_at)


def count_due(cards: Iterable[ReviewCard], now: Optional[datetime] = None) -> int:
    return len(get_due_cards(cards, now))
