from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.mutation import MutationKind, MutationStatus, QueuedMutation
from utils.review_store import from_db_ts, to_db_ts
from utils.sm2 import utcnow

logger = logging.getLogger(__name__)


def _mutation_from_row(row: sqlite3.Row) -> QueuedMutation:
    return QueuedMutation(
        id=row["id"],
        seq=int(row["seq"]),
        kind=MutationKind(row["kind"]),
        payload=json.loads(row["payload"]),
        created_at=from_db_ts(row["created_at"]),
        attempt_count=int(row["attempt_count"]),
        status=MutationStatus(row["status"]),
        last_error=row["last_error"],
    )


def insert_mutation(
    conn,
    *,
    mutation_id: str,
    kind: MutationKind,
    payload: Dict[str, Any],
    created_at: datetime,
) -> QueuedMutation:
    """Write a new pending mutation and commit before returning."""
    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT INTO queued_mutations (id, kind, payload, created_at, attempt_count, status, updated_at)
        VALUES (?, ?, ?, ?, 0, ?, ?)
        """,
        (
            mutation_id,
            kind.value,
            json.dumps(payload, separators=(",", ":"), sort_keys=True),
            to_db_ts(created_at),
            MutationStatus.PENDING.value,
            to_db_ts(created_at),
        ),
    )
    conn.commit()
    return get_mutation(conn, mutation_id)


def get_mutation(conn, mutation_id: str) -> Optional[QueuedMutation]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM queued_mutations WHERE id = ?", (mutation_id,))
    row = cursor.fetchone()
    return _mutation_from_row(row) if row else None


def list_mutations(conn, statuses: Optional[Iterable[MutationStatus]] = None) -> List[QueuedMutation]:
    """Scan the queue in enqueue order, optionally restricted to some states."""
    query = "SELECT * FROM queued_mutations"
    params: list = []
    if statuses is not None:
        values = [MutationStatus(status).value for status in statuses]
        if not values:
            return []
        placeholders = ",".join("?" for _ in values)
        query += f" WHERE status IN ({placeholders})"
        params.extend(values)
    query += " ORDER BY seq ASC"
    cursor = conn.cursor()
    cursor.execute(query, params)
    return [_mutation_from_row(row) for row in cursor.fetchall()]


def next_pending(conn, after_seq: int = 0) -> Optional[QueuedMutation]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT * FROM queued_mutations
        WHERE status = ? AND seq > ?
        ORDER BY seq ASC
        LIMIT 1
        """,
        (MutationStatus.PENDING.value, after_seq),
    )
    row = cursor.fetchone()
    return _mutation_from_row(row) if row else None


def _set_status(
    conn,
    mutation_id: str,
    status: MutationStatus,
    *,
    last_error: Optional[str] = None,
    bump_attempts: bool = False,
    keep_error: bool = False,
) -> None:
    cursor = conn.cursor()
    if keep_error:
        cursor.execute(
            """
            UPDATE queued_mutations
            SET status = ?, attempt_count = attempt_count + ?, updated_at = ?
            WHERE id = ?
            """,
            (status.value, 1 if bump_attempts else 0, to_db_ts(utcnow()), mutation_id),
        )
    else:
        cursor.execute(
            """
            UPDATE queued_mutations
            SET status = ?, attempt_count = attempt_count + ?, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (status.value, 1 if bump_attempts else 0, last_error, to_db_ts(utcnow()), mutation_id),
        )
    conn.commit()


def mark_in_flight(conn, mutation_id: str) -> None:
    """Pending -> in_flight; counts the attempt before the request goes out."""
    _set_status(conn, mutation_id, MutationStatus.IN_FLIGHT, bump_attempts=True, keep_error=True)


def mark_pending(conn, mutation_id: str, error: Optional[str] = None) -> None:
    _set_status(conn, mutation_id, MutationStatus.PENDING, last_error=error)


def mark_acknowledged(conn, mutation_id: str) -> None:
    _set_status(conn, mutation_id, MutationStatus.ACKNOWLEDGED)


def mark_dead_letter(conn, mutation_id: str, error: str) -> None:
    _set_status(conn, mutation_id, MutationStatus.DEAD_LETTER, last_error=error)


def replace_payload(conn, mutation_id: str, payload: Dict[str, Any]) -> None:
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE queued_mutations SET payload = ?, updated_at = ? WHERE id = ?",
        (json.dumps(payload, separators=(",", ":"), sort_keys=True), to_db_ts(utcnow()), mutation_id),
    )
    conn.commit()


def delete_mutation(conn, mutation_id: str) -> bool:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM queued_mutations WHERE id = ?", (mutation_id,))
    conn.commit()
    return cursor.rowcount > 0


def count_by_status(conn) -> Dict[MutationStatus, int]:
    cursor = conn.cursor()
    cursor.execute("SELECT status, COUNT(*) FROM queued_mutations GROUP BY status")
    counts = {status: 0 for status in MutationStatus}
    for status, count in cursor.fetchall():
        counts[MutationStatus(status)] = count
    return counts


def recover(conn) -> Tuple[int, int]:
    """Restore a consistent queue after an unclean shutdown.

    in_flight rows never saw a response and go back to pending; acknowledged
    rows were accepted by the server but not yet removed, so they are removed now.
    """
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE queued_mutations SET status = ?, updated_at = ? WHERE status = ?",
        (MutationStatus.PENDING.value, to_db_ts(utcnow()), MutationStatus.IN_FLIGHT.value),
    )
    requeued = cursor.rowcount
    cursor.execute(
        "DELETE FROM queued_mutations WHERE status = ?",
        (MutationStatus.ACKNOWLEDGED.value,),
    )
    purged = cursor.rowcount
    conn.commit()
    if requeued or purged:
        logger.info("Queue recovery: %s mutation(s) requeued, %s acknowledged removed", requeued, purged)
    return requeued, purged


def clear_mutations(conn) -> int:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM queued_mutations")
    conn.commit()
    return cursor.rowcount
