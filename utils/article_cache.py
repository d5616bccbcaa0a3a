from __future__ import annotations

import hashlib
from typing import List, Optional

from models.article import CachedArticle, CachedArticleCreate, StorageUsage
from models.mutation import MutationStatus
from utils import mutation_store
from utils.review_store import from_db_ts, to_db_ts
from utils.sm2 import utcnow


def article_id_for_url(url: str) -> str:
    return hashlib.sha1(url.strip().encode("utf-8")).hexdigest()


def _article_from_row(row) -> CachedArticle:
    return CachedArticle(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        content=row["content"],
        cached_at=from_db_ts(row["cached_at"]),
    )


def cache_article(conn, article: CachedArticleCreate, article_id: Optional[str] = None) -> CachedArticle:
    """Store (or refresh) an article for offline reading."""
    article_id = article_id or article_id_for_url(article.url)
    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT INTO cached_articles (id, url, title, content, cached_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            url = excluded.url,
            title = excluded.title,
            content = excluded.content,
            cached_at = excluded.cached_at
        """,
        (article_id, article.url.strip(), article.title, article.content, to_db_ts(utcnow())),
    )
    conn.commit()
    return get_cached_article(conn, article_id)


def get_cached_article(conn, article_id: str) -> Optional[CachedArticle]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM cached_articles WHERE id = ?", (article_id,))
    row = cursor.fetchone()
    return _article_from_row(row) if row else None


def list_cached_articles(conn) -> List[CachedArticle]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM cached_articles ORDER BY cached_at DESC, id ASC")
    return [_article_from_row(row) for row in cursor.fetchall()]


def remove_cached_article(conn, article_id: str) -> bool:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM cached_articles WHERE id = ?", (article_id,))
    conn.commit()
    return cursor.rowcount > 0


def storage_usage(conn) -> StorageUsage:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT COUNT(*) AS total,
               COALESCE(SUM(LENGTH(CAST(content AS BLOB))), 0) AS content_bytes
        FROM cached_articles
        """
    )
    row = cursor.fetchone()
    counts = mutation_store.count_by_status(conn)
    return StorageUsage(
        cached_articles=int(row["total"]),
        pending_mutations=sum(count for status, count in counts.items() if status is not MutationStatus.ACKNOWLEDGED),
        dead_letters=counts[MutationStatus.DEAD_LETTER],
        content_bytes=int(row["content_bytes"]),
    )


def clear_offline_data(conn) -> None:
    """Forget everything kept locally: cached articles and queued mutations."""
    cursor = conn.cursor()
    cursor.execute("DELETE FROM cached_articles")
    conn.commit()
    mutation_store.clear_mutations(conn)
