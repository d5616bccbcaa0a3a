# SQL schema for the ReadLtr local store

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Spaced-repetition cards for highlights (SM-2 fields)
CREATE TABLE IF NOT EXISTS review_cards (
    id TEXT PRIMARY KEY,
    source_ref TEXT UNIQUE NOT NULL,
    due_at TEXT NOT NULL,
    repetition_count INTEGER NOT NULL DEFAULT 0 CHECK(repetition_count >= 0),
    ease_factor REAL NOT NULL DEFAULT 2.5 CHECK(ease_factor >= 1.3),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Offline mutations waiting to be replayed against the server
CREATE TABLE IF NOT EXISTS queued_mutations (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT UNIQUE NOT NULL,
    kind TEXT NOT NULL CHECK(kind IN ('create_article', 'create_highlight', 'create_note')),
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    attempt_count INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'in_flight', 'acknowledged', 'dead_letter')),
    last_error TEXT,
    updated_at TEXT
);

-- Articles kept for offline reading
CREATE TABLE IF NOT EXISTS cached_articles (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    cached_at TEXT NOT NULL
);
"""

INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_review_cards_due_at ON review_cards(due_at);
CREATE INDEX IF NOT EXISTS idx_queued_mutations_status ON queued_mutations(status, seq);
"""
