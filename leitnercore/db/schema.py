"""
DuckDB DDL for the Leitner store.

Ids carry no PRIMARY KEY / UNIQUE constraint: DuckDB checks those eagerly
inside a transaction, which rejects a delete followed by a re-insert of the
same id (a backup restore). FlashcardDatabase checks id uniqueness itself
inside each write transaction.

Timestamps are naive UTC.
"""

TABLE_NAMES = ("subjects", "decks", "cards", "sessions")

DB_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS subjects (
    id VARCHAR NOT NULL,
    name VARCHAR NOT NULL,
    description VARCHAR,
    icon VARCHAR,
    color VARCHAR,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS decks (
    id VARCHAR NOT NULL,
    name VARCHAR NOT NULL,
    description VARCHAR,
    tags VARCHAR[],
    subject_id VARCHAR,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS cards (
    id VARCHAR NOT NULL,
    deck_id VARCHAR NOT NULL,
    type VARCHAR NOT NULL,
    front VARCHAR NOT NULL,
    back VARCHAR NOT NULL,
    hints VARCHAR[],
    tags VARCHAR[],
    difficulty INTEGER,
    media VARCHAR,
    box INTEGER NOT NULL CHECK (box BETWEEN 1 AND 4),
    last_reviewed TIMESTAMP,
    next_review DATE,
    review_count INTEGER NOT NULL DEFAULT 0,
    correct_count INTEGER NOT NULL DEFAULT 0,
    CHECK (correct_count <= review_count)
);

CREATE TABLE IF NOT EXISTS sessions (
    id VARCHAR NOT NULL,
    deck_id VARCHAR NOT NULL,
    start_time TIMESTAMP NOT NULL,
    end_time TIMESTAMP,
    cards_reviewed INTEGER NOT NULL DEFAULT 0,
    correct_answers INTEGER NOT NULL DEFAULT 0,
    box_progress VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_decks_subject_id ON decks (subject_id);
CREATE INDEX IF NOT EXISTS idx_cards_deck_id ON cards (deck_id);
"""
