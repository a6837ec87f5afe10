"""Database schema definitions and migration helpers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_VERSION = 1

_DDL = """
CREATE TABLE IF NOT EXISTS shopping_lists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    store_id TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_lists_user_status ON shopping_lists(user_id, status);

CREATE TABLE IF NOT EXISTS list_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    list_id INTEGER NOT NULL REFERENCES shopping_lists(id),
    name TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT '',
    size TEXT NOT NULL DEFAULT '',
    unit TEXT NOT NULL DEFAULT '',
    brand TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'should-have',
    checked INTEGER NOT NULL DEFAULT 0,
    estimated_price REAL,
    price_source TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_list_items_list ON list_items(list_id, checked);

CREATE TABLE IF NOT EXISTS pantry_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT '',
    stock_level TEXT NOT NULL DEFAULT 'stocked',
    pinned INTEGER NOT NULL DEFAULT 0,
    purchase_count INTEGER NOT NULL DEFAULT 0,
    last_purchased_at TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    last_price REAL,
    price_source TEXT,
    last_store_id TEXT,
    merged_into INTEGER REFERENCES pantry_items(id),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_pantry_user_status ON pantry_items(user_id, status);

CREATE TABLE IF NOT EXISTS pending_matches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    receipt_id TEXT NOT NULL,
    line_index INTEGER NOT NULL,
    sequence INTEGER NOT NULL,
    line_json TEXT NOT NULL,
    store_id TEXT NOT NULL,
    candidates_json TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    observed_at TEXT,
    confirmed_target TEXT,
    confirmed_name TEXT,
    created_at TEXT NOT NULL,
    resolved_at TEXT,
    UNIQUE (receipt_id, line_index)
);

CREATE INDEX IF NOT EXISTS idx_pending_receipt ON pending_matches(receipt_id, sequence);
CREATE INDEX IF NOT EXISTS idx_pending_user_status ON pending_matches(user_id, status);

CREATE TABLE IF NOT EXISTS applied_lines (
    receipt_id TEXT NOT NULL,
    line_index INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    target_ref TEXT NOT NULL,
    score REAL NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (receipt_id, line_index)
);

CREATE TABLE IF NOT EXISTS learned_mappings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    receipt_pattern TEXT NOT NULL,
    canonical_name TEXT NOT NULL,
    canonical_category TEXT NOT NULL DEFAULT '',
    confirmation_count INTEGER NOT NULL DEFAULT 1,
    typical_price_min REAL,
    typical_price_max REAL,
    last_confirmed_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, receipt_pattern)
);

CREATE TABLE IF NOT EXISTS suppressed_names (
    user_id TEXT NOT NULL,
    receipt_pattern TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, receipt_pattern)
);

CREATE TABLE IF NOT EXISTS price_observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    normalized_name TEXT NOT NULL,
    size TEXT NOT NULL,
    size_key TEXT NOT NULL,
    unit TEXT NOT NULL DEFAULT '',
    store_id TEXT NOT NULL,
    price REAL NOT NULL,
    observed_at TEXT NOT NULL,
    reporter_id TEXT NOT NULL DEFAULT '',
    source_key TEXT UNIQUE,
    item_ref TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_observations_item ON price_observations(normalized_name, store_id);
CREATE INDEX IF NOT EXISTS idx_observations_ref ON price_observations(item_ref);

CREATE TABLE IF NOT EXISTS current_prices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    normalized_name TEXT NOT NULL,
    size TEXT NOT NULL,
    size_key TEXT NOT NULL,
    store_id TEXT NOT NULL,
    unit_price REAL NOT NULL,
    average_price REAL NOT NULL,
    min_price REAL NOT NULL,
    max_price REAL NOT NULL,
    report_count INTEGER NOT NULL,
    confidence REAL NOT NULL,
    weight REAL NOT NULL,
    last_seen_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (normalized_name, size_key, store_id)
);

CREATE INDEX IF NOT EXISTS idx_current_item ON current_prices(normalized_name);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    The connection runs in autocommit mode; multi-statement writes are
    grouped explicitly with ``Database.transaction()``.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection with the schema applied.
    """
    db_path = Path(db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    # Check current schema version
    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        conn.executescript(_DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )

    return conn
