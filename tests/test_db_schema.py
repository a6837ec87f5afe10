"""Tests for database schema creation and migration."""

import sqlite3

import pytest

from oja.db.schema import _SCHEMA_VERSION, ensure_schema


def test_ensure_schema_creates_tables(tmp_path):
    """Schema creates the catalog, review and price tables."""
    db_path = tmp_path / "test.db"
    conn = ensure_schema(db_path)

    tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ).fetchall()
    table_names = {row["name"] for row in tables}

    assert {
        "shopping_lists",
        "list_items",
        "pantry_items",
        "pending_matches",
        "applied_lines",
        "learned_mappings",
        "suppressed_names",
        "price_observations",
        "current_prices",
        "schema_version",
    }.issubset(table_names)

    conn.close()


def test_ensure_schema_creates_parent_dirs(tmp_path):
    """Schema creates parent directories if they don't exist."""
    db_path = tmp_path / "sub" / "dir" / "test.db"
    conn = ensure_schema(db_path)
    assert db_path.exists()
    conn.close()


def test_ensure_schema_sets_version(tmp_path):
    """Schema version is set after creation."""
    conn = ensure_schema(tmp_path / "test.db")
    row = conn.execute("SELECT version FROM schema_version").fetchone()
    assert row["version"] == _SCHEMA_VERSION
    conn.close()


def test_ensure_schema_idempotent(tmp_path):
    """Calling ensure_schema twice doesn't error."""
    db_path = tmp_path / "test.db"
    conn1 = ensure_schema(db_path)
    conn1.close()

    conn2 = ensure_schema(db_path)
    row = conn2.execute("SELECT COUNT(*) AS n FROM schema_version").fetchone()
    assert row["n"] == 1
    conn2.close()


def test_ensure_schema_wal_mode(tmp_path):
    """Schema sets WAL journal mode."""
    conn = ensure_schema(tmp_path / "test.db")
    mode = conn.execute("PRAGMA journal_mode").fetchone()
    assert mode[0] == "wal"
    conn.close()


def test_ensure_schema_autocommit(tmp_path):
    """Connections run in autocommit mode so transactions are explicit."""
    conn = ensure_schema(tmp_path / "test.db")
    assert conn.isolation_level is None
    conn.close()


def test_current_prices_columns(tmp_path):
    """current_prices table has the aggregate columns."""
    conn = ensure_schema(tmp_path / "test.db")
    info = conn.execute("PRAGMA table_info(current_prices)").fetchall()
    col_names = {row["name"] for row in info}

    expected = {
        "normalized_name", "size", "size_key", "store_id", "unit_price",
        "average_price", "min_price", "max_price", "report_count",
        "confidence", "weight", "last_seen_at",
    }
    assert expected.issubset(col_names)
    conn.close()


def test_observation_source_key_unique(tmp_path):
    """The same source_key cannot be recorded twice."""
    conn = ensure_schema(tmp_path / "test.db")
    row = (
        "milk", "2pt", "1136:volume", "tesco", 1.45,
        "2026-01-01T00:00:00+00:00", "pending:1", "2026-01-01T00:00:00+00:00",
    )
    sql = """INSERT INTO price_observations
             (normalized_name, size, size_key, store_id, price, observed_at,
              source_key, created_at)
             VALUES (?, ?, ?, ?, ?, ?, ?, ?)"""
    conn.execute(sql, row)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(sql, row)
    conn.close()


def test_pending_match_line_unique(tmp_path):
    """A receipt line can be queued only once."""
    conn = ensure_schema(tmp_path / "test.db")
    sql = """INSERT INTO pending_matches
             (user_id, receipt_id, line_index, sequence, line_json, store_id,
              candidates_json, created_at)
             VALUES ('u1', 'r1', 0, ?, '{}', 'tesco', '[]', '2026-01-01')"""
    conn.execute(sql, (1,))
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(sql, (2,))
    conn.close()
