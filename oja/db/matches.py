"""Pending match, learned mapping and suppressed name storage."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING

from ..models import (
    CandidateMatch,
    LearnedMapping,
    LearnedMappings,
    MatchStatus,
    PendingMatch,
    ReceiptLine,
    as_utc,
    parse_dt,
    utcnow,
)

if TYPE_CHECKING:
    from .database import Database


def _pending(row: sqlite3.Row) -> PendingMatch:
    return PendingMatch(
        id=row["id"],
        user_id=row["user_id"],
        receipt_id=row["receipt_id"],
        line_index=row["line_index"],
        sequence=row["sequence"],
        line=ReceiptLine(**json.loads(row["line_json"])),
        store_id=row["store_id"],
        candidates=tuple(
            CandidateMatch.from_dict(c) for c in json.loads(row["candidates_json"])
        ),
        status=MatchStatus(row["status"]),
        observed_at=parse_dt(row["observed_at"]),
        confirmed_target=row["confirmed_target"],
        confirmed_name=row["confirmed_name"],
        created_at=parse_dt(row["created_at"]),
        resolved_at=parse_dt(row["resolved_at"]),
    )


class MatchRepository:
    """Manages pending_matches, learned_mappings and suppressed_names."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # -- pending matches --------------------------------------------------

    def insert_pending(
        self,
        user_id: str,
        receipt_id: str,
        line_index: int,
        line: ReceiptLine,
        store_id: str,
        candidates: list[CandidateMatch] | tuple[CandidateMatch, ...],
        observed_at: datetime | None = None,
    ) -> PendingMatch:
        """Store a receipt line for review; the sequence continues per receipt."""
        conn = self._db.conn
        row = conn.execute(
            "SELECT COALESCE(MAX(sequence), 0) AS seq FROM pending_matches WHERE receipt_id = ?",
            (receipt_id,),
        ).fetchone()
        cur = conn.execute(
            """INSERT INTO pending_matches
               (user_id, receipt_id, line_index, sequence, line_json, store_id,
                candidates_json, status, observed_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)""",
            (
                user_id,
                receipt_id,
                line_index,
                row["seq"] + 1,
                json.dumps(asdict(line), ensure_ascii=False),
                store_id,
                json.dumps([c.to_dict() for c in candidates], ensure_ascii=False),
                as_utc(observed_at).isoformat() if observed_at else None,
                utcnow().isoformat(),
            ),
        )
        return self.get_pending(cur.lastrowid)

    def get_pending(self, match_id: int) -> PendingMatch | None:
        row = self._db.conn.execute(
            "SELECT * FROM pending_matches WHERE id = ?", (match_id,)
        ).fetchone()
        return _pending(row) if row else None

    def get_by_line(self, receipt_id: str, line_index: int) -> PendingMatch | None:
        row = self._db.conn.execute(
            "SELECT * FROM pending_matches WHERE receipt_id = ? AND line_index = ?",
            (receipt_id, line_index),
        ).fetchone()
        return _pending(row) if row else None

    def for_receipt(self, receipt_id: str, status: MatchStatus | None = None) -> list[PendingMatch]:
        """Matches of a receipt in the order they were generated."""
        if status is None:
            rows = self._db.conn.execute(
                "SELECT * FROM pending_matches WHERE receipt_id = ? ORDER BY sequence",
                (receipt_id,),
            ).fetchall()
        else:
            rows = self._db.conn.execute(
                """SELECT * FROM pending_matches
                   WHERE receipt_id = ? AND status = ? ORDER BY sequence""",
                (receipt_id, status.value),
            ).fetchall()
        return [_pending(r) for r in rows]

    def pending_for_user(self, user_id: str) -> list[PendingMatch]:
        rows = self._db.conn.execute(
            """SELECT * FROM pending_matches
               WHERE user_id = ? AND status = 'pending'
               ORDER BY created_at, receipt_id, sequence""",
            (user_id,),
        ).fetchall()
        return [_pending(r) for r in rows]

    def count_for_receipt(self, receipt_id: str) -> tuple[int, int]:
        """(resolved, total) for a receipt's matches."""
        row = self._db.conn.execute(
            """SELECT COUNT(*) AS total,
                      COALESCE(SUM(CASE WHEN status != 'pending' THEN 1 ELSE 0 END), 0)
                          AS resolved
               FROM pending_matches WHERE receipt_id = ?""",
            (receipt_id,),
        ).fetchone()
        return row["resolved"], row["total"]

    def resolve(
        self,
        match_id: int,
        status: MatchStatus,
        confirmed_target: str | None = None,
        confirmed_name: str | None = None,
    ) -> bool:
        """Move a pending match to a terminal status.

        Returns:
            False if the match was no longer pending.
        """
        cur = self._db.conn.execute(
            """UPDATE pending_matches
               SET status = ?, confirmed_target = ?, confirmed_name = ?, resolved_at = ?
               WHERE id = ? AND status = 'pending'""",
            (status.value, confirmed_target, confirmed_name, utcnow().isoformat(), match_id),
        )
        return cur.rowcount == 1

    def skip_all(self, user_id: str, receipt_id: str) -> int:
        cur = self._db.conn.execute(
            """UPDATE pending_matches
               SET status = 'skipped', resolved_at = ?
               WHERE user_id = ? AND receipt_id = ? AND status = 'pending'""",
            (utcnow().isoformat(), user_id, receipt_id),
        )
        return cur.rowcount

    # -- auto-applied lines -----------------------------------------------

    def mark_applied(
        self,
        user_id: str,
        receipt_id: str,
        line_index: int,
        target_ref: str,
        score: float,
    ) -> None:
        self._db.conn.execute(
            """INSERT INTO applied_lines
               (receipt_id, line_index, user_id, target_ref, score, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (receipt_id, line_index, user_id, target_ref, score, utcnow().isoformat()),
        )

    def applied_target(self, receipt_id: str, line_index: int) -> str | None:
        """Target a receipt line was auto-applied to, if it was."""
        row = self._db.conn.execute(
            "SELECT target_ref FROM applied_lines WHERE receipt_id = ? AND line_index = ?",
            (receipt_id, line_index),
        ).fetchone()
        return row["target_ref"] if row else None

    # -- learned mappings -------------------------------------------------

    def learn_mapping(
        self,
        user_id: str,
        receipt_pattern: str,
        canonical_name: str,
        canonical_category: str = "",
        price: float | None = None,
    ) -> None:
        """Record (or reinforce) a receipt name → item name association.

        Re-pointing a pattern at a different item resets its count.
        """
        now = utcnow().isoformat()
        self._db.conn.execute(
            """INSERT INTO learned_mappings
               (user_id, receipt_pattern, canonical_name, canonical_category,
                confirmation_count, typical_price_min, typical_price_max,
                last_confirmed_at, created_at)
               VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?)
               ON CONFLICT (user_id, receipt_pattern) DO UPDATE SET
                   confirmation_count = CASE
                       WHEN canonical_name = excluded.canonical_name
                       THEN confirmation_count + 1 ELSE 1
                   END,
                   typical_price_min = CASE
                       WHEN canonical_name != excluded.canonical_name
                           OR typical_price_min IS NULL
                       THEN excluded.typical_price_min
                       ELSE MIN(typical_price_min, COALESCE(excluded.typical_price_min, typical_price_min))
                   END,
                   typical_price_max = CASE
                       WHEN canonical_name != excluded.canonical_name
                           OR typical_price_max IS NULL
                       THEN excluded.typical_price_max
                       ELSE MAX(typical_price_max, COALESCE(excluded.typical_price_max, typical_price_max))
                   END,
                   canonical_name = excluded.canonical_name,
                   canonical_category = excluded.canonical_category,
                   last_confirmed_at = excluded.last_confirmed_at""",
            (
                user_id, receipt_pattern, canonical_name, canonical_category,
                price, price, now, now,
            ),
        )

    def learned_mappings(self, user_id: str) -> LearnedMappings:
        rows = self._db.conn.execute(
            "SELECT * FROM learned_mappings WHERE user_id = ?", (user_id,)
        ).fetchall()
        return LearnedMappings([
            LearnedMapping(
                receipt_pattern=r["receipt_pattern"],
                canonical_name=r["canonical_name"],
                canonical_category=r["canonical_category"],
                confirmation_count=r["confirmation_count"],
                typical_price_min=r["typical_price_min"],
                typical_price_max=r["typical_price_max"],
                last_confirmed_at=parse_dt(r["last_confirmed_at"]),
            )
            for r in rows
        ])

    # -- suppressed names -------------------------------------------------

    def suppress(self, user_id: str, receipt_pattern: str) -> None:
        self._db.conn.execute(
            """INSERT OR IGNORE INTO suppressed_names (user_id, receipt_pattern, created_at)
               VALUES (?, ?, ?)""",
            (user_id, receipt_pattern, utcnow().isoformat()),
        )

    def suppressed_names(self, user_id: str) -> frozenset[str]:
        rows = self._db.conn.execute(
            "SELECT receipt_pattern FROM suppressed_names WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return frozenset(r["receipt_pattern"] for r in rows)
