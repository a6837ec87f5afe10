"""Price observation log and current price aggregates."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from ..models import CurrentPrice, PriceObservation, as_utc, parse_dt, utcnow

if TYPE_CHECKING:
    from .database import Database


def _current(row: sqlite3.Row) -> CurrentPrice:
    return CurrentPrice(
        normalized_item_name=row["normalized_name"],
        size=row["size"],
        store_id=row["store_id"],
        unit_price=row["unit_price"],
        average_price=row["average_price"],
        min_price=row["min_price"],
        max_price=row["max_price"],
        report_count=row["report_count"],
        confidence=row["confidence"],
        last_seen_at=parse_dt(row["last_seen_at"]),
        weight=row["weight"],
    )


def _observation(row: sqlite3.Row) -> PriceObservation:
    return PriceObservation(
        normalized_item_name=row["normalized_name"],
        size=row["size"],
        store_id=row["store_id"],
        price=row["price"],
        observed_at=parse_dt(row["observed_at"]),
        unit=row["unit"],
        reporter_id=row["reporter_id"],
        source_key=row["source_key"],
        item_ref=row["item_ref"],
    )


class PriceRepository:
    """Manages the price_observations and current_prices tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def has_source(self, source_key: str) -> bool:
        row = self._db.conn.execute(
            "SELECT 1 FROM price_observations WHERE source_key = ?", (source_key,)
        ).fetchone()
        return row is not None

    def observation_by_source(self, source_key: str) -> tuple[PriceObservation, str] | None:
        """The observation recorded under ``source_key`` and its size key."""
        row = self._db.conn.execute(
            "SELECT * FROM price_observations WHERE source_key = ?", (source_key,)
        ).fetchone()
        if row is None:
            return None
        return _observation(row), row["size_key"]

    def insert_observation(self, obs: PriceObservation, size_key: str) -> int:
        cur = self._db.conn.execute(
            """INSERT INTO price_observations
               (normalized_name, size, size_key, unit, store_id, price,
                observed_at, reporter_id, source_key, item_ref, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                obs.normalized_item_name,
                obs.size,
                size_key,
                obs.unit,
                obs.store_id,
                obs.price,
                as_utc(obs.observed_at).isoformat(),
                obs.reporter_id,
                obs.source_key,
                obs.item_ref,
                utcnow().isoformat(),
            ),
        )
        return cur.lastrowid

    def history(self, normalized_name: str, store_id: str | None = None) -> list[PriceObservation]:
        """Observations for an item, oldest first."""
        if store_id is None:
            rows = self._db.conn.execute(
                """SELECT * FROM price_observations WHERE normalized_name = ?
                   ORDER BY observed_at, id""",
                (normalized_name,),
            ).fetchall()
        else:
            rows = self._db.conn.execute(
                """SELECT * FROM price_observations
                   WHERE normalized_name = ? AND store_id = ?
                   ORDER BY observed_at, id""",
                (normalized_name, store_id),
            ).fetchall()
        return [_observation(r) for r in rows]

    def observations_for_refs(self, item_refs: list[str]) -> list[PriceObservation]:
        if not item_refs:
            return []
        placeholders = ", ".join("?" for _ in item_refs)
        rows = self._db.conn.execute(
            f"SELECT * FROM price_observations WHERE item_ref IN ({placeholders}) ORDER BY id",
            list(item_refs),
        ).fetchall()
        return [_observation(r) for r in rows]

    def reassign_item_refs(self, old_refs: list[str], new_ref: str) -> int:
        """Point observations of merged items at the surviving item."""
        if not old_refs:
            return 0
        placeholders = ", ".join("?" for _ in old_refs)
        cur = self._db.conn.execute(
            f"UPDATE price_observations SET item_ref = ? WHERE item_ref IN ({placeholders})",
            (new_ref, *old_refs),
        )
        return cur.rowcount

    def get_current(self, normalized_name: str, size_key: str, store_id: str) -> CurrentPrice | None:
        row = self._db.conn.execute(
            """SELECT * FROM current_prices
               WHERE normalized_name = ? AND size_key = ? AND store_id = ?""",
            (normalized_name, size_key, store_id),
        ).fetchone()
        return _current(row) if row else None

    def upsert_current(self, price: CurrentPrice, size_key: str) -> None:
        self._db.conn.execute(
            """INSERT INTO current_prices
               (normalized_name, size, size_key, store_id, unit_price,
                average_price, min_price, max_price, report_count, confidence,
                weight, last_seen_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT (normalized_name, size_key, store_id) DO UPDATE SET
                   size = excluded.size,
                   unit_price = excluded.unit_price,
                   average_price = excluded.average_price,
                   min_price = excluded.min_price,
                   max_price = excluded.max_price,
                   report_count = excluded.report_count,
                   confidence = excluded.confidence,
                   weight = excluded.weight,
                   last_seen_at = excluded.last_seen_at,
                   updated_at = excluded.updated_at""",
            (
                price.normalized_item_name,
                price.size,
                size_key,
                price.store_id,
                price.unit_price,
                price.average_price,
                price.min_price,
                price.max_price,
                price.report_count,
                price.confidence,
                price.weight,
                as_utc(price.last_seen_at).isoformat(),
                utcnow().isoformat(),
            ),
        )

    def current_for_item(self, normalized_name: str) -> list[CurrentPrice]:
        """Every store/size aggregate for an item, cheapest first."""
        rows = self._db.conn.execute(
            """SELECT * FROM current_prices WHERE normalized_name = ?
               ORDER BY unit_price, store_id, size_key""",
            (normalized_name,),
        ).fetchall()
        return [_current(r) for r in rows]
