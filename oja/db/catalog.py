"""Shopping list and pantry item storage."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING

from ..models import ListItem, MergePlan, PantryItem, as_utc, parse_dt, utcnow

if TYPE_CHECKING:
    from .database import Database

# Columns a merge plan may patch on the kept pantry item
_MERGE_FIELDS = (
    "last_price",
    "price_source",
    "last_store_id",
    "purchase_count",
    "last_purchased_at",
    "pinned",
)


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _list_item(row: sqlite3.Row) -> ListItem:
    return ListItem(
        id=row["id"],
        list_id=row["list_id"],
        name=row["name"],
        category=row["category"],
        size=row["size"],
        unit=row["unit"],
        brand=row["brand"],
        priority=row["priority"],
        checked=bool(row["checked"]),
        estimated_price=row["estimated_price"],
        price_source=row["price_source"],
        created_at=parse_dt(row["created_at"]),
    )


def _pantry_item(row: sqlite3.Row) -> PantryItem:
    return PantryItem(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        category=row["category"],
        stock_level=row["stock_level"],
        pinned=bool(row["pinned"]),
        purchase_count=row["purchase_count"],
        last_purchased_at=parse_dt(row["last_purchased_at"]),
        status=row["status"],
        last_price=row["last_price"],
        price_source=row["price_source"],
        last_store_id=row["last_store_id"],
        created_at=parse_dt(row["created_at"]),
        merged_into=row["merged_into"],
    )


class CatalogRepository:
    """Manages the shopping_lists, list_items and pantry_items tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # -- shopping lists ---------------------------------------------------

    def create_list(self, user_id: str, name: str, store_id: str | None = None) -> int:
        cur = self._db.conn.execute(
            """INSERT INTO shopping_lists (user_id, name, store_id, created_at)
               VALUES (?, ?, ?, ?)""",
            (user_id, name, store_id, utcnow().isoformat()),
        )
        return cur.lastrowid

    def get_list(self, list_id: int) -> dict | None:
        row = self._db.conn.execute(
            "SELECT * FROM shopping_lists WHERE id = ?", (list_id,)
        ).fetchone()
        return dict(row) if row else None

    def add_list_item(
        self,
        list_id: int,
        name: str,
        *,
        category: str = "",
        size: str = "",
        unit: str = "",
        brand: str = "",
        priority: str = "should-have",
        estimated_price: float | None = None,
        price_source: str | None = None,
        created_at: datetime | None = None,
    ) -> ListItem:
        now = utcnow().isoformat()
        cur = self._db.conn.execute(
            """INSERT INTO list_items
               (list_id, name, category, size, unit, brand, priority,
                estimated_price, price_source, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                list_id, name, category, size, unit, brand, priority,
                estimated_price, price_source,
                _iso(created_at) or now, now,
            ),
        )
        return self.get_list_item(cur.lastrowid)

    def get_list_item(self, item_id: int) -> ListItem | None:
        row = self._db.conn.execute(
            "SELECT * FROM list_items WHERE id = ?", (item_id,)
        ).fetchone()
        return _list_item(row) if row else None

    def open_list_items(self, list_id: int) -> list[ListItem]:
        """Unchecked items of one list, in creation order."""
        rows = self._db.conn.execute(
            "SELECT * FROM list_items WHERE list_id = ? AND checked = 0 ORDER BY id",
            (list_id,),
        ).fetchall()
        return [_list_item(r) for r in rows]

    def open_list_items_for_user(self, user_id: str) -> list[ListItem]:
        """Unchecked items across the user's active lists."""
        rows = self._db.conn.execute(
            """SELECT i.* FROM list_items i
               JOIN shopping_lists l ON l.id = i.list_id
               WHERE l.user_id = ? AND l.status != 'completed' AND i.checked = 0
               ORDER BY i.id""",
            (user_id,),
        ).fetchall()
        return [_list_item(r) for r in rows]

    def record_list_purchase(self, item_id: int, price: float | None) -> None:
        """Tick a list item off and store the price paid, if known."""
        self._db.conn.execute(
            """UPDATE list_items
               SET checked = 1,
                   estimated_price = COALESCE(?, estimated_price),
                   price_source = CASE WHEN ? IS NULL THEN price_source ELSE 'personal' END,
                   updated_at = ?
               WHERE id = ?""",
            (price, price, utcnow().isoformat(), item_id),
        )

    # -- pantry -----------------------------------------------------------

    def add_pantry_item(
        self,
        user_id: str,
        name: str,
        *,
        category: str = "",
        stock_level: str = "stocked",
        pinned: bool = False,
        purchase_count: int = 0,
        last_purchased_at: datetime | None = None,
        last_price: float | None = None,
        price_source: str | None = None,
        last_store_id: str | None = None,
        created_at: datetime | None = None,
    ) -> PantryItem:
        now = utcnow().isoformat()
        cur = self._db.conn.execute(
            """INSERT INTO pantry_items
               (user_id, name, category, stock_level, pinned, purchase_count,
                last_purchased_at, last_price, price_source, last_store_id,
                created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                user_id, name, category, stock_level, int(pinned), purchase_count,
                _iso(last_purchased_at), last_price, price_source, last_store_id,
                _iso(created_at) or now, now,
            ),
        )
        return self.get_pantry_item(cur.lastrowid)

    def get_pantry_item(self, item_id: int) -> PantryItem | None:
        row = self._db.conn.execute(
            "SELECT * FROM pantry_items WHERE id = ?", (item_id,)
        ).fetchone()
        return _pantry_item(row) if row else None

    def active_pantry_items(self, user_id: str) -> list[PantryItem]:
        rows = self._db.conn.execute(
            "SELECT * FROM pantry_items WHERE user_id = ? AND status = 'active' ORDER BY id",
            (user_id,),
        ).fetchall()
        return [_pantry_item(r) for r in rows]

    def pantry_items_by_ids(self, item_ids: list[int]) -> list[PantryItem]:
        if not item_ids:
            return []
        placeholders = ", ".join("?" for _ in item_ids)
        rows = self._db.conn.execute(
            f"SELECT * FROM pantry_items WHERE id IN ({placeholders}) ORDER BY id",
            list(item_ids),
        ).fetchall()
        return [_pantry_item(r) for r in rows]

    def record_pantry_purchase(
        self,
        item_id: int,
        price: float | None,
        store_id: str,
        purchased_at: datetime,
    ) -> None:
        """Restock a pantry item and store the receipt price, if known."""
        self._db.conn.execute(
            """UPDATE pantry_items
               SET last_price = COALESCE(?, last_price),
                   price_source = CASE WHEN ? IS NULL THEN price_source ELSE 'receipt' END,
                   last_store_id = ?,
                   purchase_count = purchase_count + 1,
                   last_purchased_at = CASE
                       WHEN last_purchased_at IS NULL OR last_purchased_at < ? THEN ?
                       ELSE last_purchased_at
                   END,
                   stock_level = 'stocked', updated_at = ?
               WHERE id = ?""",
            (
                price, price, store_id,
                _iso(purchased_at), _iso(purchased_at),
                utcnow().isoformat(), item_id,
            ),
        )

    def apply_merge(self, plan: MergePlan) -> None:
        """Patch the kept item and tombstone the others.

        Must run inside ``Database.transaction()``.
        """
        now = utcnow().isoformat()
        updates = {k: v for k, v in plan.updates.items() if k in _MERGE_FIELDS}
        if updates:
            values = []
            for key, value in updates.items():
                if isinstance(value, datetime):
                    value = _iso(value)
                elif isinstance(value, bool):
                    value = int(value)
                values.append(value)
            assignments = ", ".join(f"{key} = ?" for key in updates)
            self._db.conn.execute(
                f"UPDATE pantry_items SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, now, plan.kept_id),
            )
        for item_id in plan.delete_ids:
            self._db.conn.execute(
                """UPDATE pantry_items
                   SET status = 'archived', merged_into = ?, updated_at = ?
                   WHERE id = ?""",
                (plan.kept_id, now, item_id),
            )
