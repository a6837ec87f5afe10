"""Shared connection and transaction scope for the repositories."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..config import DEFAULT_DB_PATH
from .catalog import CatalogRepository
from .matches import MatchRepository
from .prices import PriceRepository
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class Database:
    """Owns one SQLite connection and the repositories that use it.

    Repositories never commit on their own. Writes that must land together
    run inside ``transaction()``; nested calls join the outermost one.
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._depth = 0
        self.catalog = CatalogRepository(self)
        self.matches = MatchRepository(self)
        self.prices = PriceRepository(self)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes atomically."""
        conn = self.conn
        if self._depth == 0:
            conn.execute("BEGIN IMMEDIATE")
        self._depth += 1
        try:
            yield conn
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                conn.execute("COMMIT")
