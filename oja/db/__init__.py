"""SQLite storage for the catalog, review queue and price model."""

from .catalog import CatalogRepository
from .database import Database
from .matches import MatchRepository
from .prices import PriceRepository
from .schema import ensure_schema

__all__ = [
    "Database",
    "CatalogRepository",
    "MatchRepository",
    "PriceRepository",
    "ensure_schema",
]
