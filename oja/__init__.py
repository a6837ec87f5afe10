"""Receipt reconciliation and cross-store price intelligence."""

from .config import (
    DatabaseConfig,
    DedupConfig,
    MatchingConfig,
    OjaConfig,
    PricingConfig,
    load_config,
)
from .db import Database
from .dedup import DedupEngine, choose_keep, find_duplicate_groups, plan_merge
from .errors import ConflictError, NotFoundError, OjaError, ValidationError
from .matching import ItemMatcher, MatchResult
from .matching.pending import PendingMatchQueue
from .pricing import PriceAggregator, analyze
from .reconcile import Reconciler, ReconcileSummary
from .stores import normalize_store_name

__all__ = [
    "Reconciler",
    "ReconcileSummary",
    "ItemMatcher",
    "MatchResult",
    "PendingMatchQueue",
    "PriceAggregator",
    "analyze",
    "DedupEngine",
    "find_duplicate_groups",
    "choose_keep",
    "plan_merge",
    "normalize_store_name",
    "Database",
    "OjaConfig",
    "DatabaseConfig",
    "MatchingConfig",
    "PricingConfig",
    "DedupConfig",
    "load_config",
    "OjaError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
