"""TOML configuration loader."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

DEFAULT_DB_PATH = "~/.config/oja/oja.db"


@dataclass
class DatabaseConfig:
    path: str = DEFAULT_DB_PATH


@dataclass
class MatchingConfig:
    """Scoring weights and thresholds for receipt → item matching.

    The thresholds were tuned by eye on a small set of UK receipts; they are
    configuration, not constants, so they can be re-fit on a larger corpus.
    """

    auto_confirm_threshold: float = 70.0
    auto_confirm_margin: float = 10.0
    min_score: float = 25.0
    medium_threshold: float = 45.0
    price_tolerance: float = 0.25
    learned_mapping_bonus: float = 60.0
    token_overlap_weight: float = 40.0
    category_bonus: float = 20.0
    price_weight: float = 15.0
    fuzzy_weight: float = 15.0
    fuzzy_threshold: float = 0.6
    max_candidates: int = 5


@dataclass
class PricingConfig:
    decay_days: float = 30.0
    stale_after_days: float = 30.0
    default_size: str = "each"


@dataclass
class DedupConfig:
    match_category: bool = True


@dataclass
class OjaConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)


def load_config(path: str | Path | None = None) -> OjaConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The database path can be overridden with OJA_DB_PATH.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    db = raw.get("database", {})
    mtc = raw.get("matching", {})
    prc = raw.get("pricing", {})
    ddp = raw.get("dedup", {})

    # Environment variable wins over the file for the database location
    db_path = os.environ.get("OJA_DB_PATH", "") or db.get("path", DEFAULT_DB_PATH)

    defaults = MatchingConfig()
    matching = MatchingConfig(
        **{
            name: type(getattr(defaults, name))(mtc[name])
            for name in defaults.__dataclass_fields__
            if name in mtc
        }
    )

    return OjaConfig(
        database=DatabaseConfig(path=db_path),
        matching=matching,
        pricing=PricingConfig(
            decay_days=float(prc.get("decay_days", 30.0)),
            stale_after_days=float(prc.get("stale_after_days", 30.0)),
            default_size=prc.get("default_size", "each"),
        ),
        dedup=DedupConfig(
            match_category=ddp.get("match_category", True),
        ),
    )
