"""Fold price observations into per item/size/store aggregates.

Each ``(normalized item name, size key, store)`` triple owns one
:class:`CurrentPrice`. ``min_price``, ``max_price`` and ``report_count``
commute, so they end up the same whatever order observations arrive in.
``unit_price`` follows the most recent observation by ``observed_at`` and
``average_price`` weights each observation by ``exp(-age / decay_days)``
relative to the newest one, so both depend on what was seen when.

The stored ``weight`` is the decayed sum of observation weights behind the
average. A newer observation decays the running weight before adding its
own; an older one is added with its own decayed weight. Either way the new
average is a convex combination of the old average and the new price.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from ..config import PricingConfig
from ..db import Database
from ..errors import ValidationError
from ..matching.text import normalize
from ..models import CurrentPrice, PriceObservation, as_utc, utcnow
from .sizes import normalize_size, parse_size, size_key

logger = logging.getLogger(__name__)

_MAX_CONFIDENCE = 0.99
_SECONDS_PER_DAY = 86400.0


def report_confidence(report_count: int) -> float:
    """Confidence from the number of reports: 0.5, 0.75, 0.875, ... max 0.99."""
    if report_count <= 0:
        return 0.0
    return round(min(_MAX_CONFIDENCE, 1 - 0.5 ** report_count), 4)


def fold(
    current: CurrentPrice | None,
    obs: PriceObservation,
    config: PricingConfig | None = None,
) -> CurrentPrice:
    """Return the aggregate after applying one observation. Pure."""
    config = config or PricingConfig()
    observed_at = as_utc(obs.observed_at)

    if current is None:
        return CurrentPrice(
            normalized_item_name=obs.normalized_item_name,
            size=obs.size,
            store_id=obs.store_id,
            unit_price=obs.price,
            average_price=obs.price,
            min_price=obs.price,
            max_price=obs.price,
            report_count=1,
            confidence=report_confidence(1),
            last_seen_at=observed_at,
            weight=1.0,
        )

    last_seen = as_utc(current.last_seen_at)
    tau = config.decay_days * _SECONDS_PER_DAY
    min_price = min(current.min_price, obs.price)
    max_price = max(current.max_price, obs.price)
    report_count = current.report_count + 1

    if observed_at >= last_seen:
        decay = _decay((observed_at - last_seen).total_seconds(), tau)
        old_weight = current.weight * decay
        weight = old_weight + 1.0
        average = (current.average_price * old_weight + obs.price) / weight
        unit_price = obs.price
        last_seen = observed_at
    else:
        # Late arrival: keep the latest price, add this one with its own age
        obs_weight = _decay((last_seen - observed_at).total_seconds(), tau)
        weight = current.weight + obs_weight
        average = (current.average_price * current.weight + obs.price * obs_weight) / weight
        unit_price = current.unit_price

    # Guard against float drift outside the observed range
    average = min(max(average, min_price), max_price)

    return CurrentPrice(
        normalized_item_name=current.normalized_item_name,
        size=current.size,
        store_id=current.store_id,
        unit_price=unit_price,
        average_price=round(average, 4),
        min_price=min_price,
        max_price=max_price,
        report_count=report_count,
        confidence=report_confidence(report_count),
        last_seen_at=last_seen,
        weight=weight,
    )


def _decay(age_seconds: float, tau_seconds: float) -> float:
    if tau_seconds <= 0:
        return 0.0 if age_seconds > 0 else 1.0
    return math.exp(-age_seconds / tau_seconds)


@dataclass
class PriceEstimate:
    """Cheapest known store for an item plus the cross-store average."""

    normalized_item_name: str
    store_id: str
    size: str
    price: float
    average_price: float
    store_count: int
    confidence: float


class PriceAggregator:
    """Validates observations and commits them with their aggregate."""

    def __init__(self, db: Database, config: PricingConfig | None = None) -> None:
        self._db = db
        self.config = config or PricingConfig()

    def observe(
        self,
        item: str,
        size: str,
        store_id: str,
        price: float,
        observed_at: datetime | None = None,
        *,
        reporter_id: str = "",
        source_key: str | None = None,
        item_ref: str | None = None,
        unit: str = "",
    ) -> CurrentPrice:
        """Record one price observation and return the updated aggregate.

        Args:
            item: Item name; normalized before use as the aggregation key.
            size: Package size ("400g", "2 pints", "each").
            store_id: Canonical store id.
            price: Price paid, must be positive and finite.
            observed_at: When the price was seen (defaults to now).
            reporter_id: User reporting the price.
            source_key: Identity of the event behind this observation. A
                second call with the same key returns the existing aggregate.
            item_ref: Catalog item the observation belongs to ("pantry:12").

        Raises:
            ValidationError: If any input is unusable. Nothing is written.
        """
        name = normalize(item)
        if not name:
            raise ValidationError(f"Item name is empty after normalization: {item!r}")
        if not isinstance(size, str) or not size.strip():
            raise ValidationError(f"Missing size for {item!r}")
        if not isinstance(store_id, str) or not store_id.strip():
            raise ValidationError(f"Missing store for {item!r}")
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise ValidationError(f"Price must be a number, got {price!r}")
        if not math.isfinite(price) or price <= 0:
            raise ValidationError(f"Price must be positive, got {price!r}")

        key = size_key(size)
        parsed = parse_size(size)
        obs = PriceObservation(
            normalized_item_name=name,
            size=normalize_size(size),
            store_id=store_id,
            price=float(price),
            observed_at=as_utc(observed_at) if observed_at else utcnow(),
            unit=unit or (parsed.unit if parsed else ""),
            reporter_id=reporter_id,
            source_key=source_key,
            item_ref=item_ref,
        )

        with self._db.transaction():
            if source_key is not None:
                existing = self._db.prices.observation_by_source(source_key)
                if existing is not None:
                    previous, previous_key = existing
                    logger.debug("Observation %s already applied", source_key)
                    return self._db.prices.get_current(
                        previous.normalized_item_name, previous_key, previous.store_id
                    )

            current = self._db.prices.get_current(name, key, store_id)
            updated = fold(current, obs, self.config)
            self._db.prices.insert_observation(obs, key)
            self._db.prices.upsert_current(updated, key)

        logger.info(
            "Price %s %s @ %s: %.2f (avg %.2f, n=%d)",
            name, updated.size, store_id, obs.price,
            updated.average_price, updated.report_count,
        )
        return updated

    def current(self, item: str, size: str, store_id: str) -> CurrentPrice | None:
        return self._db.prices.get_current(normalize(item), size_key(size), store_id)

    def current_prices(self, item: str) -> list[CurrentPrice]:
        return self._db.prices.current_for_item(normalize(item))

    def history(self, item: str, store_id: str | None = None) -> list[PriceObservation]:
        return self._db.prices.history(normalize(item), store_id)

    def estimate(self, item: str, now: datetime | None = None) -> PriceEstimate | None:
        """Cheapest store and the average across stores, or None if unseen."""
        prices = self.current_prices(item)
        if not prices:
            return None
        now = as_utc(now) if now else utcnow()
        cheapest = min(prices, key=lambda p: (p.unit_price, p.store_id, p.size))
        average = sum(p.average_price for p in prices) / len(prices)
        return PriceEstimate(
            normalized_item_name=cheapest.normalized_item_name,
            store_id=cheapest.store_id,
            size=cheapest.size,
            price=cheapest.unit_price,
            average_price=round(average, 2),
            store_count=len({p.store_id for p in prices}),
            confidence=cheapest.confidence_at(now, self.config.stale_after_days),
        )

    def price_matrix(self, item: str) -> dict[str, dict[str, float | None]]:
        """Latest price per store and size; missing cells are None."""
        prices = self.current_prices(item)
        sizes: list[str] = []
        for p in sorted(prices, key=lambda p: size_key(p.size)):
            if p.size not in sizes:
                sizes.append(p.size)

        matrix: dict[str, dict[str, float | None]] = {}
        for p in sorted(prices, key=lambda p: p.store_id):
            row = matrix.setdefault(p.store_id, {s: None for s in sizes})
            row[p.size] = p.unit_price
        return matrix

    def size_units(self, item: str) -> dict[str, float]:
        """Base quantity (ml, g or count) of each parseable size of an item."""
        units: dict[str, float] = {}
        for p in self.current_prices(item):
            parsed = parse_size(p.size)
            if parsed is not None and parsed.normalized_value > 0:
                units[p.size] = parsed.normalized_value
        return units
