"""Cheapest-per-size and best price-per-unit analysis over a price matrix."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .sizes import parse_numeric_size

# store_id -> size -> price (None where the store has no price for that size)
PriceMatrix = dict[str, dict[str, Optional[float]]]


@dataclass(frozen=True)
class StorePrice:
    store_id: str
    price: float


@dataclass(frozen=True)
class BestValue:
    store_id: str
    size: str
    price: float
    price_per_unit: float


@dataclass
class PriceAnalysis:
    cheapest_per_size: dict[str, StorePrice] = field(default_factory=dict)
    best_value: BestValue | None = None


@dataclass(frozen=True)
class StoreSaving:
    """A cheaper store for something the user already bought."""

    store_id: str
    price: float
    saving: float
    percent: float


def _usable(price) -> bool:
    return (
        price is not None
        and not isinstance(price, bool)
        and isinstance(price, (int, float))
        and math.isfinite(price)
        and price > 0
    )


def analyze(matrix: PriceMatrix, size_units: dict[str, float] | None = None) -> PriceAnalysis:
    """Find the cheapest store per size and the best value overall.

    Args:
        matrix: Prices by store, then size. Store order decides ties.
        size_units: Optional size → quantity mapping ("2pt" → 2). Sizes not
            listed fall back to the leading number of the size string.

    Returns:
        PriceAnalysis. Empty/None parts when the matrix has no prices.
    """
    size_units = size_units or {}
    cheapest: dict[str, StorePrice] = {}
    best: BestValue | None = None

    for store_id, row in matrix.items():
        for size, price in (row or {}).items():
            if not _usable(price):
                continue

            current = cheapest.get(size)
            if current is None or price < current.price:
                cheapest[size] = StorePrice(store_id, price)

            quantity = size_units.get(size)
            if not quantity or quantity <= 0:
                quantity = parse_numeric_size(size)
            if quantity is None:
                continue
            per_unit = price / quantity
            if best is None or per_unit < best.price_per_unit:
                best = BestValue(store_id, size, price, per_unit)

    return PriceAnalysis(cheapest_per_size=cheapest, best_value=best)


def store_savings(
    paid_price: float,
    paid_store: str,
    analysis: PriceAnalysis,
    size: str | None = None,
) -> StoreSaving | None:
    """Where the same size could have been bought for less.

    Without a size, compares against the overall best value cell.
    """
    if not _usable(paid_price):
        return None
    if size is not None:
        cell = analysis.cheapest_per_size.get(size)
    elif analysis.best_value is not None:
        cell = StorePrice(analysis.best_value.store_id, analysis.best_value.price)
    else:
        cell = None

    if cell is None or cell.store_id == paid_store or cell.price >= paid_price:
        return None
    saving = paid_price - cell.price
    return StoreSaving(
        store_id=cell.store_id,
        price=cell.price,
        saving=round(saving, 2),
        percent=round(saving / paid_price * 100, 1),
    )
