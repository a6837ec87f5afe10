"""Price model: package sizes, aggregation and best-value analysis."""

from .aggregator import PriceAggregator, PriceEstimate, fold, report_confidence
from .best_value import BestValue, PriceAnalysis, StorePrice, StoreSaving, analyze, store_savings
from .sizes import ParsedSize, normalize_size, parse_numeric_size, parse_size, price_per_unit, size_key

__all__ = [
    "PriceAggregator",
    "PriceEstimate",
    "fold",
    "report_confidence",
    "PriceAnalysis",
    "BestValue",
    "StorePrice",
    "StoreSaving",
    "analyze",
    "store_savings",
    "ParsedSize",
    "parse_size",
    "normalize_size",
    "parse_numeric_size",
    "price_per_unit",
    "size_key",
]
