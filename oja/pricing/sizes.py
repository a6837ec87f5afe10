"""Package size parsing and price-per-unit helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass

# unit → (factor to base unit, base unit, category)
_UNIT_CONVERSIONS: dict[str, tuple[float, str, str]] = {
    # Volume (base: ml)
    "pt": (568.0, "ml", "volume"),
    "pint": (568.0, "ml", "volume"),
    "pints": (568.0, "ml", "volume"),
    "l": (1000.0, "ml", "volume"),
    "ltr": (1000.0, "ml", "volume"),
    "litre": (1000.0, "ml", "volume"),
    "litres": (1000.0, "ml", "volume"),
    "liter": (1000.0, "ml", "volume"),
    "liters": (1000.0, "ml", "volume"),
    "ml": (1.0, "ml", "volume"),
    "cl": (10.0, "ml", "volume"),
    # Weight (base: g)
    "kg": (1000.0, "g", "weight"),
    "kilo": (1000.0, "g", "weight"),
    "kilos": (1000.0, "g", "weight"),
    "g": (1.0, "g", "weight"),
    "gram": (1.0, "g", "weight"),
    "grams": (1.0, "g", "weight"),
    "oz": (28.35, "g", "weight"),
    "lb": (453.6, "g", "weight"),
    "lbs": (453.6, "g", "weight"),
    # Count
    "pk": (1.0, "pk", "count"),
    "pack": (1.0, "pk", "count"),
    "packs": (1.0, "pk", "count"),
    "x": (1.0, "pk", "count"),
    "each": (1.0, "each", "count"),
    "ea": (1.0, "each", "count"),
    "pcs": (1.0, "each", "count"),
}

PRICE_PER_UNIT_LABELS: dict[str, str] = {
    "volume": "/100ml",
    "weight": "/100g",
    "count": "/each",
}

_PINT_ML = 568.0

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)-?([a-z]+)$")
_MULTIPACK_PATTERN = re.compile(r"^(\d+)x(\d+(?:\.\d+)?)([a-z]+)$")
_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


@dataclass(frozen=True)
class ParsedSize:
    value: float
    unit: str  # base unit: ml, g, pk or each
    category: str  # volume | weight | count
    normalized_value: float  # in ml, g or count
    display: str
    original: str


def parse_size(text: str) -> ParsedSize | None:
    """Parse a package size string.

    Args:
        text: e.g. "2 pints", "500ml", "1.5kg", "6-pack", "6 x 330ml"

    Returns:
        ParsedSize, or None if the string is not a recognisable size.
    """
    if not text or not isinstance(text, str):
        return None

    original = text.strip()
    cleaned = re.sub(r"\s+", "", original.lower())

    m = _MULTIPACK_PATTERN.match(cleaned)
    if m:
        count = float(m.group(1))
        each = float(m.group(2))
        conversion = _UNIT_CONVERSIONS.get(m.group(3))
        if conversion is None:
            return None
        factor, base, category = conversion
        total = count * each
        return ParsedSize(
            value=total,
            unit=base,
            category=category,
            normalized_value=total * factor,
            display=f"{_fmt(count)}x{_fmt(each)}{m.group(3)}",
            original=original,
        )

    m = _SIZE_PATTERN.match(cleaned)
    if not m:
        return None

    value = float(m.group(1))
    conversion = _UNIT_CONVERSIONS.get(m.group(2))
    if conversion is None:
        return None
    factor, base, category = conversion
    normalized = value * factor

    return ParsedSize(
        value=value,
        unit=base,
        category=category,
        normalized_value=normalized,
        display=_display(normalized, base, category),
        original=original,
    )


def _display(normalized: float, base: str, category: str) -> str:
    if category == "volume":
        # Whole-pint sizes are how UK milk is sold: 1pt, 2pt, 4pt, 6pt
        if normalized >= _PINT_ML and normalized <= 6 * _PINT_ML and normalized % _PINT_ML == 0:
            return f"{_fmt(normalized / _PINT_ML)}pt"
        if normalized >= 1000:
            return f"{_fmt(normalized / 1000)}L"
        return f"{_fmt(normalized)}ml"
    if category == "weight":
        if normalized >= 1000:
            return f"{_fmt(normalized / 1000)}kg"
        return f"{_fmt(normalized)}g"
    return f"{_fmt(normalized)}{base}"


def _fmt(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def normalize_size(text: str) -> str:
    """Display form of a size ("2 pints" → "2pt"), or the trimmed input."""
    parsed = parse_size(text)
    if parsed is not None:
        return parsed.display
    return (text or "").strip()


def size_key(text: str) -> str:
    """Aggregation key for a size: equivalent sizes share a key.

    "2 pints" and "2pt" both give "1136:volume"; unparseable sizes fall back
    to the lowercase string without spaces ("Large Tin" → "largetin").
    """
    parsed = parse_size(text)
    if parsed is not None:
        return f"{_fmt(parsed.normalized_value)}:{parsed.category}"
    return re.sub(r"\s+", "", (text or "").lower())


def parse_numeric_size(text: str) -> float | None:
    """Leading numeric quantity of a size string ("2pt" → 2.0)."""
    if not text:
        return None
    m = _LEADING_NUMBER.match(text)
    if not m:
        return None
    value = float(m.group(1))
    return value if value > 0 else None


def price_per_unit(price: float, text: str) -> float | None:
    """Price per 100ml, per 100g, or per item for count sizes."""
    parsed = parse_size(text)
    if parsed is None or parsed.normalized_value <= 0:
        return None
    if parsed.category == "count":
        return price / parsed.value
    return price / parsed.normalized_value * 100


def unit_label(text: str) -> str:
    parsed = parse_size(text)
    if parsed is None:
        return "/each"
    return PRICE_PER_UNIT_LABELS[parsed.category]
