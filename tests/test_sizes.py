"""Tests for package size parsing and price-per-unit helpers."""

import pytest

from oja.pricing.sizes import (
    normalize_size,
    parse_numeric_size,
    parse_size,
    price_per_unit,
    size_key,
    unit_label,
)


class TestParseSize:
    def test_pints(self):
        parsed = parse_size("2 pints")
        assert parsed.category == "volume"
        assert parsed.normalized_value == 1136.0
        assert parsed.display == "2pt"

    def test_millilitres(self):
        parsed = parse_size("500ml")
        assert parsed.normalized_value == 500.0
        assert parsed.display == "500ml"

    def test_litre_display(self):
        assert parse_size("1 litre").display == "1L"

    def test_kilograms(self):
        parsed = parse_size("1.5kg")
        assert parsed.category == "weight"
        assert parsed.normalized_value == 1500.0
        assert parsed.display == "1.5kg"

    def test_grams(self):
        parsed = parse_size("400g")
        assert parsed.unit == "g"
        assert parsed.display == "400g"

    def test_multipack(self):
        parsed = parse_size("6 x 330ml")
        assert parsed.normalized_value == 1980.0
        assert parsed.display == "6x330ml"

    def test_hyphenated_pack(self):
        parsed = parse_size("12-pack")
        assert parsed.category == "count"
        assert parsed.value == 12.0
        assert parsed.display == "12pk"

    def test_keeps_original(self):
        assert parse_size("  2 Pints ").original == "2 Pints"

    def test_unparseable(self):
        assert parse_size("large") is None

    def test_unknown_unit(self):
        assert parse_size("3 bunches") is None

    def test_empty(self):
        assert parse_size("") is None
        assert parse_size(None) is None


class TestNormalizeSize:
    def test_parseable(self):
        assert normalize_size("2 pints") == "2pt"

    def test_unparseable_trimmed(self):
        assert normalize_size("  Large Tin ") == "Large Tin"


class TestSizeKey:
    def test_equivalent_sizes_share_key(self):
        assert size_key("2 pints") == size_key("2pt") == size_key("1136ml")
        assert size_key("2pt") == "1136:volume"

    def test_weight_and_volume_differ(self):
        assert size_key("500g") != size_key("500ml")

    def test_unparseable(self):
        assert size_key("Large Tin") == "largetin"


class TestNumericSize:
    def test_leading_number(self):
        assert parse_numeric_size("2pt") == 2.0
        assert parse_numeric_size("1.5kg") == 1.5

    def test_no_number(self):
        assert parse_numeric_size("each") is None

    def test_zero(self):
        assert parse_numeric_size("0g") is None


class TestPricePerUnit:
    def test_per_100g(self):
        assert price_per_unit(1.50, "500g") == pytest.approx(0.30)

    def test_per_each(self):
        assert price_per_unit(3.00, "6pk") == pytest.approx(0.50)

    def test_unparseable(self):
        assert price_per_unit(1.0, "large") is None

    def test_labels(self):
        assert unit_label("500ml") == "/100ml"
        assert unit_label("1kg") == "/100g"
        assert unit_label("4pk") == "/each"
        assert unit_label("whatever") == "/each"
