"""Tests for cheapest-per-size and best-value analysis."""

import pytest

from oja.pricing.best_value import (
    BestValue,
    PriceAnalysis,
    StorePrice,
    analyze,
    store_savings,
)


@pytest.fixture
def milk_matrix():
    return {
        "tesco": {"2pt": 1.45, "4pt": 2.50},
        "aldi": {"2pt": 1.30, "4pt": None},
        "waitrose": {"2pt": 1.60, "4pt": 2.90},
    }


def test_single_cell():
    """One priced cell is both the cheapest for its size and the best value."""
    analysis = analyze({"tesco": {"2pt": 1.45, "4pt": None}, "aldi": {"2pt": None}})
    assert analysis.cheapest_per_size == {"2pt": StorePrice("tesco", 1.45)}
    assert analysis.best_value == BestValue("tesco", "2pt", 1.45, pytest.approx(0.725))


def test_empty_matrix():
    assert analyze({}) == PriceAnalysis()
    assert analyze({"tesco": {"2pt": None}, "aldi": {}}) == PriceAnalysis()


def test_cheapest_per_size(milk_matrix):
    analysis = analyze(milk_matrix)
    assert analysis.cheapest_per_size == {
        "2pt": StorePrice("aldi", 1.30),
        "4pt": StorePrice("tesco", 2.50),
    }


def test_best_value_per_unit(milk_matrix):
    """The bigger pack wins when its per-pint price is lower."""
    analysis = analyze(milk_matrix)
    assert analysis.best_value.store_id == "tesco"
    assert analysis.best_value.size == "4pt"
    assert analysis.best_value.price_per_unit == pytest.approx(0.625)


def test_size_units_override():
    """Explicit quantities make mixed units comparable."""
    matrix = {"tesco": {"1L": 1.10, "500ml": 0.50}}
    plain = analyze(matrix)
    assert plain.best_value.size == "500ml"

    scaled = analyze(matrix, size_units={"1L": 1000.0, "500ml": 500.0})
    assert scaled.best_value.size == "500ml"
    assert scaled.best_value.price_per_unit == pytest.approx(0.001)

    cheap_litre = analyze({"tesco": {"1L": 0.90, "500ml": 0.50}}, {"1L": 1000.0, "500ml": 500.0})
    assert cheap_litre.best_value.size == "1L"


def test_ties_keep_first_store():
    matrix = {"tesco": {"2pt": 1.45}, "asda": {"2pt": 1.45}}
    analysis = analyze(matrix)
    assert analysis.cheapest_per_size["2pt"].store_id == "tesco"
    assert analysis.best_value.store_id == "tesco"

    reversed_matrix = {"asda": {"2pt": 1.45}, "tesco": {"2pt": 1.45}}
    assert analyze(reversed_matrix).best_value.store_id == "asda"


def test_unparseable_size_only_in_cheapest():
    """Sizes without a quantity still get a cheapest store but no best value."""
    analysis = analyze({"tesco": {"Large Tin": 1.20}})
    assert analysis.cheapest_per_size == {"Large Tin": StorePrice("tesco", 1.20)}
    assert analysis.best_value is None


@pytest.mark.parametrize("bad", [0, -1.0, float("nan"), float("inf"), True, "1.20"])
def test_unusable_prices_ignored(bad):
    analysis = analyze({"tesco": {"2pt": bad}, "aldi": {"2pt": 1.30}})
    assert analysis.cheapest_per_size == {"2pt": StorePrice("aldi", 1.30)}


class TestStoreSavings:
    def test_saving_for_same_size(self, milk_matrix):
        saving = store_savings(1.56, "waitrose", analyze(milk_matrix), size="2pt")
        assert saving.store_id == "aldi"
        assert saving.price == 1.30
        assert saving.saving == 0.26
        assert saving.percent == 16.7

    def test_no_saving_when_already_cheapest(self, milk_matrix):
        assert store_savings(1.30, "aldi", analyze(milk_matrix), size="2pt") is None
        assert store_savings(1.20, "tesco", analyze(milk_matrix), size="2pt") is None

    def test_against_best_value(self, milk_matrix):
        saving = store_savings(2.90, "waitrose", analyze(milk_matrix))
        assert saving.store_id == "tesco"
        assert saving.saving == 0.40

    def test_unknown_size_or_price(self, milk_matrix):
        analysis = analyze(milk_matrix)
        assert store_savings(1.60, "waitrose", analysis, size="6pt") is None
        assert store_savings(0, "waitrose", analysis, size="2pt") is None
        assert store_savings(1.60, "waitrose", PriceAnalysis()) is None
