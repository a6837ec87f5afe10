"""Tests for item name normalization and similarity."""

import pytest

from oja.matching.text import (
    extract_size,
    find_fuzzy_matches,
    is_duplicate_name,
    levenshtein_distance,
    normalize,
    similarity,
    singularize,
    token_overlap,
    tokenize,
)


class TestNormalize:
    def test_case_and_size_insensitive(self):
        assert normalize("Heinz Beans 400G") == normalize("heinz beans 400g")
        assert normalize("Heinz Beans 400G") == "heinz beans"

    def test_strips_punctuation(self):
        assert normalize("Sainsbury's Semi-Skimmed Milk") == "sainsbury s semi skimmed milk"

    def test_strips_sizes(self):
        assert normalize("Semi Skimmed Milk 2 Pints") == "semi skimmed milk"
        assert normalize("Coke 6 x 330ml") == "coke"
        assert normalize("Eggs 12-pack") == "eggs"

    def test_strips_product_codes(self):
        assert normalize("BREAD 5010029000016") == "bread"

    def test_strips_ranges(self):
        assert normalize("Nappies Size 4 9-14") == "nappies size 4"

    def test_empty_and_non_string(self):
        assert normalize("") == ""
        assert normalize(None) == ""
        assert normalize(42) == ""

    @pytest.mark.parametrize(
        "text",
        [
            "Heinz Beans 400G",
            "400.g",
            "1.5.2kg",
            "2 500g x",
            "Beans (400g) 35-38",
            "  Weird -- spacing!!  ",
            "M&S Chicken Tikka 1.2kg",
        ],
    )
    def test_idempotent(self, text):
        once = normalize(text)
        assert normalize(once) == once


class TestTokenize:
    def test_basic(self):
        assert tokenize("Heinz Beans 400g") == ["heinz", "beans"]

    def test_strips_brand_prefix(self):
        assert tokenize("Tesco Semi Skimmed Milk") == ["semi", "skimmed", "milk"]

    def test_drops_stop_words_and_duplicates(self):
        assert tokenize("The Bag of Apples and apples") == ["apples"]

    def test_empty(self):
        assert tokenize("") == []


class TestTokenOverlap:
    def test_identical(self):
        assert token_overlap("Heinz Beans 400g", "heinz beans") == 1.0

    def test_subset_scores_high(self):
        # 1/1 * 0.7 + 1/3 * 0.3
        assert token_overlap("chicken breast fillets", "chicken") == pytest.approx(0.8)

    def test_disjoint(self):
        assert token_overlap("milk", "bread") == 0.0

    def test_empty(self):
        assert token_overlap("", "milk") == 0.0
        assert token_overlap("400g", "milk") == 0.0


class TestSimilarity:
    def test_equal_after_normalization(self):
        assert similarity("Milk", "milk 2pt") == 1.0

    def test_edit_distance_ratio(self):
        assert similarity("milk", "silk") == pytest.approx(0.75)

    def test_empty(self):
        assert similarity("", "milk") == 0.0
        assert similarity(None, None) == 0.0

    def test_levenshtein(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3


class TestDuplicateNames:
    def test_singularize(self):
        assert singularize("Tomatoes") == "tomato"
        assert singularize("Berries") == "berry"
        assert singularize("Loaves") == "loaf"
        assert singularize("Glass") == "glass"

    def test_case_and_plural(self):
        assert is_duplicate_name("Milk", "milk")
        assert is_duplicate_name("Bananas", "banana")

    def test_small_typo(self):
        assert is_duplicate_name("Cheddar Cheese", "Chedar Cheese")

    def test_not_a_prefix_match(self):
        assert not is_duplicate_name("rice", "rice pudding")

    def test_empty(self):
        assert not is_duplicate_name("", "milk")


def test_find_fuzzy_matches():
    """Fuzzy lookup ranks exact singular matches first and drops weak ones."""
    matches = find_fuzzy_matches("tomatos", ["Tomatoes", "Potatoes", "Milk"])
    assert matches == [("Tomatoes", 1.0)]


def test_find_fuzzy_matches_empty_query():
    assert find_fuzzy_matches("", ["Milk"]) == []


def test_extract_size():
    assert extract_size("Semi Skimmed Milk 2 Pints") == "2 pints"
    assert extract_size("Heinz Beans 400G") == "400g"
    assert extract_size("Coke 6 x 330ml") == "6 x 330ml"
    assert extract_size("Bread") == ""
    assert extract_size(None) == ""
