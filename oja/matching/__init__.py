"""Receipt line matching: text similarity, candidate scoring, review queue."""

from .matcher import (
    CATEGORY_ALIASES,
    REASON_LABELS,
    ItemMatcher,
    MatchResult,
    describe_reasons,
    infer_category,
    normalize_category,
)
from .text import (
    extract_size,
    find_fuzzy_matches,
    is_duplicate_name,
    normalize,
    similarity,
    token_overlap,
    tokenize,
)

__all__ = [
    "ItemMatcher",
    "MatchResult",
    "CATEGORY_ALIASES",
    "REASON_LABELS",
    "describe_reasons",
    "infer_category",
    "normalize_category",
    "normalize",
    "extract_size",
    "tokenize",
    "token_overlap",
    "similarity",
    "is_duplicate_name",
    "find_fuzzy_matches",
]
