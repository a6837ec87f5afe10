"""String normalization and similarity helpers for item names.

Every function here is pure and total: empty or non-string input yields an
empty string or a score of 0, never an exception.
"""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

_UNIT_WORDS = (
    "kg|mg|g|gram|grams|ml|cl|ltr|litre|litres|liter|liters|l|oz|lbs|lb|"
    "pints|pint|pt|packs|pack|pk|each|ea|pcs|x"
)

# "400g", "2 pints", "1.5 kg", "12-pack", "6x"
_SIZE_RE = re.compile(rf"\b\d+(?:\.\d+)?\s*-?\s*(?:{_UNIT_WORDS})\b")
_MULTIPACK_RE = re.compile(rf"\b\d+\s*x\s*\d+(?:\.\d+)?\s*(?:{_UNIT_WORDS})\b")  # "6 x 330ml"
_RANGE_RE = re.compile(r"\b\d+\s*-\s*\d+\b")  # "35-38"
_CODE_RE = re.compile(r"\b\d{6,}\b")  # barcodes and product codes
_PUNCT_RE = re.compile(r"(?!(?<=\d)\.(?=\d))[^\w\s]|_")
_WS_RE = re.compile(r"\s+")

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "and", "or", "of", "in", "on", "at", "to", "for",
    "with", "pack", "pk", "x", "box", "bag", "each", "per", "kg", "g", "ml",
    "l", "oz",
})

# Supermarket own-brand prefixes; carry no information about the product
BRAND_PREFIXES: tuple[str, ...] = (
    "by sainsburys", "smart price", "hearty food", "growers harvest",
    "tesco", "asda", "sainsburys", "sainsbury", "morrisons", "waitrose",
    "aldi", "lidl", "coop", "co op", "iceland", "m s", "ocado", "finest",
    "everyday", "essential", "basics", "hubbards", "stamford",
)

_ARTICLE_PREFIXES = ("a ", "an ", "the ", "some ", "fresh ", "organic ")

DUPLICATE_SIMILARITY_THRESHOLD = 0.85


def normalize(s: str) -> str:
    """Lowercase, strip punctuation, sizes and product codes, collapse spaces.

    ``normalize("Heinz Beans 400G") == normalize("heinz beans 400g")``.
    """
    if not s or not isinstance(s, str):
        return ""

    text = s.lower()
    # Removing one token can expose another ("2 500g x", "1.5.2kg"), so
    # repeat until nothing changes.
    while True:
        stripped = _RANGE_RE.sub(" ", text)
        stripped = _PUNCT_RE.sub(" ", stripped)
        stripped = _SIZE_RE.sub(" ", stripped)
        stripped = _CODE_RE.sub(" ", stripped)
        if stripped == text:
            break
        text = stripped
    return _WS_RE.sub(" ", text).strip()


def extract_size(s: str) -> str:
    """The first pack size written in a name ("Milk 2 Pints" → "2 pints"), or ""."""
    if not s or not isinstance(s, str):
        return ""
    text = s.lower()
    m = _MULTIPACK_RE.search(text) or _SIZE_RE.search(text)
    return m.group(0).strip() if m else ""


def tokenize(s: str) -> list[str]:
    """Meaningful keywords of a name, without brand prefixes or stop words."""
    text = normalize(s)
    for brand in BRAND_PREFIXES:
        if text.startswith(brand + " "):
            text = text[len(brand) + 1:]
            break

    tokens: list[str] = []
    for token in text.split():
        if len(token) > 1 and token not in STOP_WORDS and token not in tokens:
            tokens.append(token)
    return tokens


def token_overlap(a: str, b: str) -> float:
    """Shared-token ratio between two names, 0..1.

    Weighted 70% towards overlap over the smaller token set, so that a short
    list entry fully contained in a longer receipt name scores high, and 30%
    towards overlap over the larger set.
    """
    set_a = set(tokenize(a))
    set_b = set(tokenize(b))
    if not set_a or not set_b:
        return 0.0

    overlap = len(set_a & set_b)
    subset_score = overlap / min(len(set_a), len(set_b))
    jaccard_score = overlap / max(len(set_a), len(set_b))
    return subset_score * 0.7 + jaccard_score * 0.3


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a or "", b or "")


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity of the normalized names, 0..1."""
    norm_a = normalize(a)
    norm_b = normalize(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    max_len = max(len(norm_a), len(norm_b))
    return (max_len - levenshtein_distance(norm_a, norm_b)) / max_len


def singularize(s: str) -> str:
    """Normalized name with leading articles and plural endings removed."""
    n = normalize(s)
    for prefix in _ARTICLE_PREFIXES:
        if n.startswith(prefix):
            n = n[len(prefix):]

    if n.endswith("ies") and len(n) > 4:
        n = n[:-3] + "y"
    elif n.endswith("ves") and len(n) > 4:
        n = n[:-3] + "f"
    elif n.endswith("es") and len(n) > 3:
        n = n[:-2]
    elif n.endswith("s") and len(n) > 2 and not n.endswith("ss"):
        n = n[:-1]
    return n.strip()


def is_duplicate_name(a: str, b: str) -> bool:
    """Conservative check that two names refer to the same item.

    Catches case, plurals, articles and small typos, but not
    "rice" vs "rice pudding".
    """
    norm_a = singularize(a)
    norm_b = singularize(b)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True

    shorter, longer = sorted((norm_a, norm_b), key=len)
    if len(shorter) > 3 and shorter in longer and len(shorter) / len(longer) > 0.8:
        return True

    if len(shorter) >= 5:
        max_len = len(longer)
        sim = (max_len - levenshtein_distance(norm_a, norm_b)) / max_len
        if sim >= DUPLICATE_SIMILARITY_THRESHOLD:
            return True

    return False


def find_fuzzy_matches(
    query: str,
    names: list[str],
    min_similarity: float = 0.7,
    max_results: int = 10,
) -> list[tuple[str, float]]:
    """Rank ``names`` by similarity to ``query``; used for "did you mean"."""
    target = singularize(query)
    if not target:
        return []

    # Very short inputs get a looser threshold
    threshold = min_similarity - 0.1 if len(target) < 4 else min_similarity

    matches: list[tuple[str, float]] = []
    seen: set[str] = set()
    for name in names:
        candidate = singularize(name)
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)

        if candidate == target:
            matches.append((name, 1.0))
            continue

        max_len = max(len(candidate), len(target))
        sim = (max_len - levenshtein_distance(candidate, target)) / max_len
        if candidate in target or target in candidate:
            matches.append((name, max(sim, 0.85)))
        elif sim >= threshold:
            matches.append((name, sim))

    matches.sort(key=lambda m: m[1], reverse=True)
    return matches[:max_results]
