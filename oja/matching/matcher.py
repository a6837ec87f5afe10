"""Score receipt lines against open list items and pantry items.

The matcher is a pure function of its inputs: the receipt line, the
candidate items, the user's learned mappings and suppressed receipt names.
It never touches storage; the caller decides whether to auto-apply the best
candidate or queue the line for review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..config import MatchingConfig
from ..models import (
    CandidateMatch,
    LearnedMappings,
    ListItem,
    ListItemRef,
    MatchReason,
    PantryItem,
    PantryItemRef,
    ReceiptLine,
    line_price,
)
from .text import normalize, similarity, token_overlap

logger = logging.getLogger(__name__)

# Presentation labels for match reasons
REASON_LABELS: dict[str, str] = {
    MatchReason.TOKEN_OVERLAP.value: "Similar words",
    MatchReason.CATEGORY_MATCH.value: "Same category",
    MatchReason.PRICE_MATCH.value: "Similar price",
    MatchReason.LEARNED_MAPPING.value: "Previously matched",
    MatchReason.FUZZY_NAME.value: "Similar name",
}

# Canonical category → alternative spellings that mean the same thing
CATEGORY_ALIASES: dict[str, list[str]] = {
    "dairy": ["milk", "cheese", "yogurt", "yoghurt", "butter", "dairy & eggs", "chilled"],
    "meat": ["poultry", "beef", "pork", "chicken", "fish", "seafood", "meat & fish"],
    "produce": ["fruit", "vegetable", "vegetables", "fruits", "fresh", "fruit & veg"],
    "bakery": ["bread", "baked", "pastry", "pastries"],
    "drinks": ["beverages", "beverage", "drink", "soft drinks"],
    "tinned": ["canned", "tins", "tinned goods", "canned goods", "tins & jars"],
    "frozen": ["freezer", "frozen food"],
    "pantry": ["cupboard", "food cupboard", "dry goods", "staples"],
    "snacks": ["crisps", "confectionery", "sweets", "biscuits"],
    "household": ["home", "cleaning", "laundry"],
    "toiletries": ["personal care", "hygiene", "beauty", "health & beauty"],
}

# Keyword → category table for receipt lines that arrive without one.
# Checked in order; the first category with a matching token wins.
_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "frozen": ["frozen", "ice", "lolly", "lollies", "chips", "fish fingers"],
    "tinned": [
        "beans", "tinned", "tin", "canned", "soup", "tomatoes chopped",
        "chopped", "sweetcorn", "tuna", "spaghetti hoops", "ravioli",
    ],
    "dairy": [
        "milk", "semi", "skimmed", "cheese", "cheddar", "mozzarella", "butter",
        "yogurt", "yoghurt", "cream", "eggs", "egg", "creme", "fraiche",
    ],
    "meat": [
        "chicken", "beef", "pork", "lamb", "mince", "bacon", "ham", "sausage",
        "sausages", "salmon", "cod", "haddock", "prawns", "turkey", "steak",
    ],
    "produce": [
        "apple", "apples", "banana", "bananas", "orange", "oranges", "grapes",
        "lemon", "lemons", "potato", "potatoes", "onion", "onions", "carrot",
        "carrots", "tomato", "broccoli", "lettuce", "cucumber", "pepper",
        "peppers", "mushroom", "mushrooms", "avocado", "spinach", "garlic",
    ],
    "bakery": [
        "bread", "loaf", "rolls", "bagel", "bagels", "croissant", "croissants",
        "wrap", "wraps", "baguette", "crumpets", "muffins", "naan",
    ],
    "drinks": [
        "juice", "water", "cola", "coke", "lemonade", "squash", "coffee", "tea",
        "beer", "wine", "lager", "cider", "smoothie",
    ],
    "snacks": [
        "crisps", "chocolate", "biscuits", "biscuit", "sweets", "popcorn",
        "nuts", "cereal bar", "cookies",
    ],
    "pantry": [
        "pasta", "rice", "flour", "sugar", "oil", "cereal", "oats", "salt",
        "ketchup", "mayonnaise", "mayo", "sauce", "stock", "spaghetti",
        "noodles", "jam", "honey", "vinegar",
    ],
    "household": [
        "washing", "detergent", "bleach", "bin", "foil", "cling", "kitchen roll",
        "toilet", "sponge", "sponges",
    ],
    "toiletries": [
        "shampoo", "conditioner", "toothpaste", "deodorant", "soap",
        "shower", "razor", "razors",
    ],
}


def normalize_category(category: str | None) -> str:
    """Lowercase a category and fold known aliases to the canonical name."""
    if not category or not isinstance(category, str):
        return ""
    lower = category.lower().strip()
    for canonical, aliases in CATEGORY_ALIASES.items():
        if lower == canonical or lower in aliases:
            return canonical
    return lower


def infer_category(name: str) -> str:
    """Guess a canonical category from keywords in an item name.

    Returns an empty string when no keyword matches.
    """
    text = normalize(name)
    if not text:
        return ""
    tokens = set(text.split())
    padded = f" {text} "
    for category, keywords in _CATEGORY_KEYWORDS.items():
        for keyword in keywords:
            if " " in keyword:
                if f" {keyword} " in padded:
                    return category
            elif keyword in tokens:
                return category
    return ""


def describe_reasons(reasons: tuple[str, ...] | list[str]) -> list[str]:
    """Human-readable labels for a candidate's reasons, in order, deduplicated."""
    labels: list[str] = []
    for reason in reasons:
        kind = reason.split(":", 1)[0]
        label = REASON_LABELS.get(kind)
        if label and label not in labels:
            labels.append(label)
    return labels


@dataclass
class MatchResult:
    """Ranked candidates for one receipt line."""

    line: ReceiptLine
    candidates: list[CandidateMatch] = field(default_factory=list)
    confidence: str = "none"  # high | medium | low | none
    auto_confirm: bool = False

    @property
    def best(self) -> CandidateMatch | None:
        return self.candidates[0] if self.candidates else None


class ItemMatcher:
    """Multi-signal matcher for receipt lines."""

    def __init__(self, config: MatchingConfig | None = None) -> None:
        self.config = config or MatchingConfig()

    def match(
        self,
        line: ReceiptLine,
        list_items: list[ListItem] | None = None,
        pantry_items: list[PantryItem] | None = None,
        learned: LearnedMappings | None = None,
        suppressed: set[str] | frozenset[str] | None = None,
    ) -> MatchResult:
        """Rank candidate items for a receipt line.

        Args:
            line: The receipt line to match.
            list_items: Open (unchecked) items of the receipt's shopping list.
            pantry_items: The user's active pantry items.
            learned: The user's learned receipt name → item name mappings.
            suppressed: Normalized receipt names the user marked "no match".

        Returns:
            MatchResult with candidates sorted by descending score.
        """
        cfg = self.config
        receipt_name = normalize(line.name)
        receipt_category = normalize_category(line.category) or infer_category(line.name)
        mapping = learned.get(receipt_name) if learned and receipt_name else None
        floor = cfg.min_score
        if suppressed and receipt_name in suppressed:
            floor = max(floor, cfg.medium_threshold)

        best_by_target: dict[str, CandidateMatch] = {}
        for item in list_items or []:
            if item.checked:
                continue
            candidate = self._score(
                line, receipt_category, mapping, ListItemRef(item.id),
                item.name, item.category, item.estimated_price, item,
            )
            self._keep_best(best_by_target, candidate, floor)
        for item in pantry_items or []:
            if item.status != "active":
                continue
            candidate = self._score(
                line, receipt_category, mapping, PantryItemRef(item.id),
                item.name, item.category, item.last_price, item,
            )
            self._keep_best(best_by_target, candidate, floor)

        candidates = sorted(best_by_target.values(), key=_rank_key)
        candidates = candidates[: cfg.max_candidates]

        result = MatchResult(line=line, candidates=candidates)
        result.confidence = self._confidence(candidates)
        result.auto_confirm = self._should_auto_confirm(candidates)
        logger.debug(
            "Matched %r: %d candidate(s), best=%s, auto=%s",
            line.name,
            len(candidates),
            candidates[0].score if candidates else None,
            result.auto_confirm,
        )
        return result

    def _score(
        self,
        line: ReceiptLine,
        receipt_category: str,
        mapping,
        target: ListItemRef | PantryItemRef,
        name: str,
        category: str,
        price: float | None,
        item: ListItem | PantryItem,
    ) -> CandidateMatch:
        cfg = self.config
        score = 0.0
        reasons: list[str] = []

        if mapping is not None and normalize(mapping.canonical_name) == normalize(name):
            score += cfg.learned_mapping_bonus
            reasons.append(MatchReason.LEARNED_MAPPING.value)

        ratio = token_overlap(line.name, name)
        if ratio > 0:
            score += ratio * cfg.token_overlap_weight
            reasons.append(f"{MatchReason.TOKEN_OVERLAP.value}:{ratio:.2f}")

        candidate_category = normalize_category(category)
        if receipt_category and candidate_category and receipt_category == candidate_category:
            score += cfg.category_bonus
            reasons.append(MatchReason.CATEGORY_MATCH.value)

        delta = _price_delta(line_price(line), price)
        if delta is not None and delta < cfg.price_tolerance:
            score += cfg.price_weight * (1 - delta / cfg.price_tolerance)
            reasons.append(f"{MatchReason.PRICE_MATCH.value}:{delta:.3f}")

        sim = similarity(line.name, name)
        if sim >= cfg.fuzzy_threshold:
            score += sim * cfg.fuzzy_weight
            reasons.append(f"{MatchReason.FUZZY_NAME.value}:{sim:.2f}")

        return CandidateMatch(
            target=target,
            score=round(min(score, 100.0), 2),
            reasons=tuple(reasons),
            name=name,
            category=category,
            price=price,
            created_at=item.created_at,
        )

    @staticmethod
    def _keep_best(
        best_by_target: dict[str, CandidateMatch],
        candidate: CandidateMatch,
        floor: float,
    ) -> None:
        if candidate.score < floor:
            return
        key = candidate.target.key()
        existing = best_by_target.get(key)
        if existing is None or candidate.score > existing.score:
            best_by_target[key] = candidate

    def _confidence(self, candidates: list[CandidateMatch]) -> str:
        if not candidates:
            return "none"
        top = candidates[0].score
        if top >= self.config.auto_confirm_threshold:
            return "high"
        if top >= self.config.medium_threshold:
            return "medium"
        return "low"

    def _should_auto_confirm(self, candidates: list[CandidateMatch]) -> bool:
        if not candidates:
            return False
        top = candidates[0].score
        if top < self.config.auto_confirm_threshold:
            return False
        if len(candidates) == 1:
            return True
        return top - candidates[1].score >= self.config.auto_confirm_margin


def _price_delta(receipt_price: float | None, candidate_price: float | None) -> float | None:
    """Relative difference of the receipt price from the candidate's price."""
    if not receipt_price or not candidate_price:
        return None
    if receipt_price <= 0 or candidate_price <= 0:
        return None
    return abs(receipt_price - candidate_price) / candidate_price


def _rank_key(candidate: CandidateMatch) -> tuple:
    # Equal scores: list items before pantry items, newest first, then id
    kind = 0 if isinstance(candidate.target, ListItemRef) else 1
    created = candidate.created_at.timestamp() if candidate.created_at else float("-inf")
    return (-candidate.score, kind, -created, candidate.target.id)

