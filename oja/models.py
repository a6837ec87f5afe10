"""Data models for receipts, catalog items, matches and prices."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from .errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, as stored or as sent by the OCR service."""
    if not value:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid timestamp {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp {value!r}") from e


@dataclass
class ReceiptLine:
    """A single line item as transcribed by the OCR pipeline."""

    name: str
    quantity: float = 1.0
    unit_price: float = 0.0
    total_price: float = 0.0
    confidence: float = 1.0
    size: str = ""      # "400g", "2pt" when the receipt prints it
    category: str = ""  # AI-inferred category, may be empty


def line_price(line: ReceiptLine) -> float | None:
    """Per-item price of a receipt line, or None when the receipt has none."""
    if line.unit_price and line.unit_price > 0:
        return float(line.unit_price)
    if line.total_price and line.total_price > 0 and line.quantity and line.quantity > 0:
        return round(line.total_price / line.quantity, 2)
    return None


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def _number(value, default: float) -> float:
    return default if value is None or value == "" else float(value)


@dataclass
class Receipt:
    id: str
    user_id: str
    store_name: str
    lines: list[ReceiptLine] = field(default_factory=list)
    purchased_at: datetime | None = None
    list_id: int | None = None
    store_address: str = ""

    @classmethod
    def from_dict(cls, data: dict, user_id: str | None = None) -> Receipt:
        """Build a receipt from OCR JSON (snake_case or camelCase keys).

        Raises:
            ValidationError: the JSON has no id or a field has the wrong type.
        """
        if not isinstance(data, dict) or "id" not in data:
            raise ValidationError("Receipt has no id")
        try:
            lines = [
                ReceiptLine(
                    name=_text(raw.get("name")),
                    quantity=_number(raw.get("quantity"), 1.0) or 1.0,
                    unit_price=_number(raw.get("unit_price", raw.get("unitPrice")), 0.0),
                    total_price=_number(raw.get("total_price", raw.get("totalPrice")), 0.0),
                    confidence=_number(raw.get("confidence"), 1.0),
                    size=_text(raw.get("size")),
                    category=_text(raw.get("category")),
                )
                for raw in data.get("lines", data.get("items")) or []
            ]
            list_id = data.get("list_id", data.get("listId"))
            list_id = int(list_id) if list_id is not None else None
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Malformed receipt {data['id']!r}: {e}") from e

        purchased = data.get("purchased_at", data.get("purchaseDate"))
        return cls(
            id=str(data["id"]),
            user_id=user_id or _text(data.get("user_id", data.get("userId"))),
            store_name=_text(data.get("store_name", data.get("storeName"))),
            lines=lines,
            purchased_at=parse_dt(purchased) if purchased else None,
            list_id=list_id,
            store_address=_text(data.get("store_address", data.get("storeAddress"))),
        )


@dataclass
class ListItem:
    """An item on a shopping list."""

    id: int
    list_id: int
    name: str
    category: str = ""
    size: str = ""
    unit: str = ""
    brand: str = ""
    priority: str = "should-have"  # must-have | should-have | nice-to-have
    checked: bool = False
    estimated_price: float | None = None
    price_source: str | None = None  # personal | crowdsourced | ai | manual
    created_at: datetime | None = None


@dataclass
class PantryItem:
    """An item in a user's pantry inventory."""

    id: int
    user_id: str
    name: str
    category: str = ""
    stock_level: str = "stocked"  # stocked | low | out
    pinned: bool = False
    purchase_count: int = 0
    last_purchased_at: datetime | None = None
    status: str = "active"  # active | archived
    last_price: float | None = None
    price_source: str | None = None  # receipt | user | ai_estimate
    last_store_id: str | None = None
    created_at: datetime | None = None
    merged_into: int | None = None


@dataclass(frozen=True)
class ListItemRef:
    id: int

    def key(self) -> str:
        return f"list:{self.id}"


@dataclass(frozen=True)
class PantryItemRef:
    id: int

    def key(self) -> str:
        return f"pantry:{self.id}"


# None means "no existing item": the line becomes a new catalog entry.
TargetRef = Union[ListItemRef, PantryItemRef, None]


def ref_key(ref: TargetRef) -> str | None:
    """Serialize a target reference for storage."""
    return None if ref is None else ref.key()


def ref_from_key(key: str | None) -> TargetRef:
    """Inverse of :func:`ref_key`."""
    if not key:
        return None
    kind, _, raw_id = key.partition(":")
    if kind == "list":
        return ListItemRef(int(raw_id))
    if kind == "pantry":
        return PantryItemRef(int(raw_id))
    raise ValueError(f"Unknown target reference: {key!r}")


@dataclass(frozen=True)
class NewItem:
    """Explicit "create new item" choice when confirming a pending match."""

    name: str
    category: str = ""


@dataclass(frozen=True)
class LearnedMapping:
    """A user's confirmed receipt name → item name association."""

    receipt_pattern: str  # normalized receipt name
    canonical_name: str
    canonical_category: str = ""
    confirmation_count: int = 1
    typical_price_min: float | None = None
    typical_price_max: float | None = None
    last_confirmed_at: datetime | None = None


class LearnedMappings:
    """Read-only view of one user's learned mappings, keyed by pattern."""

    def __init__(self, mappings: list[LearnedMapping] | None = None) -> None:
        self._by_pattern = {m.receipt_pattern: m for m in mappings or []}

    def __len__(self) -> int:
        return len(self._by_pattern)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._by_pattern

    def get(self, pattern: str) -> LearnedMapping | None:
        return self._by_pattern.get(pattern)


class MatchReason(str, Enum):
    TOKEN_OVERLAP = "token_overlap"
    CATEGORY_MATCH = "category_match"
    PRICE_MATCH = "price_match"
    FUZZY_NAME = "fuzzy"
    LEARNED_MAPPING = "learned_mapping"


@dataclass(frozen=True)
class CandidateMatch:
    """One scored candidate for a receipt line.

    ``reasons`` hold the reason kind optionally followed by ``:<detail>``,
    e.g. ``"token_overlap:0.83"``.
    """

    target: TargetRef
    score: float
    reasons: tuple[str, ...] = ()
    name: str = ""
    category: str = ""
    price: float | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "target": ref_key(self.target),
            "score": self.score,
            "reasons": list(self.reasons),
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CandidateMatch:
        return cls(
            target=ref_from_key(data.get("target")),
            score=float(data["score"]),
            reasons=tuple(data.get("reasons", ())),
            name=data.get("name", ""),
            category=data.get("category", ""),
            price=data.get("price"),
            created_at=parse_dt(data.get("created_at")),
        )


class MatchStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"
    NO_MATCH = "no_match"

    @property
    def terminal(self) -> bool:
        return self is not MatchStatus.PENDING


@dataclass
class PendingMatch:
    """A receipt line awaiting user review, with its candidate snapshot."""

    id: int
    user_id: str
    receipt_id: str
    line_index: int
    sequence: int
    line: ReceiptLine
    store_id: str
    candidates: tuple[CandidateMatch, ...] = ()
    status: MatchStatus = MatchStatus.PENDING
    observed_at: datetime | None = None
    confirmed_target: str | None = None
    confirmed_name: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class PriceObservation:
    """A single reported price. Append-only."""

    normalized_item_name: str
    size: str
    store_id: str
    price: float
    observed_at: datetime
    unit: str = ""
    reporter_id: str = ""
    source_key: str | None = None
    item_ref: str | None = None


@dataclass(frozen=True)
class CurrentPrice:
    """Running aggregate for one (item, size, store) key."""

    normalized_item_name: str
    size: str
    store_id: str
    unit_price: float
    average_price: float
    min_price: float
    max_price: float
    report_count: int
    confidence: float
    last_seen_at: datetime
    weight: float = 1.0  # decayed sum of observation weights behind average_price

    def confidence_at(self, now: datetime, stale_after_days: float = 30.0) -> float:
        """Confidence decayed by how long ago the price was last seen."""
        age_days = (now - self.last_seen_at).total_seconds() / 86400.0
        overdue = age_days - stale_after_days
        if overdue <= 0 or stale_after_days <= 0:
            return self.confidence
        return round(self.confidence * 0.5 ** (overdue / stale_after_days), 4)


@dataclass
class DuplicateGroup:
    """Two or more pantry items judged to be the same thing."""

    key: str
    items: list[PantryItem] = field(default_factory=list)


@dataclass
class MergePlan:
    """Outcome of choosing a survivor for a duplicate group."""

    kept_id: int
    delete_ids: list[int]
    updates: dict = field(default_factory=dict)  # field -> new value for kept item
    reason: str = ""
