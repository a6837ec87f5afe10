"""Receipt reconciliation: the one place the core components are wired together.

Matching, the review queue, price aggregation and dedup never call each
other. :class:`Reconciler` runs them in sequence against one database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .config import OjaConfig
from .db import Database
from .dedup import DedupEngine, plan_merge
from .errors import NotFoundError
from .matching.matcher import ItemMatcher
from .matching.pending import PendingMatchQueue
from .models import ListItemRef, MergePlan, Receipt, ref_key
from .pricing.aggregator import PriceAggregator, PriceEstimate
from .pricing.best_value import PriceAnalysis, StoreSaving, analyze, store_savings
from .pricing.sizes import normalize_size
from .stores import UNKNOWN_STORE_ID, normalize_store_name

logger = logging.getLogger(__name__)


@dataclass
class LineOutcome:
    line_index: int
    name: str
    status: str  # auto_matched | pending | already_applied | already_queued
    target: str | None = None
    score: float | None = None
    match_id: int | None = None


@dataclass
class ReconcileSummary:
    receipt_id: str
    store_id: str
    outcomes: list[LineOutcome] = field(default_factory=list)

    @property
    def total_lines(self) -> int:
        return len(self.outcomes)

    @property
    def auto_matched(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "auto_matched")

    @property
    def pending(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "pending")


@dataclass
class Comparison:
    item: str
    matrix: dict[str, dict[str, float | None]]
    analysis: PriceAnalysis
    estimate: PriceEstimate | None = None
    saving: StoreSaving | None = None


def resolve_store_id(receipt: Receipt) -> str:
    """Canonical store id for a receipt, trying the name then name plus address."""
    store_id = normalize_store_name(receipt.store_name)
    if store_id is None and receipt.store_address:
        store_id = normalize_store_name(f"{receipt.store_name} {receipt.store_address}")
    return store_id or UNKNOWN_STORE_ID


class Reconciler:
    """Ingests receipts and exposes the dedup and comparison flows."""

    def __init__(self, db: Database, config: OjaConfig | None = None) -> None:
        self._db = db
        self.config = config or OjaConfig()
        self.matcher = ItemMatcher(self.config.matching)
        self.prices = PriceAggregator(db, self.config.pricing)
        self.queue = PendingMatchQueue(db, self.config, self.prices)
        self.dedup = DedupEngine(db, self.config.dedup)

    def ingest(self, receipt: Receipt) -> ReconcileSummary:
        """Match every line of a receipt; auto-apply confident ones, queue the rest.

        Lines already applied or queued by an earlier run are left alone.
        """
        store_id = resolve_store_id(receipt)
        if store_id == UNKNOWN_STORE_ID:
            logger.warning("Unrecognised store %r on receipt %s", receipt.store_name, receipt.id)

        catalog = self._db.catalog
        if receipt.list_id is not None:
            shopping_list = catalog.get_list(receipt.list_id)
            if shopping_list is None or shopping_list["user_id"] != receipt.user_id:
                raise NotFoundError(f"List {receipt.list_id} not found")
            list_items = catalog.open_list_items(receipt.list_id)
        else:
            list_items = catalog.open_list_items_for_user(receipt.user_id)
        pantry_items = catalog.active_pantry_items(receipt.user_id)
        learned = self._db.matches.learned_mappings(receipt.user_id)
        suppressed = self._db.matches.suppressed_names(receipt.user_id)

        summary = ReconcileSummary(receipt_id=receipt.id, store_id=store_id)
        for index, line in enumerate(receipt.lines):
            applied = self._db.matches.applied_target(receipt.id, index)
            if applied is not None:
                summary.outcomes.append(
                    LineOutcome(index, line.name, "already_applied", target=applied)
                )
                continue
            queued = self._db.matches.get_by_line(receipt.id, index)
            if queued is not None:
                summary.outcomes.append(
                    LineOutcome(index, line.name, "already_queued", match_id=queued.id)
                )
                continue

            result = self.matcher.match(line, list_items, pantry_items, learned, suppressed)
            best = result.best
            if result.auto_confirm and best is not None:
                with self._db.transaction():
                    target, name = self.queue.apply_line(
                        receipt.user_id,
                        line,
                        store_id,
                        best.target,
                        best.name,
                        best.category,
                        observed_at=receipt.purchased_at,
                        source_key=f"receipt:{receipt.id}:{index}",
                    )
                    self._db.matches.mark_applied(
                        receipt.user_id, receipt.id, index, ref_key(target), best.score
                    )
                logger.info("Auto-matched %r to %r (score %.1f)", line.name, name, best.score)
                if isinstance(target, ListItemRef):
                    # A ticked list item is no longer open for later lines
                    list_items = [i for i in list_items if i.id != target.id]
                summary.outcomes.append(
                    LineOutcome(index, line.name, "auto_matched", ref_key(target), best.score)
                )
            else:
                match = self.queue.enqueue(
                    receipt.user_id,
                    receipt.id,
                    index,
                    line,
                    result.candidates,
                    store_id,
                    receipt.purchased_at,
                )
                summary.outcomes.append(
                    LineOutcome(
                        index, line.name, "pending",
                        score=best.score if best else None, match_id=match.id,
                    )
                )

        logger.info(
            "Receipt %s (%s): %d line(s), %d auto-matched, %d pending",
            receipt.id, store_id, summary.total_lines, summary.auto_matched, summary.pending,
        )
        return summary

    def dedup_pantry(self, user_id: str, apply: bool = False) -> list[MergePlan]:
        """Plan (or with ``apply`` commit) a merge for every duplicate group."""
        groups = self.dedup.find_groups(user_id)
        if not apply:
            return [plan_merge(g) for g in groups]
        return [self.dedup.merge(user_id, g) for g in groups]

    def compare(
        self,
        item: str,
        paid_price: float | None = None,
        paid_store: str | None = None,
        size: str | None = None,
    ) -> Comparison:
        """Cross-store price matrix and best value for one item."""
        matrix = self.prices.price_matrix(item)
        analysis = analyze(matrix, self.prices.size_units(item))
        saving = None
        if paid_price is not None and paid_store:
            saving = store_savings(
                paid_price, paid_store, analysis, normalize_size(size) if size else None
            )
        return Comparison(
            item=item,
            matrix=matrix,
            analysis=analysis,
            estimate=self.prices.estimate(item),
            saving=saving,
        )
