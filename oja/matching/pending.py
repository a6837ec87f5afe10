"""Review queue for receipt lines the matcher could not resolve on its own.

Every queued line moves ``pending → confirmed | skipped | no_match`` exactly
once. Terminal matches are kept for audit and never re-applied, so the UI
can safely repeat a confirm after a double tap or a dropped response.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Union

from ..config import OjaConfig
from ..db import Database
from ..errors import NotFoundError, ValidationError
from ..models import (
    CandidateMatch,
    ListItemRef,
    MatchStatus,
    NewItem,
    PantryItemRef,
    PendingMatch,
    ReceiptLine,
    TargetRef,
    line_price,
    ref_key,
    utcnow,
)
from ..pricing.aggregator import PriceAggregator
from .text import normalize

logger = logging.getLogger(__name__)

Choice = Union[int, ListItemRef, PantryItemRef, NewItem]


class PendingMatchQueue:
    """Persists review items and applies the user's decisions."""

    def __init__(
        self,
        db: Database,
        config: OjaConfig | None = None,
        aggregator: PriceAggregator | None = None,
    ) -> None:
        self._db = db
        self.config = config or OjaConfig()
        self.aggregator = aggregator or PriceAggregator(db, self.config.pricing)

    def enqueue(
        self,
        user_id: str,
        receipt_id: str,
        line_index: int,
        line: ReceiptLine,
        candidates: list[CandidateMatch],
        store_id: str,
        observed_at: datetime | None = None,
    ) -> PendingMatch:
        """Queue a receipt line with a snapshot of its candidates.

        Queuing the same receipt line again returns the existing record.
        """
        with self._db.transaction():
            existing = self._db.matches.get_by_line(receipt_id, line_index)
            if existing is not None:
                return existing
            snapshot = candidates[: self.config.matching.max_candidates]
            match = self._db.matches.insert_pending(
                user_id, receipt_id, line_index, line, store_id, snapshot, observed_at
            )
        logger.info(
            "Queued %r from receipt %s for review (%d candidate(s))",
            line.name, receipt_id, len(match.candidates),
        )
        return match

    def get(self, user_id: str, match_id: int) -> PendingMatch:
        match = self._db.matches.get_pending(match_id)
        if match is None or match.user_id != user_id:
            raise NotFoundError(f"Pending match {match_id} not found")
        return match

    def confirm(self, user_id: str, match_id: int, choice: Choice) -> PendingMatch:
        """Accept a candidate (by index or reference) or create a new item.

        Records the learned mapping, applies the price observation, updates
        the target item and marks the match confirmed, all in one
        transaction.

        Raises:
            NotFoundError: Unknown match, or one owned by another user.
            ValidationError: The choice is not in the candidate snapshot.
        """
        with self._db.transaction():
            match = self.get(user_id, match_id)
            if match.status.terminal:
                if not self._same_choice(match, choice):
                    logger.warning(
                        "Match %d is already %s; ignoring different choice %r",
                        match_id, match.status.value, choice,
                    )
                return match

            target, name, category = self._resolve_choice(match, choice)
            target, name = self.apply_line(
                user_id,
                match.line,
                match.store_id,
                target,
                name,
                category,
                observed_at=match.observed_at,
                source_key=f"pending:{match.id}",
            )
            self._db.matches.resolve(match.id, MatchStatus.CONFIRMED, ref_key(target), name)
            confirmed = self._db.matches.get_pending(match.id)

        logger.info("Confirmed %r as %r (%s)", match.line.name, name, ref_key(target))
        return confirmed

    def skip(self, user_id: str, match_id: int) -> PendingMatch:
        """Leave the line unresolved for good. No price, no mapping."""
        with self._db.transaction():
            match = self.get(user_id, match_id)
            if match.status.terminal:
                return match
            self._db.matches.resolve(match.id, MatchStatus.SKIPPED)
            return self._db.matches.get_pending(match.id)

    def no_match(self, user_id: str, match_id: int) -> PendingMatch:
        """Mark the line as having no catalog counterpart.

        The receipt name is remembered so weak suggestions for it are not
        offered again.
        """
        with self._db.transaction():
            match = self.get(user_id, match_id)
            if match.status.terminal:
                return match
            self._db.matches.resolve(match.id, MatchStatus.NO_MATCH)
            pattern = normalize(match.line.name)
            if pattern:
                self._db.matches.suppress(user_id, pattern)
            return self._db.matches.get_pending(match.id)

    def skip_all(self, user_id: str, receipt_id: str) -> int:
        """Skip every still-pending match of a receipt; returns how many."""
        with self._db.transaction():
            count = self._db.matches.skip_all(user_id, receipt_id)
        if count:
            logger.info("Skipped %d pending match(es) on receipt %s", count, receipt_id)
        return count

    def for_receipt(self, receipt_id: str) -> list[PendingMatch]:
        return self._db.matches.for_receipt(receipt_id)

    def pending_for_receipt(self, receipt_id: str) -> list[PendingMatch]:
        return self._db.matches.for_receipt(receipt_id, MatchStatus.PENDING)

    def pending_for_user(self, user_id: str) -> list[PendingMatch]:
        return self._db.matches.pending_for_user(user_id)

    def progress(self, receipt_id: str) -> tuple[int, int]:
        """(resolved, total) for a receipt, e.g. (2, 5) for "3 of 5"."""
        return self._db.matches.count_for_receipt(receipt_id)

    def next_pending(self, receipt_id: str) -> PendingMatch | None:
        pending = self.pending_for_receipt(receipt_id)
        return pending[0] if pending else None

    # -- internals --------------------------------------------------------

    def _resolve_choice(
        self, match: PendingMatch, choice: Choice
    ) -> tuple[TargetRef, str, str]:
        if isinstance(choice, NewItem):
            name = choice.name.strip()
            if not normalize(name):
                raise ValidationError("New item name is empty")
            return None, name, choice.category

        if isinstance(choice, int) and not isinstance(choice, bool):
            if not 0 <= choice < len(match.candidates):
                raise ValidationError(
                    f"Candidate index {choice} out of range for match {match.id}"
                )
            candidate = match.candidates[choice]
            return candidate.target, candidate.name, candidate.category

        if isinstance(choice, (ListItemRef, PantryItemRef)):
            for candidate in match.candidates:
                if candidate.target == choice:
                    return candidate.target, candidate.name, candidate.category
            raise ValidationError(f"{choice.key()} is not a candidate for match {match.id}")

        raise ValidationError(f"Unsupported choice: {choice!r}")

    def _same_choice(self, match: PendingMatch, choice: Choice) -> bool:
        if match.status is not MatchStatus.CONFIRMED:
            return False
        if isinstance(choice, NewItem):
            return match.confirmed_name == choice.name.strip()
        try:
            target, _, _ = self._resolve_choice(match, choice)
        except ValidationError:
            return False
        return ref_key(target) == match.confirmed_target

    def apply_line(
        self,
        user_id: str,
        line: ReceiptLine,
        store_id: str,
        target: TargetRef,
        name: str,
        category: str = "",
        *,
        observed_at: datetime | None = None,
        source_key: str | None = None,
    ) -> tuple[TargetRef, str]:
        """Write the effects of matching a receipt line to an item.

        Learns the mapping, records the price observation and updates the
        item. A ``None`` target creates a new pantry item. Runs inside the
        caller's transaction.

        Returns:
            The target actually written (after following merges) and its name.
        """
        catalog = self._db.catalog
        observed_at = observed_at or utcnow()
        price = line_price(line)
        size = _clean_size(line.size)

        if target is None:
            item = catalog.add_pantry_item(user_id, name, category=category)
            target = PantryItemRef(item.id)
        elif isinstance(target, ListItemRef):
            item = catalog.get_list_item(target.id)
            if item is None:
                raise NotFoundError(f"List item {target.id} no longer exists")
            size = size or _clean_size(item.size)
        else:
            pantry = catalog.get_pantry_item(target.id)
            # Follow merges so confirmations land on the surviving item
            while pantry is not None and pantry.merged_into is not None:
                pantry = catalog.get_pantry_item(pantry.merged_into)
            if pantry is None:
                raise NotFoundError(f"Pantry item {target.id} no longer exists")
            target = PantryItemRef(pantry.id)
            name = pantry.name

        pattern = normalize(line.name)
        if pattern:
            self._db.matches.learn_mapping(user_id, pattern, name, category, price)

        if price is not None:
            self.aggregator.observe(
                name,
                size or self.config.pricing.default_size,
                store_id,
                price,
                observed_at,
                reporter_id=user_id,
                source_key=source_key,
                item_ref=ref_key(target),
            )
        else:
            logger.debug("No price on %r; matching without observation", line.name)

        if isinstance(target, ListItemRef):
            catalog.record_list_purchase(target.id, price)
        else:
            catalog.record_pantry_purchase(target.id, price, store_id, observed_at)

        return target, name


def _clean_size(size) -> str:
    return "" if size is None else str(size).strip()
