"""Detect and merge duplicate pantry items.

Grouping is exact on the normalized name, pack size and category, never
fuzzy: "Milk" and "milk" merge, "Rice" and "Rice Pudding" do not, and
neither do "Milk 2pt" and "Milk 4pt".
"""

from __future__ import annotations

import logging
from datetime import datetime

from .config import DedupConfig
from .db import Database
from .errors import ConflictError, NotFoundError, ValidationError
from .matching.text import extract_size, normalize
from .models import DuplicateGroup, MergePlan, PantryItem, PantryItemRef
from .pricing.sizes import size_key

logger = logging.getLogger(__name__)

_PROVENANCE_RANK: dict[str, int] = {
    "receipt": 3,
    "user": 2,
    "ai_estimate": 1,
}


def provenance_rank(item: PantryItem) -> int:
    """receipt 3 > user 2 > ai_estimate 1 > no price 0."""
    if item.last_price is None:
        return 0
    return _PROVENANCE_RANK.get(item.price_source or "", 0)


def group_key(item: PantryItem, match_category: bool = True) -> str:
    """``name[@size][|category]``; equivalent sizes ("2 pints", "2pt") share a key."""
    name = normalize(item.name)
    size = extract_size(item.name)
    if size:
        name = f"{name}@{size_key(size)}"
    if not match_category:
        return name
    return f"{name}|{(item.category or '').strip().lower()}"


def find_duplicate_groups(
    items: list[PantryItem],
    match_category: bool = True,
) -> list[DuplicateGroup]:
    """Active items sharing a group key, two or more per group, sorted by key."""
    buckets: dict[str, list[PantryItem]] = {}
    for item in items:
        if item.status != "active" or not normalize(item.name):
            continue
        buckets.setdefault(group_key(item, match_category), []).append(item)

    return [
        DuplicateGroup(key=key, items=sorted(members, key=lambda i: i.id))
        for key, members in sorted(buckets.items())
        if len(members) >= 2
    ]


def _created_ts(value: datetime | None) -> float:
    return value.timestamp() if value is not None else float("inf")


def _keep_key(item: PantryItem) -> tuple:
    return (
        -provenance_rank(item),
        -item.purchase_count,
        _created_ts(item.created_at),
        item.id,
    )


def choose_keep(group: DuplicateGroup) -> tuple[int, list[int]]:
    """Pick the surviving item: best provenance, most purchases, oldest, lowest id.

    The result does not depend on the order of ``group.items``.
    """
    if not group.items:
        raise ValidationError("Cannot choose from an empty duplicate group")
    ordered = sorted(group.items, key=_keep_key)
    return ordered[0].id, sorted(i.id for i in ordered[1:])


def plan_merge(group: DuplicateGroup, keep_id: int | None = None) -> MergePlan:
    """Choose the survivor and the field upgrades it takes from the others.

    ``keep_id`` overrides the automatic choice, e.g. when the user picks
    which entry to keep.
    """
    if keep_id is None:
        keep_id, delete_ids = choose_keep(group)
    else:
        if keep_id not in {i.id for i in group.items}:
            raise ValidationError(f"Item {keep_id} is not in group {group.key!r}")
        delete_ids = sorted(i.id for i in group.items if i.id != keep_id)

    kept = next(i for i in group.items if i.id == keep_id)
    others = [i for i in group.items if i.id != keep_id]
    updates: dict = {}

    # A strictly better-sourced price replaces the kept one
    donors = [i for i in others if provenance_rank(i) > provenance_rank(kept)]
    if donors:
        donor = max(
            donors,
            key=lambda i: (
                provenance_rank(i),
                i.last_purchased_at.timestamp() if i.last_purchased_at else float("-inf"),
                -i.id,
            ),
        )
        updates["last_price"] = donor.last_price
        updates["price_source"] = donor.price_source
        if donor.last_store_id:
            updates["last_store_id"] = donor.last_store_id

    total = sum(i.purchase_count for i in group.items)
    if total != kept.purchase_count:
        updates["purchase_count"] = total

    purchased = [i.last_purchased_at for i in group.items if i.last_purchased_at]
    if purchased:
        latest = max(purchased)
        if kept.last_purchased_at is None or latest > kept.last_purchased_at:
            updates["last_purchased_at"] = latest

    if not kept.pinned and any(i.pinned for i in others):
        updates["pinned"] = True

    source = kept.price_source if kept.last_price is not None else "no price"
    reason = (
        f"kept #{kept.id} {kept.name!r} ({source}, "
        f"{kept.purchase_count} purchases) over {len(delete_ids)} duplicate(s)"
    )
    return MergePlan(kept_id=keep_id, delete_ids=delete_ids, updates=updates, reason=reason)


class DedupEngine:
    """Finds duplicate groups for a user and commits merges."""

    def __init__(self, db: Database, config: DedupConfig | None = None) -> None:
        self._db = db
        self.config = config or DedupConfig()

    def find_groups(self, user_id: str) -> list[DuplicateGroup]:
        items = self._db.catalog.active_pantry_items(user_id)
        return find_duplicate_groups(items, self.config.match_category)

    def merge(self, user_id: str, group: DuplicateGroup, keep_id: int | None = None) -> MergePlan:
        """Apply a merge atomically and return its plan.

        Retrying a merge that already happened returns the same plan without
        writing anything.

        Raises:
            NotFoundError: An item is missing or belongs to another user.
            ConflictError: An item was already merged into a different item.
        """
        planned = plan_merge(group, keep_id)
        ids = [planned.kept_id, *planned.delete_ids]

        with self._db.transaction():
            fresh = {i.id: i for i in self._db.catalog.pantry_items_by_ids(ids)}
            for item_id in ids:
                item = fresh.get(item_id)
                if item is None or item.user_id != user_id:
                    raise NotFoundError(f"Pantry item {item_id} not found")

            kept = fresh[planned.kept_id]
            if kept.status != "active":
                raise ConflictError(
                    f"Pantry item {kept.id} is {kept.status}, merged into {kept.merged_into}"
                )

            remaining: list[PantryItem] = []
            for item_id in planned.delete_ids:
                item = fresh[item_id]
                if item.merged_into == planned.kept_id:
                    continue
                if item.status != "active":
                    raise ConflictError(
                        f"Pantry item {item_id} already merged into {item.merged_into}"
                    )
                remaining.append(item)

            if not remaining:
                logger.debug("Merge into #%d already applied", planned.kept_id)
                return planned

            plan = plan_merge(
                DuplicateGroup(group.key, [kept, *remaining]), keep_id=planned.kept_id
            )
            self._db.catalog.apply_merge(plan)
            moved = self._db.prices.reassign_item_refs(
                [PantryItemRef(i).key() for i in plan.delete_ids],
                PantryItemRef(plan.kept_id).key(),
            )

        logger.info("Merged %s: %s; moved %d observation(s)", group.key, plan.reason, moved)
        return plan
