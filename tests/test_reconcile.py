"""End-to-end tests for receipt reconciliation."""

import logging
from datetime import datetime, timezone

import pytest

from oja.config import OjaConfig
from oja.db import Database
from oja.errors import NotFoundError, ValidationError
from oja.models import MatchStatus, Receipt, ReceiptLine
from oja.reconcile import Reconciler, resolve_store_id

SHOP_TIME = datetime(2026, 3, 7, 18, 30, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def reconciler(db):
    return Reconciler(db, OjaConfig())


@pytest.fixture
def list_id(db):
    return db.catalog.create_list("u1", "Weekly shop")


def _receipt(lines, id="r1", store="TESCO EXPRESS", list_id=None, **kwargs):
    return Receipt(
        id=id, user_id="u1", store_name=store, lines=lines,
        purchased_at=SHOP_TIME, list_id=list_id, **kwargs,
    )


def _observation_count(db):
    return db.conn.execute("SELECT COUNT(*) AS n FROM price_observations").fetchone()["n"]


class TestIngest:
    def test_confident_line_auto_applied(self, db, reconciler, list_id):
        """A close list match is applied without creating a pending match."""
        beans = db.catalog.add_list_item(list_id, "heinz beans", category="Tinned", estimated_price=1.15)
        receipt = _receipt([ReceiptLine(name="Heinz Beans 400g", unit_price=1.10, size="400g")])

        summary = reconciler.ingest(receipt)

        assert summary.store_id == "tesco"
        assert summary.auto_matched == 1
        assert summary.pending == 0
        assert summary.outcomes[0].target == f"list:{beans.id}"
        assert reconciler.queue.for_receipt("r1") == []

        item = db.catalog.get_list_item(beans.id)
        assert item.checked is True
        assert item.estimated_price == 1.10
        current = reconciler.prices.current("heinz beans", "400g", "tesco")
        assert current.unit_price == 1.10
        assert current.last_seen_at == SHOP_TIME

    def test_unrelated_line_queued_without_candidates(self, db, reconciler, list_id):
        db.catalog.add_list_item(list_id, "Milk", category="Dairy", estimated_price=1.10)
        db.catalog.add_pantry_item("u1", "Bread", category="Bakery", last_price=0.55)
        receipt = _receipt([ReceiptLine(name="Random Unbranded Snack", unit_price=0.50)])

        summary = reconciler.ingest(receipt)

        assert summary.pending == 1
        match = reconciler.queue.get("u1", summary.outcomes[0].match_id)
        assert match.status is MatchStatus.PENDING
        assert match.candidates == ()
        assert match.observed_at == SHOP_TIME
        assert _observation_count(db) == 0

    def test_reingest_is_noop(self, db, reconciler, list_id):
        """Running the same receipt twice neither re-applies nor re-queues."""
        db.catalog.add_list_item(list_id, "heinz beans", category="Tinned", estimated_price=1.15)
        receipt = _receipt([
            ReceiptLine(name="Heinz Beans 400g", unit_price=1.10),
            ReceiptLine(name="Random Unbranded Snack", unit_price=0.50),
        ])
        reconciler.ingest(receipt)

        again = reconciler.ingest(receipt)

        assert [o.status for o in again.outcomes] == ["already_applied", "already_queued"]
        assert _observation_count(db) == 1
        assert len(reconciler.queue.for_receipt("r1")) == 1
        assert reconciler.prices.current("heinz beans", "each", "tesco").report_count == 1

    def test_ticked_item_not_matched_twice(self, db, reconciler, list_id):
        db.catalog.add_list_item(list_id, "heinz beans", category="Tinned", estimated_price=1.15)
        receipt = _receipt([
            ReceiptLine(name="Heinz Beans 400g", unit_price=1.10),
            ReceiptLine(name="Heinz Beans 400g", unit_price=1.10),
        ])

        summary = reconciler.ingest(receipt)

        assert [o.status for o in summary.outcomes] == ["auto_matched", "pending"]

    def test_list_id_limits_candidates(self, db, reconciler, list_id):
        other = db.catalog.create_list("u1", "Party")
        db.catalog.add_list_item(other, "heinz beans", category="Tinned", estimated_price=1.15)
        receipt = _receipt([ReceiptLine(name="Heinz Beans 400g", unit_price=1.10)], list_id=list_id)

        summary = reconciler.ingest(receipt)

        assert summary.pending == 1

    def test_blank_or_numeric_size(self, db, reconciler, list_id):
        """Odd OCR sizes fall back to a usable size instead of stopping the receipt."""
        db.catalog.add_list_item(list_id, "heinz beans", category="Tinned", estimated_price=1.15)
        db.catalog.add_pantry_item("u1", "Bread", category="Bakery", last_price=0.55)
        receipt = _receipt([
            ReceiptLine(name="Heinz Beans 400g", unit_price=1.10, size=" "),
            ReceiptLine(name="Bread", unit_price=0.55, size=400),
        ])

        summary = reconciler.ingest(receipt)

        assert summary.auto_matched == 2
        assert reconciler.prices.current("heinz beans", "each", "tesco").unit_price == 1.10
        assert reconciler.prices.current("bread", "400", "tesco").unit_price == 0.55

    def test_other_users_list_rejected(self, db, reconciler):
        other = db.catalog.create_list("u2", "Theirs")
        db.catalog.add_list_item(other, "heinz beans", category="Tinned", estimated_price=1.15)
        receipt = _receipt([ReceiptLine(name="Heinz Beans 400g", unit_price=1.10)], list_id=other)

        with pytest.raises(NotFoundError):
            reconciler.ingest(receipt)
        assert _observation_count(db) == 0
        assert reconciler.queue.for_receipt("r1") == []

    def test_confirmation_teaches_next_receipt(self, db, reconciler, list_id):
        """A confirmed abbreviation auto-matches on the following receipt."""
        db.catalog.add_list_item(list_id, "Semi Skimmed Milk", category="Dairy", estimated_price=1.50)
        first = reconciler.ingest(_receipt([ReceiptLine(name="SEMI SKIM MILK")]))
        assert first.pending == 1
        reconciler.queue.confirm("u1", first.outcomes[0].match_id, 0)

        refill = db.catalog.add_list_item(list_id, "Semi Skimmed Milk", category="Dairy", estimated_price=1.50)
        second = reconciler.ingest(
            _receipt([ReceiptLine(name="SEMI SKIM MILK", unit_price=1.45)], id="r2")
        )

        assert second.auto_matched == 1
        assert second.outcomes[0].target == f"list:{refill.id}"
        mapping = db.matches.learned_mappings("u1").get("semi skim milk")
        assert mapping.confirmation_count == 2

    def test_unknown_store(self, db, reconciler, caplog):
        receipt = _receipt([ReceiptLine(name="Random Unbranded Snack", unit_price=0.50)], store="Corner Shop")

        with caplog.at_level(logging.WARNING, logger="oja.reconcile"):
            summary = reconciler.ingest(receipt)

        assert summary.store_id == "unknown"
        assert "Unrecognised store" in caplog.text


def test_resolve_store_id_uses_address():
    receipt = Receipt(id="r1", user_id="u1", store_name="Store 123", store_address="Tesco, High St")
    assert resolve_store_id(receipt) == "tesco"
    assert resolve_store_id(Receipt(id="r2", user_id="u1", store_name="")) == "unknown"


def test_receipt_from_dict():
    """OCR output in camelCase becomes a Receipt."""
    receipt = Receipt.from_dict({
        "id": "abc",
        "storeName": "ALDI",
        "purchaseDate": "2026-03-07T18:30:00Z",
        "listId": 4,
        "items": [
            {"name": "Bananas", "quantity": 6, "unitPrice": 0.15, "totalPrice": 0.90},
            {"name": "Bread", "totalPrice": 0.75, "category": "Bakery"},
        ],
    }, user_id="u1")

    assert receipt.user_id == "u1"
    assert receipt.store_name == "ALDI"
    assert receipt.purchased_at == SHOP_TIME
    assert receipt.list_id == 4
    assert receipt.lines[0].quantity == 6.0
    assert receipt.lines[0].unit_price == 0.15
    assert receipt.lines[1].quantity == 1.0
    assert receipt.lines[1].category == "Bakery"


def test_receipt_from_dict_loose_fields():
    """Nulls and numbers from OCR are coerced to the line's types."""
    receipt = Receipt.from_dict({
        "id": 7,
        "storeName": "Tesco",
        "items": [
            {"name": "Heinz Beans", "unitPrice": "1.10", "size": 400, "confidence": None},
            {"name": "Bread", "size": "  ", "quantity": None, "category": None},
        ],
    }, user_id="u1")

    assert receipt.id == "7"
    assert receipt.lines[0].unit_price == 1.10
    assert receipt.lines[0].size == "400"
    assert receipt.lines[0].confidence == 1.0
    assert receipt.lines[1].size == ""
    assert receipt.lines[1].quantity == 1.0
    assert receipt.lines[1].category == ""


@pytest.mark.parametrize("data", [
    {"storeName": "Tesco", "items": []},
    {"id": "r1", "purchaseDate": "last tuesday"},
    {"id": "r1", "items": [{"name": "Bread", "unitPrice": "cheap"}]},
    {"id": "r1", "items": "Bread"},
    ["not", "a", "receipt"],
])
def test_receipt_from_dict_malformed(data):
    with pytest.raises(ValidationError):
        Receipt.from_dict(data, user_id="u1")


class TestDedupAndCompare:
    def test_dedup_plan_then_apply(self, db, reconciler):
        keep = db.catalog.add_pantry_item("u1", "Milk", last_price=1.45, price_source="receipt", purchase_count=5)
        drop = db.catalog.add_pantry_item("u1", "milk", last_price=1.20, price_source="ai_estimate", purchase_count=12)

        plans = reconciler.dedup_pantry("u1")
        assert [(p.kept_id, p.delete_ids) for p in plans] == [(keep.id, [drop.id])]
        assert db.catalog.get_pantry_item(drop.id).status == "active"

        reconciler.dedup_pantry("u1", apply=True)
        assert db.catalog.get_pantry_item(drop.id).merged_into == keep.id
        assert reconciler.dedup_pantry("u1") == []

    def test_compare(self, reconciler):
        prices = reconciler.prices
        prices.observe("Milk", "2pt", "tesco", 1.45, SHOP_TIME)
        prices.observe("Milk", "4pt", "tesco", 2.50, SHOP_TIME)
        prices.observe("Milk", "2 pints", "aldi", 1.30, SHOP_TIME)

        comparison = reconciler.compare("milk", paid_price=1.56, paid_store="waitrose", size="2 pints")

        assert comparison.matrix == {
            "aldi": {"2pt": 1.30, "4pt": None},
            "tesco": {"2pt": 1.45, "4pt": 2.50},
        }
        assert comparison.analysis.cheapest_per_size["2pt"].store_id == "aldi"
        assert comparison.analysis.best_value.store_id == "tesco"
        assert comparison.analysis.best_value.size == "4pt"
        assert comparison.saving.store_id == "aldi"
        assert comparison.estimate.store_id == "aldi"

    def test_compare_unknown_item(self, reconciler):
        comparison = reconciler.compare("caviar")
        assert comparison.matrix == {}
        assert comparison.analysis.best_value is None
        assert comparison.estimate is None
        assert comparison.saving is None
