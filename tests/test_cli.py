"""Tests for the command line interface."""

import json

import pytest

from oja.cli import main
from oja.db import Database


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "cli.db"
    monkeypatch.setenv("OJA_DB_PATH", str(path))
    db = Database(path)
    list_id = db.catalog.create_list("u1", "Weekly shop")
    db.catalog.add_list_item(list_id, "heinz beans", category="Tinned", estimated_price=1.15)
    db.close()
    return path


@pytest.fixture
def receipt_file(tmp_path):
    path = tmp_path / "receipt.json"
    path.write_text(json.dumps({
        "id": "r1",
        "storeName": "TESCO EXPRESS",
        "purchaseDate": "2026-03-07T18:30:00Z",
        "items": [
            {"name": "Heinz Beans 400g", "unitPrice": 1.10},
            {"name": "Semi Skim Milk", "unitPrice": 1.45},
        ],
    }), encoding="utf-8")
    return path


def _run_json(capsys, argv):
    main(argv)
    return json.loads(capsys.readouterr().out)


def test_no_command_exits(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1


def test_stores_json(capsys):
    stores = _run_json(capsys, ["stores", "--json"])
    assert stores[0]["id"] == "tesco"
    assert {"aldi", "lidl", "marks"} <= {s["id"] for s in stores}


def test_ingest_review_confirm(capsys, db_path, receipt_file):
    """A receipt goes through auto-match, review and confirmation."""
    summary = _run_json(capsys, ["ingest", str(receipt_file), "--user", "u1", "--json"])
    assert summary["store_id"] == "tesco"
    assert summary["auto_matched"] == 1
    assert summary["pending"] == 1

    review = _run_json(capsys, ["review", "r1", "--json"])
    assert (review["resolved"], review["total"]) == (0, 1)
    match = review["matches"][0]
    assert match["line"]["name"] == "Semi Skim Milk"
    assert match["candidates"] == []

    main([
        "confirm", str(match["id"]), "--user", "u1",
        "--new", "Semi Skimmed Milk", "--category", "Dairy",
    ])
    out = capsys.readouterr().out
    assert "[confirmed]" in out
    assert "Semi Skimmed Milk" in out

    review = _run_json(capsys, ["review", "r1", "--json"])
    assert review["resolved"] == 1
    assert review["matches"][0]["status"] == "confirmed"


def test_compare_json(capsys, db_path, receipt_file):
    main(["ingest", str(receipt_file), "--user", "u1"])
    capsys.readouterr()

    result = _run_json(capsys, ["compare", "Heinz Beans", "--json"])
    assert result["matrix"] == {"tesco": {"each": 1.10}}
    assert result["cheapest_per_size"]["each"]["store_id"] == "tesco"
    assert result["best_value"] is None
    assert result["saving"] is None


def test_compare_unknown_item(capsys, db_path):
    main(["compare", "caviar"])
    assert "No prices recorded" in capsys.readouterr().out


def test_confirm_unknown_match(capsys, db_path):
    with pytest.raises(SystemExit) as exc:
        main(["confirm", "999", "--user", "u1", "--candidate", "1"])
    assert exc.value.code == 1
    assert "error:" in capsys.readouterr().err


def test_dedup_dry_run(capsys, db_path):
    db = Database(db_path)
    db.catalog.add_pantry_item("u1", "Milk", last_price=1.45, price_source="receipt")
    db.catalog.add_pantry_item("u1", "milk", purchase_count=4)
    db.close()

    main(["dedup", "--user", "u1"])
    assert "Would merge" in capsys.readouterr().out

    plans = _run_json(capsys, ["dedup", "--user", "u1", "--apply", "--json"])
    assert len(plans) == 1
    assert plans[0]["updates"]["purchase_count"] == 4


@pytest.mark.parametrize("content", [
    '{"id": "r1", "purchaseDate": "yesterday", "items": []}',
    '{"id": "r1", "items": [{"name": "Bread", "confidence": null, "unitPrice": "x"}]}',
    '{"id": "r1", "items": [',
])
def test_ingest_malformed_receipt(capsys, db_path, tmp_path, content):
    """A bad receipt file is reported as an error, not a traceback."""
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        main(["ingest", str(path), "--user", "u1"])
    assert exc.value.code == 1
    assert "error:" in capsys.readouterr().err
