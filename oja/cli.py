"""CLI entry point for receipt reconciliation and price comparison."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from dotenv import load_dotenv

from .config import load_config
from .db import Database
from .errors import OjaError, ValidationError
from .matching.matcher import describe_reasons
from .models import NewItem, PendingMatch, Receipt, line_price
from .reconcile import Reconciler
from .stores import all_stores, normalize_store_name, store_display_name


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="oja",
        description="Reconcile shopping receipts with your lists, pantry and price history",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to a TOML config file",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    # stores
    stores_parser = sub.add_parser("stores", help="List known stores")
    stores_parser.add_argument("--json", action="store_true", help="Output JSON")

    # ingest
    ingest_parser = sub.add_parser("ingest", help="Match a receipt JSON file")
    ingest_parser.add_argument("receipt", type=str, help="Receipt JSON file")
    ingest_parser.add_argument("--user", type=str, default=None, help="User id")
    ingest_parser.add_argument("--list", type=int, default=None, dest="list_id",
                               help="Shopping list the receipt belongs to")
    ingest_parser.add_argument("--json", action="store_true", help="Output JSON")

    # review
    review_parser = sub.add_parser("review", help="Show pending matches for a receipt")
    review_parser.add_argument("receipt_id", type=str)
    review_parser.add_argument("--json", action="store_true", help="Output JSON")

    # confirm
    confirm_parser = sub.add_parser("confirm", help="Confirm a pending match")
    confirm_parser.add_argument("match_id", type=int)
    confirm_parser.add_argument("--user", type=str, required=True)
    choice = confirm_parser.add_mutually_exclusive_group(required=True)
    choice.add_argument("--candidate", type=int, help="Candidate number (from 1)")
    choice.add_argument("--new", type=str, metavar="NAME", help="Create a new item")
    confirm_parser.add_argument("--category", type=str, default="",
                                help="Category for --new")

    # skip / no-match
    for name, help_text in (
        ("skip", "Skip a pending match"),
        ("no-match", "Mark a pending match as having no counterpart"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("match_id", type=int)
        p.add_argument("--user", type=str, required=True)

    # skip-all
    skip_all_parser = sub.add_parser("skip-all", help="Skip every pending match on a receipt")
    skip_all_parser.add_argument("receipt_id", type=str)
    skip_all_parser.add_argument("--user", type=str, required=True)

    # dedup
    dedup_parser = sub.add_parser("dedup", help="Find duplicate pantry items")
    dedup_parser.add_argument("--user", type=str, required=True)
    dedup_parser.add_argument("--apply", action="store_true", help="Merge the duplicates")
    dedup_parser.add_argument("--json", action="store_true", help="Output JSON")

    # compare
    compare_parser = sub.add_parser("compare", help="Compare an item's prices across stores")
    compare_parser.add_argument("item", type=str)
    compare_parser.add_argument("--paid", type=float, default=None, help="Price you paid")
    compare_parser.add_argument("--store", type=str, default=None, help="Store you paid it at")
    compare_parser.add_argument("--size", type=str, default=None, help="Size you bought")
    compare_parser.add_argument("--json", action="store_true", help="Output JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "stores":
        _cmd_stores(args)
        return

    config = load_config(args.config)
    db = Database(config.database.path)
    reconciler = Reconciler(db, config)
    try:
        match args.command:
            case "ingest":
                _cmd_ingest(reconciler, args)
            case "review":
                _cmd_review(reconciler, args)
            case "confirm":
                _cmd_confirm(reconciler, args)
            case "skip":
                _print_match(reconciler.queue.skip(args.user, args.match_id))
            case "no-match":
                _print_match(reconciler.queue.no_match(args.user, args.match_id))
            case "skip-all":
                count = reconciler.queue.skip_all(args.user, args.receipt_id)
                print(f"Skipped {count} match(es)")
            case "dedup":
                _cmd_dedup(reconciler, args)
            case "compare":
                _cmd_compare(reconciler, args)
    except OjaError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


def _cmd_stores(args) -> None:
    stores = all_stores()
    if args.json:
        print(json.dumps([asdict(s) for s in stores], ensure_ascii=False, indent=2))
        return
    for s in stores:
        print(f"  {s.id:<24} {s.display_name:<22} {s.type:<12} {s.market_share:>5}%")


def _cmd_ingest(reconciler: Reconciler, args) -> None:
    try:
        data = json.loads(Path(args.receipt).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"{args.receipt} is not valid JSON: {e}") from e
    if args.list_id is not None and isinstance(data, dict):
        data["list_id"] = args.list_id
    receipt = Receipt.from_dict(data, user_id=args.user)
    if not receipt.user_id:
        print("error: receipt has no user; pass --user", file=sys.stderr)
        sys.exit(1)

    summary = reconciler.ingest(receipt)
    if args.json:
        payload = asdict(summary)
        payload.update(
            total_lines=summary.total_lines,
            auto_matched=summary.auto_matched,
            pending=summary.pending,
        )
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    print(f"Receipt {summary.receipt_id} at {store_display_name(summary.store_id)}")
    print(
        f"  {summary.total_lines} line(s): {summary.auto_matched} auto-matched, "
        f"{summary.pending} to review"
    )
    for o in summary.outcomes:
        detail = o.target or (f"match #{o.match_id}" if o.match_id else "")
        print(f"  [{o.status:<15}] {o.name:<30} {detail}")


def _cmd_review(reconciler: Reconciler, args) -> None:
    matches = reconciler.queue.for_receipt(args.receipt_id)
    resolved, total = reconciler.queue.progress(args.receipt_id)
    if args.json:
        data = {
            "resolved": resolved,
            "total": total,
            "matches": [_match_dict(m) for m in matches],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not matches:
        print("No matches for this receipt.")
        return
    print(f"Reviewed {resolved} of {total}")
    for m in matches:
        _print_match(m)


def _cmd_confirm(reconciler: Reconciler, args) -> None:
    if args.new is not None:
        choice = NewItem(args.new, args.category)
    else:
        choice = args.candidate - 1
    _print_match(reconciler.queue.confirm(args.user, args.match_id, choice))


def _cmd_dedup(reconciler: Reconciler, args) -> None:
    plans = reconciler.dedup_pantry(args.user, apply=args.apply)
    if args.json:
        print(json.dumps([asdict(p) for p in plans], ensure_ascii=False, indent=2, default=str))
        return
    if not plans:
        print("No duplicates found.")
        return
    verb = "Merged" if args.apply else "Would merge"
    for p in plans:
        print(f"  {verb}: {p.reason} (remove {', '.join(f'#{i}' for i in p.delete_ids)})")


def _cmd_compare(reconciler: Reconciler, args) -> None:
    store = (normalize_store_name(args.store) or args.store) if args.store else None
    result = reconciler.compare(args.item, args.paid, store, args.size)
    analysis = result.analysis
    if args.json:
        data = {
            "item": result.item,
            "matrix": result.matrix,
            "cheapest_per_size": {k: asdict(v) for k, v in analysis.cheapest_per_size.items()},
            "best_value": asdict(analysis.best_value) if analysis.best_value else None,
            "estimate": asdict(result.estimate) if result.estimate else None,
            "saving": asdict(result.saving) if result.saving else None,
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not result.matrix:
        print(f"No prices recorded for {args.item!r}.")
        return
    sizes = sorted({size for row in result.matrix.values() for size in row})
    print(f"{'store':<22}" + "".join(f"{s:>10}" for s in sizes))
    for store_id, row in result.matrix.items():
        cells = "".join(
            f"{row.get(s):>10.2f}" if row.get(s) is not None else f"{'-':>10}" for s in sizes
        )
        print(f"{store_display_name(store_id):<22}{cells}")
    for size, cell in analysis.cheapest_per_size.items():
        print(f"  Cheapest {size}: {store_display_name(cell.store_id)} £{cell.price:.2f}")
    if analysis.best_value:
        bv = analysis.best_value
        print(
            f"  Best value: {bv.size} at {store_display_name(bv.store_id)} "
            f"(£{bv.price:.2f})"
        )
    if result.saving:
        s = result.saving
        print(
            f"  You could save £{s.saving:.2f} ({s.percent}%) at "
            f"{store_display_name(s.store_id)}"
        )


def _match_dict(m: PendingMatch) -> dict:
    return {
        "id": m.id,
        "sequence": m.sequence,
        "line": asdict(m.line),
        "store_id": m.store_id,
        "status": m.status.value,
        "confirmed_target": m.confirmed_target,
        "confirmed_name": m.confirmed_name,
        "candidates": [
            {**c.to_dict(), "labels": describe_reasons(c.reasons)} for c in m.candidates
        ],
    }


def _print_match(m: PendingMatch) -> None:
    price = line_price(m.line)
    shown = f"£{price:.2f}" if price is not None else "no price"
    print(f"#{m.id} [{m.status.value}] {m.line.name} {shown}")
    if m.confirmed_name:
        print(f"    → {m.confirmed_name} ({m.confirmed_target})")
    for i, c in enumerate(m.candidates, 1):
        labels = ", ".join(describe_reasons(c.reasons))
        print(f"    {i}. {c.name:<28} {c.score:5.1f}  {labels}")
