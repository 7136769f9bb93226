"""Command-line interface for the trade ledger."""

from __future__ import annotations

import argparse
import sys
from typing import Any

from tradeledger.config import STORE_BACKENDS, Settings
from tradeledger.domain.models import CASH_ACTIONS, ActionType, utc_now_iso
from tradeledger.ledger.validation import TradeRequest
from tradeledger.runtime import (
    close_position,
    import_journal,
    list_events,
    record_trade,
    replace_trade,
    set_price,
    show_history,
    show_portfolio,
)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(description="Trade journal and position ledger")
    parser.add_argument("--backend", choices=list(STORE_BACKENDS), help="Entity store backend")
    parser.add_argument("--store", type=str, help="Store file (JSON) or database (SQLite) path")
    parser.add_argument(
        "--log-level",
        type=str,
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Record one trading action")
    _add_trade_arguments(record)

    replace = commands.add_parser("replace", help="Replace a journal entry with a corrected one")
    replace.add_argument("entry_id", help="Journal entry to supersede")
    _add_trade_arguments(replace)

    importer = commands.add_parser("import", help="Import journal rows from CSV or JSON")
    importer.add_argument("file", help="Path to a .csv or .json file")
    importer.add_argument("--dry-run", action="store_true", help="Validate without writing")

    portfolio = commands.add_parser("portfolio", help="Show positions and P&L totals")
    portfolio.add_argument("--status", choices=["open", "closed", "all"], default="open")

    history = commands.add_parser("history", help="Replay the journal into value snapshots")
    history.add_argument(
        "--report",
        action="store_true",
        help="Also write an HTML report and events JSONL under the reports directory",
    )

    price = commands.add_parser("set-price", help="Set a position's current price")
    price.add_argument("position_id")
    price.add_argument("price", type=float)

    close = commands.add_parser("close", help="Explicitly close a position")
    close.add_argument("position_id")
    close.add_argument("--at", type=str, help="Close time (ISO-8601); defaults to now")

    events = commands.add_parser("events", help="List recent events")
    events.add_argument("--type", dest="event_type", type=str, help="Only this event type")
    events.add_argument("--limit", type=int, default=20)
    return parser


def _add_trade_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--action", required=True, choices=[item.value for item in ActionType])
    parser.add_argument("--ticker", type=str, default="", help="Ticker; ignored for cash actions")
    parser.add_argument("--quantity", type=float, required=True)
    parser.add_argument("--price", type=float, help="Unit price; fixed at 1 for cash actions")
    parser.add_argument("--time", type=str, help="Entry time (ISO-8601); defaults to now")
    parser.add_argument("--mode", choices=["new", "existing"], default="new")
    parser.add_argument("--position-id", type=str)
    parser.add_argument("--payment-asset", type=str)
    parser.add_argument("--payment-amount", type=float)
    parser.add_argument("--new-money", action="store_true", help="Payment is newly added money")
    parser.add_argument("--rationale", type=str)
    parser.add_argument("--fees", type=float)
    parser.add_argument(
        "--anchor",
        action="append",
        default=[],
        metavar="TYPE:ID[:ROLE]",
        help="Context anchor to link from the journal entry (repeatable)",
    )


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply CLI values onto environment-derived settings."""
    overrides: dict[str, object] = {}
    if args.backend:
        overrides["store_backend"] = args.backend
    if args.log_level:
        overrides["log_level"] = args.log_level
    merged = settings.with_overrides(**overrides)
    if args.store:
        if merged.store_backend == "sqlite":
            merged = merged.with_overrides(state_db_path=args.store)
        elif merged.store_backend == "json":
            merged = merged.with_overrides(store_path=args.store)
        else:
            raise ValueError("--store is not used by the memory backend")
    return merged


def build_trade_request(args: argparse.Namespace) -> TradeRequest:
    """Translate parsed trade arguments into an engine request."""
    action = ActionType(args.action)
    if action in CASH_ACTIONS:
        price = 1.0
    elif args.price is None:
        raise ValueError(f"--price is required for {action.value}")
    else:
        price = args.price

    payment = None
    if args.payment_asset or args.payment_amount is not None:
        payment = {
            "asset": args.payment_asset or "",
            "amount": args.payment_amount,
            "is_new_money": args.new_money,
        }

    meta: dict[str, Any] = {}
    if args.rationale:
        meta["rationale"] = args.rationale
    if args.fees is not None:
        meta["fees"] = args.fees
    anchors = [parse_anchor(value) for value in args.anchor]
    if anchors:
        meta["context_anchors"] = anchors

    return TradeRequest(
        action_type=action.value,
        ticker=args.ticker,
        quantity=args.quantity,
        price=price,
        entry_time=args.time or utc_now_iso(),
        position_mode=args.mode,
        position_id=args.position_id,
        payment=payment,
        meta=meta or None,
    )


def parse_anchor(value: str) -> dict[str, str]:
    """Parse ``TYPE:ID[:ROLE]`` into a context anchor record."""
    parts = [part.strip() for part in value.split(":", 2)]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid anchor '{value}'. Expected TYPE:ID[:ROLE]")
    anchor = {"entity_type": parts[0], "entity_id": parts[1]}
    if len(parts) == 3 and parts[2]:
        anchor["role"] = parts[2]
    return anchor


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = apply_cli_overrides(Settings.from_env(), args)
        request = build_trade_request(args) if args.command in {"record", "replace"} else None
    except ValueError as exc:
        print(f"Configuration error: {exc}")
        return 2

    if args.command == "record":
        return record_trade(settings, request)
    if args.command == "replace":
        return replace_trade(settings, args.entry_id, request)
    if args.command == "import":
        return import_journal(settings, args.file, dry_run=args.dry_run)
    if args.command == "portfolio":
        return show_portfolio(settings, status=args.status)
    if args.command == "history":
        return show_history(settings, report=args.report)
    if args.command == "set-price":
        return set_price(settings, args.position_id, args.price)
    if args.command == "close":
        return close_position(settings, args.position_id, at=args.at)
    return list_events(settings, event_type=args.event_type, limit=args.limit)


if __name__ == "__main__":
    sys.exit(main())
