"""Runtime wiring and command actions."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from tradeledger.config import Settings
from tradeledger.data.journal_import import ImportSummary, JournalImporter, read_import_file
from tradeledger.errors import TradeLedgerError
from tradeledger.ledger.events import EventLog
from tradeledger.ledger.journal import TradeActionEngine, TradeResult
from tradeledger.ledger.pnl import PnlCalculator
from tradeledger.ledger.positions import PositionLedger
from tradeledger.ledger.relations import RelationGraph
from tradeledger.ledger.validation import TradeRequest
from tradeledger.logging.logger import HumanLogger
from tradeledger.logging.report import export_events_jsonl, generate_history_report
from tradeledger.state.json_store import JsonFileEntityStore
from tradeledger.state.sqlite_store import SqliteEntityStore
from tradeledger.state.store import EntityStore, InMemoryEntityStore


@dataclass(frozen=True)
class Services:
    """Ledger services sharing one entity store."""

    store: EntityStore
    events: EventLog
    relations: RelationGraph
    positions: PositionLedger
    journal: TradeActionEngine
    pnl: PnlCalculator
    importer: JournalImporter


def build_store(settings: Settings) -> EntityStore:
    """Select entity store implementation from the configured backend."""
    if settings.store_backend == "sqlite":
        return SqliteEntityStore(settings.state_db_path)
    if settings.store_backend == "memory":
        return InMemoryEntityStore()
    return JsonFileEntityStore(settings.store_path)


def build_services(store: EntityStore) -> Services:
    events = EventLog(store)
    relations = RelationGraph(store, events)
    positions = PositionLedger(store)
    journal = TradeActionEngine(store, positions, relations, events)
    return Services(
        store=store,
        events=events,
        relations=relations,
        positions=positions,
        journal=journal,
        pnl=PnlCalculator(positions, journal),
        importer=JournalImporter(store, journal),
    )


@contextmanager
def open_services(settings: Settings) -> Iterator[Services]:
    store = build_store(settings)
    try:
        yield build_services(store)
    finally:
        store.close()


def record_trade(settings: Settings, request: TradeRequest) -> int:
    """Validate and record one trading action."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            result = services.journal.create(request)
    except TradeLedgerError as exc:
        human_logger.rejected(request.action_type, request.ticker, str(exc))
        return 1
    _log_trade(human_logger, result)
    return 0


def replace_trade(settings: Settings, entry_id: str, request: TradeRequest) -> int:
    """Archive a journal entry and record its replacement."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            result = services.journal.replace(entry_id, request)
    except TradeLedgerError as exc:
        human_logger.rejected(request.action_type, request.ticker, str(exc))
        return 1
    _log_trade(human_logger, result)
    human_logger.replaced(entry_id, result.journal_entry.id)
    return 0


def import_journal(settings: Settings, path: str, dry_run: bool = False) -> int:
    """Import journal rows from a CSV or JSON file."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        raw_records = read_import_file(path)
    except (OSError, ValueError) as exc:
        human_logger.error(f"Failed to read import file: {exc}")
        return 1
    try:
        with open_services(settings) as services:
            summary = services.importer.run(raw_records, dry_run=dry_run)
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1
    _log_import(human_logger, summary)
    return 0 if not summary.errors else 1


def show_portfolio(settings: Settings, status: str = "open") -> int:
    """Log positions and portfolio totals, then exit."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            view = services.pnl.portfolio_view(status)
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1

    for row in view.positions:
        position = row.position
        human_logger.position(
            position.ticker,
            position.quantity,
            position.avg_cost,
            current_price=position.current_price,
            unrealized_pnl=row.pnl.unrealized,
            leverage=position.leverage,
        )
    totals = view.totals
    human_logger.portfolio(
        totals.position_count,
        totals.total_cost_basis,
        totals.total_value,
        totals.realized_pnl,
        totals.combined_pnl,
    )
    return 0


def show_history(settings: Settings, report: bool = False) -> int:
    """Replay the journal into snapshots; optionally write the HTML report."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            snapshots = services.pnl.historical_snapshots()
            frame = services.pnl.history_frame() if report else None
            events = services.events.list(include_archived=True) if report else []
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1

    for snapshot in snapshots:
        human_logger.snapshot(
            snapshot.at,
            snapshot.ticker,
            snapshot.cost_basis,
            snapshot.cumulative_realized_pnl,
        )
    if frame is not None:
        reports_dir = Path(settings.reports_dir)
        export_events_jsonl(events, reports_dir / "events.jsonl")
        generate_history_report(frame, events, reports_dir / "history.html")
    return 0


def set_price(settings: Settings, position_id: str, price: float) -> int:
    """Store a user-supplied current price on a position."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            position = services.positions.set_current_price(position_id, price)
            unrealized = services.pnl.unrealized(position)
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1
    human_logger.position(
        position.ticker,
        position.quantity,
        position.avg_cost,
        current_price=position.current_price,
        unrealized_pnl=unrealized,
        leverage=position.leverage,
    )
    return 0


def close_position(settings: Settings, position_id: str, at: str | None = None) -> int:
    """Explicitly close a position."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            position = services.positions.close(position_id, at)
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1
    human_logger.position(position.ticker, position.quantity, position.avg_cost)
    return 0


def list_events(settings: Settings, event_type: str | None = None, limit: int = 20) -> int:
    """Log the most recent events, newest first."""
    human_logger = HumanLogger(level=settings.log_level)
    try:
        with open_services(settings) as services:
            if event_type:
                events = services.events.list_by_type(event_type)
            else:
                events = services.events.list()
    except TradeLedgerError as exc:
        human_logger.error(str(exc))
        return 1
    for event in events[: max(0, limit)]:
        human_logger.event(event.type, event.at, len(event.refs))
    return 0


def _log_trade(human_logger: HumanLogger, result: TradeResult) -> None:
    entry = result.journal_entry
    human_logger.trade(
        entry.action_type.value,
        entry.ticker,
        entry.quantity,
        entry.price,
        entry_time=entry.entry_time,
        cash_deducted=result.cash_deducted,
    )
    human_logger.derived(entry.id, len(result.derived.created), result.derived.skipped)


def _log_import(human_logger: HumanLogger, summary: ImportSummary) -> None:
    for error in summary.errors[:5]:
        human_logger.error(f"row {error.index + 1}: {error.message}")
    human_logger.import_summary(
        summary.total,
        summary.created,
        summary.duplicates,
        len(summary.errors),
        dry_run=summary.dry_run,
    )
