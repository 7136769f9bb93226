"""Bulk journal import from CSV or JSON files."""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from tradeledger.domain.models import (
    CASH_ACTIONS,
    CASH_TICKER,
    ActionType,
    EntryMeta,
    Payment,
    PositionMode,
    utc_now_iso,
)
from tradeledger.errors import TradeLedgerError, ValidationError, format_amount
from tradeledger.ledger.journal import TradeActionEngine
from tradeledger.ledger.validation import TradeRequest
from tradeledger.state.store import IMPORT_DEDUPE, EntityStore

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]

META_TEXT_FIELDS = (
    "sector",
    "asset_class",
    "rationale",
    "time_horizon",
    "price_targets",
    "invalidation",
    "emotions",
    "confidence",
    "venue",
    "status",
    "reminders",
)
TRUE_VALUES = {"true", "1", "yes", "y"}
FALSE_VALUES = {"false", "0", "no", "n"}


@dataclass(frozen=True)
class NormalizedRecord:
    request: TradeRequest
    dedupe_hash: str
    source_index: int


@dataclass(frozen=True)
class RowError:
    index: int
    message: str


@dataclass
class ImportSummary:
    total: int = 0
    valid: int = 0
    created: int = 0
    failed: int = 0
    duplicates_existing: int = 0
    duplicates_in_file: int = 0
    dry_run: bool = False
    errors: list[RowError] = field(default_factory=list)
    preview: list[TradeRequest] = field(default_factory=list)
    journal_entry_ids: list[str] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return self.duplicates_existing + self.duplicates_in_file


def read_import_file(path: str | Path) -> list[dict[str, Any]]:
    """Load raw rows from a ``.csv`` file or a ``.json`` array / ``{"entries": [...]}``."""
    input_path = Path(path)
    suffix = input_path.suffix.lower()
    if suffix == ".csv":
        frame = pd.read_csv(input_path, dtype=str, keep_default_na=False, skipinitialspace=True)
        frame.columns = [str(column).strip() for column in frame.columns]
        return frame.to_dict(orient="records")
    if suffix == ".json":
        parsed = json.loads(input_path.read_text(encoding="utf-8"))
        if isinstance(parsed, list):
            return [dict(item) for item in parsed]
        if isinstance(parsed, dict) and isinstance(parsed.get("entries"), list):
            return [dict(item) for item in parsed["entries"]]
        raise ValueError("JSON file must be an array or { entries: [...] }")
    raise ValueError("Unsupported file type. Use .csv or .json")


def normalize_record(raw: RawRecord, source_index: int) -> NormalizedRecord:
    """Turn one raw import row into an engine request.

    Keys are matched case-insensitively with underscores ignored, so
    ``actionType``, ``action_type`` and ``ActionType`` are equivalent.
    """
    row = {_column_key(key): value for key, value in raw.items()}

    action_type = _action_type(row.get("actiontype"))
    entry_time = _entry_time(row.get("entrytime"))
    if action_type in CASH_ACTIONS:
        ticker = CASH_TICKER
    else:
        ticker = _text(row.get("ticker"))
        if not ticker:
            raise ValidationError("ticker is required")
        ticker = ticker.upper()

    quantity = _number(row.get("quantity"))
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be a positive number")

    position_id = _text(row.get("positionid"))
    position_mode = _position_mode(action_type, row.get("positionmode"), position_id)
    if position_mode is PositionMode.EXISTING and not position_id and action_type not in CASH_ACTIONS:
        raise ValidationError("positionId is required when positionMode is existing")

    if action_type in CASH_ACTIONS:
        price = 1.0
    else:
        price = _number(row.get("price"))
        if price is None or price < 0:
            raise ValidationError("price is required for non-cash actions")

    payment = None
    if action_type is ActionType.BUY:
        asset = _text(row.get("paymentasset"))
        amount = _number(row.get("paymentamount"))
        if not asset or amount is None:
            raise ValidationError("paymentAsset and paymentAmount are required for buy actions")
        payment = Payment(
            asset=asset.upper(),
            amount=amount,
            is_new_money=bool(_boolean(row.get("isnewmoney"))),
        )

    request = TradeRequest(
        action_type=action_type.value,
        ticker=ticker,
        quantity=quantity,
        price=price,
        entry_time=entry_time,
        position_mode=position_mode.value,
        position_id=position_id if position_mode is PositionMode.EXISTING else None,
        payment=payment,
        meta=_meta(row),
    )
    return NormalizedRecord(request=request, dedupe_hash=dedupe_hash(request), source_index=source_index)


def dedupe_hash(request: TradeRequest) -> str:
    payment = request.payment if isinstance(request.payment, Payment) else None
    parts = [
        request.entry_time,
        request.action_type,
        request.ticker,
        format_amount(request.quantity),
        format_amount(request.price),
        payment.asset if payment is not None else "",
        format_amount(payment.amount) if payment is not None else "",
        "true" if payment is not None and payment.is_new_money else "false",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class JournalImporter:
    """Feeds normalized rows through the trade action engine, once per row."""

    def __init__(self, store: EntityStore, engine: TradeActionEngine) -> None:
        self.store = store
        self.engine = engine

    def imported_hashes(self) -> set[str]:
        return set(self.store.read(IMPORT_DEDUPE))

    def run(self, raw_records: Iterable[RawRecord], dry_run: bool = False) -> ImportSummary:
        rows = list(raw_records)
        summary = ImportSummary(total=len(rows), dry_run=dry_run)
        already_imported = self.imported_hashes()
        seen: set[str] = set()
        pending: list[NormalizedRecord] = []

        for index, raw in enumerate(rows):
            try:
                record = normalize_record(raw, index)
            except ValidationError as exc:
                summary.errors.append(RowError(index=index, message=str(exc)))
                continue
            if record.dedupe_hash in seen:
                summary.duplicates_in_file += 1
                continue
            seen.add(record.dedupe_hash)
            if record.dedupe_hash in already_imported:
                summary.duplicates_existing += 1
                continue
            pending.append(record)

        pending.sort(key=lambda item: (pd.Timestamp(item.request.entry_time), item.source_index))
        summary.valid = len(pending)
        summary.preview = [record.request for record in pending[:5]]
        if dry_run:
            logger.info("dry run: %s of %s rows would be imported", len(pending), len(rows))
            return summary

        imported: dict[str, dict[str, Any]] = {}
        for record in pending:
            try:
                result = self.engine.create(record.request)
            except TradeLedgerError as exc:
                summary.failed += 1
                summary.errors.append(RowError(index=record.source_index, message=str(exc)))
                logger.warning("import row %s failed: %s", record.source_index + 1, exc)
                continue
            summary.created += 1
            summary.journal_entry_ids.append(result.journal_entry.id)
            imported[record.dedupe_hash] = {
                "id": record.dedupe_hash,
                "imported_at": utc_now_iso(),
                "journal_entry_id": result.journal_entry.id,
            }

        if imported:
            documents = self.store.read(IMPORT_DEDUPE)
            documents.update(imported)
            self.store.write(IMPORT_DEDUPE, documents)
        return summary


def _column_key(name: object) -> str:
    return str(name).strip().lower().replace("_", "").replace(" ", "")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or _text(value) is None:
        return None
    parsed = pd.to_numeric(str(value).strip(), errors="coerce")
    if pd.isna(parsed) or not math.isfinite(float(parsed)):
        return None
    return float(parsed)


def _boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    text = _text(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


def _action_type(value: Any) -> ActionType:
    raw = _text(value)
    if not raw:
        raise ValidationError("actionType is required")
    try:
        return ActionType(raw.lower())
    except ValueError as exc:
        raise ValidationError(f"Invalid actionType: {raw}") from exc


def _entry_time(value: Any) -> str:
    raw = _text(value)
    if not raw:
        raise ValidationError("entryTime is required")
    try:
        parsed = pd.to_datetime(raw, utc=True)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid entryTime: {raw}") from exc
    if pd.isna(parsed):
        raise ValidationError(f"Invalid entryTime: {raw}")
    return parsed.isoformat()


def _position_mode(action_type: ActionType, value: Any, position_id: str | None) -> PositionMode:
    raw = (_text(value) or "").lower()
    if raw in {item.value for item in PositionMode}:
        return PositionMode(raw)
    if position_id or action_type is ActionType.SELL:
        return PositionMode.EXISTING
    return PositionMode.NEW


def _related_entry_ids(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    text = _text(value)
    if not text:
        return []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return []
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]
        return []
    return [item.strip() for item in text.split(";") if item.strip()]


def _meta(row: Mapping[str, Any]) -> EntryMeta | None:
    values: dict[str, Any] = {}
    for name in META_TEXT_FIELDS:
        text = _text(row.get(_column_key(name)))
        if text is not None:
            values[name] = text
    fees = _number(row.get("fees"))
    if fees is not None:
        values["fees"] = fees
    related = _related_entry_ids(row.get("relatedentryids"))
    if related:
        values["related_entry_ids"] = related
    if not values:
        return None
    return EntryMeta.from_record(values)
