"""Core ledger domain models."""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol
from uuid import uuid4

CASH_TICKER = "USD"


class ActionType(StrEnum):
    """Trading actions recorded in the journal."""

    BUY = "buy"
    SELL = "sell"
    LONG = "long"
    SHORT = "short"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class PositionMode(StrEnum):
    """Whether an action opens a new position or targets an existing one."""

    NEW = "new"
    EXISTING = "existing"


class RelationType(StrEnum):
    """Supported relation edge types."""

    RELATED = "related"
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    CONTEXT = "context"


class AssetType(StrEnum):
    EQUITY = "equity"
    ETF = "etf"
    CRYPTO = "crypto"
    CASH = "cash"
    OTHER = "other"


CASH_ACTIONS = frozenset({ActionType.DEPOSIT, ActionType.WITHDRAW})
LEVERAGED_ACTIONS = frozenset({ActionType.LONG, ActionType.SHORT})
SPOT_TRADE_ACTIONS = frozenset({ActionType.BUY, ActionType.SELL})


def new_id() -> str:
    """Return an opaque unique entity id."""
    return uuid4().hex


def utc_now_iso() -> str:
    """Return current UTC time as an ISO-8601 string."""
    return datetime.now(tz=UTC).isoformat()


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 value into an aware UTC datetime.

    Naive values are taken to be UTC. Raises ``ValueError`` for unparseable text.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("timestamp is empty")
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_iso(value: str | datetime) -> str:
    """Normalize a timestamp to an absolute, sortable ISO-8601 UTC string."""
    return parse_timestamp(value).isoformat()


def is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class Archivable(Protocol):
    archived_at: str | None


def is_visible(entity: Archivable) -> bool:
    """Single visibility predicate for soft-deleted entities."""
    return entity.archived_at is None


def _split_record(cls: type, record: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a stored record into known dataclass fields and unknown extras."""
    names = {item.name for item in fields(cls) if item.name != "extra"}
    known: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in record.items():
        target = known if key in names else extra
        target[key] = copy.deepcopy(value)
    return known, extra


def _with_extra(record: dict[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(extra))
    merged.update(record)
    return merged


@dataclass(frozen=True)
class EntityRef:
    """Polymorphic pointer to another entity. Never owns the target."""

    type: str
    id: str

    def to_record(self) -> dict[str, str]:
        return {"type": self.type, "id": self.id}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> EntityRef:
        return cls(type=str(record.get("type", "")), id=str(record.get("id", "")))

    def key(self) -> tuple[str, str]:
        return (self.type, self.id)


@dataclass(frozen=True)
class ContextAnchor:
    """User-declared link from an entity to another, captured at creation time."""

    entity_type: str
    entity_id: str
    role: str | None = None

    def to_ref(self) -> EntityRef:
        return EntityRef(type=self.entity_type, id=self.entity_id)

    def to_record(self) -> dict[str, str]:
        record = {"entity_type": self.entity_type, "entity_id": self.entity_id}
        if self.role is not None:
            record["role"] = self.role
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> ContextAnchor:
        role = record.get("role")
        return cls(
            entity_type=str(record.get("entity_type", "")),
            entity_id=str(record.get("entity_id", "")),
            role=str(role) if role is not None else None,
        )


@dataclass(frozen=True)
class Payment:
    """How a buy was funded."""

    asset: str
    amount: float
    is_new_money: bool = False

    def to_record(self) -> dict[str, Any]:
        return {"asset": self.asset, "amount": self.amount, "is_new_money": self.is_new_money}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Payment:
        return cls(
            asset=str(record.get("asset", "")),
            amount=float(record.get("amount", 0.0)),
            is_new_money=bool(record.get("is_new_money", False)),
        )


@dataclass(frozen=True)
class EntryMeta:
    """Optional annotations attached to a journal entry."""

    rationale: str | None = None
    fees: float | None = None
    venue: str | None = None
    sector: str | None = None
    asset_class: str | None = None
    time_horizon: str | None = None
    price_targets: str | None = None
    invalidation: str | None = None
    emotions: str | None = None
    confidence: str | None = None
    status: str | None = None
    reminders: str | None = None
    related_entry_ids: list[str] = field(default_factory=list)
    context_anchors: list[ContextAnchor] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for item in fields(self):
            if item.name in {"extra", "related_entry_ids", "context_anchors"}:
                continue
            value = getattr(self, item.name)
            if value is not None:
                record[item.name] = value
        if self.related_entry_ids:
            record["related_entry_ids"] = list(self.related_entry_ids)
        if self.context_anchors:
            record["context_anchors"] = [anchor.to_record() for anchor in self.context_anchors]
        return _with_extra(record, self.extra)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> EntryMeta:
        known, extra = _split_record(cls, record)
        anchors = [
            item if isinstance(item, ContextAnchor) else ContextAnchor.from_record(item)
            for item in known.pop("context_anchors", [])
        ]
        related = [str(item) for item in known.pop("related_entry_ids", [])]
        return cls(**known, related_entry_ids=related, context_anchors=anchors, extra=extra)


@dataclass(frozen=True)
class Position:
    """Per-position average-cost state."""

    id: str
    ticker: str
    quantity: float
    avg_cost: float
    created_at: str
    updated_at: str
    asset_type: str | None = None
    currency: str = "USD"
    current_price: float | None = None
    opened_at: str | None = None
    closed_at: str | None = None
    archived_at: str | None = None
    leverage: str | None = None
    name: str | None = None
    notes: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None and self.quantity > 0

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.avg_cost

    def ref(self) -> EntityRef:
        return EntityRef(type="position", id=self.id)

    def to_record(self) -> dict[str, Any]:
        record = {
            "id": self.id,
            "ticker": self.ticker,
            "quantity": self.quantity,
            "avg_cost": self.avg_cost,
            "currency": self.currency,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        optional = {
            "asset_type": self.asset_type,
            "current_price": self.current_price,
            "opened_at": self.opened_at,
            "closed_at": self.closed_at,
            "archived_at": self.archived_at,
            "leverage": self.leverage,
            "name": self.name,
            "notes": self.notes,
        }
        record.update({key: value for key, value in optional.items() if value is not None})
        if self.meta:
            record["meta"] = copy.deepcopy(self.meta)
        return _with_extra(record, self.extra)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Position:
        known, extra = _split_record(cls, record)
        return cls(**known, extra=extra)


@dataclass(frozen=True)
class JournalEntry:
    """Immutable record of one executed trading action."""

    id: str
    action_type: ActionType
    ticker: str
    quantity: float
    price: float
    entry_time: str
    position_mode: PositionMode
    position_id: str
    created_at: str
    updated_at: str
    payment: Payment | None = None
    meta: EntryMeta | None = None
    supersedes: str | None = None
    superseded_by: str | None = None
    archived_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def fees(self) -> float | None:
        return self.meta.fees if self.meta is not None else None

    def ref(self) -> EntityRef:
        return EntityRef(type="journal", id=self.id)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "action_type": self.action_type.value,
            "ticker": self.ticker,
            "quantity": self.quantity,
            "price": self.price,
            "entry_time": self.entry_time,
            "position_mode": self.position_mode.value,
            "position_id": self.position_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.payment is not None:
            record["payment"] = self.payment.to_record()
        if self.meta is not None:
            record["meta"] = self.meta.to_record()
        for key in ("supersedes", "superseded_by", "archived_at"):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        return _with_extra(record, self.extra)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> JournalEntry:
        known, extra = _split_record(cls, record)
        payment = known.pop("payment", None)
        meta = known.pop("meta", None)
        known["action_type"] = ActionType(known["action_type"])
        known["position_mode"] = PositionMode(known["position_mode"])
        return cls(
            **known,
            payment=Payment.from_record(payment) if payment is not None else None,
            meta=EntryMeta.from_record(meta) if meta is not None else None,
            extra=extra,
        )


@dataclass(frozen=True)
class RelationEdge:
    """Directed, typed edge between two entity references."""

    id: str
    from_ref: EntityRef
    to_ref: EntityRef
    relation_type: RelationType
    created_at: str
    updated_at: str
    archived_at: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def triple(self) -> tuple[tuple[str, str], tuple[str, str], str]:
        return (self.from_ref.key(), self.to_ref.key(), self.relation_type.value)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "from_ref": self.from_ref.to_record(),
            "to_ref": self.to_ref.to_record(),
            "relation_type": self.relation_type.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.archived_at is not None:
            record["archived_at"] = self.archived_at
        if self.meta:
            record["meta"] = copy.deepcopy(self.meta)
        return _with_extra(record, self.extra)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RelationEdge:
        known, extra = _split_record(cls, record)
        known["from_ref"] = EntityRef.from_record(known["from_ref"])
        known["to_ref"] = EntityRef.from_record(known["to_ref"])
        known["relation_type"] = RelationType(known["relation_type"])
        return cls(**known, extra=extra)
