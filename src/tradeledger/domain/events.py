"""Append-only event log records."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .models import EntityRef, _split_record, _with_extra

TRADE_EVENT_PREFIX = "trade."
RELATION_DERIVED = "relation.derived"
JOURNAL_REPLACED = "journal.replaced"


def trade_event_type(action_type: str) -> str:
    return f"{TRADE_EVENT_PREFIX}{action_type}"


@dataclass(frozen=True)
class Event:
    """Single domain occurrence referencing zero or more entities."""

    id: str
    type: str
    at: str
    refs: list[EntityRef]
    created_at: str
    updated_at: str
    payload: dict[str, Any] = field(default_factory=dict)
    archived_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def references(self, ref: EntityRef) -> bool:
        return any(item.key() == ref.key() for item in self.refs)

    def to_record(self) -> dict[str, Any]:
        """Convert event to serializable dict."""
        record: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "at": self.at,
            "refs": [ref.to_record() for ref in self.refs],
            "payload": copy.deepcopy(self.payload),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.archived_at is not None:
            record["archived_at"] = self.archived_at
        return _with_extra(record, self.extra)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Event:
        known, extra = _split_record(cls, record)
        known["refs"] = [EntityRef.from_record(item) for item in known.get("refs", [])]
        known["payload"] = dict(known.get("payload") or {})
        return cls(**known, extra=extra)
