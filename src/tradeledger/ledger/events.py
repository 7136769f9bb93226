"""Append-only event log."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from tradeledger.domain.events import Event
from tradeledger.domain.models import EntityRef, new_id, parse_timestamp, to_iso, utc_now_iso
from tradeledger.errors import InvalidEvent
from tradeledger.ledger.repository import Repository
from tradeledger.state.store import EVENTS, EntityStore

logger = logging.getLogger(__name__)


class EventLog:
    """Records domain occurrences. Events are never mutated or deleted."""

    def __init__(self, store: EntityStore) -> None:
        self.repository: Repository[Event] = Repository(store, EVENTS, "Event", Event.from_record)

    def append(
        self,
        event_type: str,
        refs: Sequence[EntityRef],
        payload: Mapping[str, Any] | None = None,
        at: str | None = None,
    ) -> Event:
        if not isinstance(event_type, str) or not event_type.strip():
            raise InvalidEvent("Event type is required")
        if isinstance(refs, (str, bytes)) or not all(isinstance(ref, EntityRef) for ref in refs):
            raise InvalidEvent("Event refs must be a sequence of EntityRef")
        now = utc_now_iso()
        try:
            event_at = to_iso(at) if at else now
        except ValueError as exc:
            raise InvalidEvent(f"Invalid event time: {at!r}") from exc
        event = Event(
            id=new_id(),
            type=event_type.strip(),
            at=event_at,
            refs=list(refs),
            payload=dict(payload or {}),
            created_at=now,
            updated_at=now,
        )
        self.repository.put(event)
        logger.debug("event appended | %s | %s", event.type, event.id)
        return event

    def get(self, event_id: str) -> Event | None:
        return self.repository.get(event_id)

    def list(self, include_archived: bool = False) -> list[Event]:
        return _newest_first(self.repository.list(include_archived))

    def list_by_type(self, event_type: str, include_archived: bool = False) -> list[Event]:
        events = self.repository.list(include_archived)
        return _newest_first([event for event in events if event.type == event_type])

    def list_for_entity(self, ref: EntityRef, include_archived: bool = False) -> list[Event]:
        events = self.repository.list(include_archived)
        return _newest_first([event for event in events if event.references(ref)])

    def archive(self, event_id: str) -> Event:
        """Hide an event from default listings. The record itself is kept."""
        return self.repository.archive(event_id)


def _newest_first(events: list[Event]) -> list[Event]:
    return sorted(events, key=lambda event: parse_timestamp(event.at), reverse=True)
