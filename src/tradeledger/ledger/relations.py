"""Relation graph with idempotent derivation from context anchors."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from tradeledger.domain.events import RELATION_DERIVED
from tradeledger.domain.models import (
    ContextAnchor,
    EntityRef,
    RelationEdge,
    RelationType,
    new_id,
    utc_now_iso,
)
from tradeledger.errors import DuplicateRelation, InvalidRelation
from tradeledger.ledger.events import EventLog
from tradeledger.ledger.repository import Repository
from tradeledger.state.store import RELATION_EDGES, EntityStore

logger = logging.getLogger(__name__)

Triple = tuple[tuple[str, str], tuple[str, str], str]


@dataclass(frozen=True)
class DeriveResult:
    """Outcome of one derivation pass."""

    created: list[RelationEdge] = field(default_factory=list)
    skipped: int = 0


def normalize_relation_type(value: str | RelationType) -> RelationType:
    try:
        return RelationType(value)
    except ValueError as exc:
        supported = ", ".join(item.value for item in RelationType)
        raise InvalidRelation(
            f"Unknown relation type '{value}'. Supported: {supported}"
        ) from exc


class RelationGraph:
    """Directed, typed, soft-deletable edges between entity references."""

    def __init__(self, store: EntityStore, events: EventLog) -> None:
        self.repository: Repository[RelationEdge] = Repository(
            store, RELATION_EDGES, "RelationEdge", RelationEdge.from_record
        )
        self.events = events

    def find_existing(
        self,
        from_ref: EntityRef,
        to_ref: EntityRef,
        relation_type: str | RelationType,
    ) -> RelationEdge | None:
        """Return the visible edge matching the triple exactly, if any."""
        wanted = (from_ref.key(), to_ref.key(), normalize_relation_type(relation_type).value)
        for edge in self.repository.list():
            if edge.triple() == wanted:
                return edge
        return None

    def create(
        self,
        from_ref: EntityRef,
        to_ref: EntityRef,
        relation_type: str | RelationType,
        meta: Mapping[str, Any] | None = None,
    ) -> RelationEdge:
        kind = self._validate(from_ref, to_ref, relation_type)
        existing = self.find_existing(from_ref, to_ref, kind)
        if existing is not None:
            raise DuplicateRelation(existing.id)
        return self._insert(from_ref, to_ref, kind, meta)

    def ensure(
        self,
        from_ref: EntityRef,
        to_ref: EntityRef,
        relation_type: str | RelationType,
        meta: Mapping[str, Any] | None = None,
    ) -> tuple[RelationEdge, bool]:
        """Create the edge unless a visible one already exists; report which."""
        kind = self._validate(from_ref, to_ref, relation_type)
        existing = self.find_existing(from_ref, to_ref, kind)
        if existing is not None:
            return existing, False
        return self._insert(from_ref, to_ref, kind, meta), True

    def get(self, relation_id: str) -> RelationEdge | None:
        return self.repository.get(relation_id)

    def list_for_entity(self, ref: EntityRef, include_archived: bool = False) -> list[RelationEdge]:
        """Edges touching ``ref`` in either direction."""
        key = ref.key()
        return [
            edge
            for edge in self.repository.list(include_archived)
            if edge.from_ref.key() == key or edge.to_ref.key() == key
        ]

    def archive(self, relation_id: str) -> RelationEdge:
        return self.repository.archive(relation_id)

    def derive_from_anchors(
        self,
        source_ref: EntityRef,
        anchors: Iterable[ContextAnchor],
        relation_type: str | RelationType = RelationType.CONTEXT,
    ) -> DeriveResult:
        """Turn declared context anchors into edges, skipping those already present.

        Safe to re-run: a second call with the same anchors creates nothing and
        appends no events; ``skipped`` then equals the anchor count.
        """
        kind = normalize_relation_type(relation_type)
        targets = [(anchor, anchor.to_ref()) for anchor in anchors]
        for _, target_ref in targets:
            self._validate(source_ref, target_ref, kind)

        index = self._visible_index()
        created: list[RelationEdge] = []
        skipped = 0

        for anchor, target_ref in targets:
            triple = (source_ref.key(), target_ref.key(), kind.value)
            if triple in index:
                skipped += 1
                continue

            meta: dict[str, Any] = {"derived_from": "contextAnchor"}
            if anchor.role:
                meta["anchor_role"] = anchor.role
            edge = self._insert(source_ref, target_ref, kind, meta)
            index[triple] = edge
            created.append(edge)

            self.events.append(
                RELATION_DERIVED,
                [source_ref, target_ref],
                {
                    "relationId": edge.id,
                    "relationType": kind.value,
                    "anchorRole": anchor.role,
                },
            )

        logger.debug(
            "derived relations | %s:%s | created %s | skipped %s",
            source_ref.type,
            source_ref.id,
            len(created),
            skipped,
        )
        return DeriveResult(created=created, skipped=skipped)

    def _visible_index(self) -> dict[Triple, RelationEdge]:
        index: dict[Triple, RelationEdge] = {}
        for edge in self.repository.list():
            index.setdefault(edge.triple(), edge)
        return index

    def _insert(
        self,
        from_ref: EntityRef,
        to_ref: EntityRef,
        relation_type: RelationType,
        meta: Mapping[str, Any] | None,
    ) -> RelationEdge:
        now = utc_now_iso()
        edge = RelationEdge(
            id=new_id(),
            from_ref=from_ref,
            to_ref=to_ref,
            relation_type=relation_type,
            created_at=now,
            updated_at=now,
            meta=dict(meta or {}),
        )
        return self.repository.put(edge)

    @staticmethod
    def _validate(
        from_ref: EntityRef,
        to_ref: EntityRef,
        relation_type: str | RelationType,
    ) -> RelationType:
        if not from_ref.type or not from_ref.id:
            raise InvalidRelation("RelationEdge from_ref must have type and id")
        if not to_ref.type or not to_ref.id:
            raise InvalidRelation("RelationEdge to_ref must have type and id")
        return normalize_relation_type(relation_type)
