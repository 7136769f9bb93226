"""Typed read-modify-write access to one entity store collection."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any, Generic, Protocol, TypeVar

from tradeledger.domain.models import is_visible, utc_now_iso
from tradeledger.errors import EntityNotFound
from tradeledger.state.store import EntityStore


class StoredEntity(Protocol):
    id: str
    archived_at: str | None

    def to_record(self) -> dict[str, Any]: ...


EntityT = TypeVar("EntityT", bound=StoredEntity)


class Repository(Generic[EntityT]):
    """Maps one collection to detached entity copies."""

    def __init__(
        self,
        store: EntityStore,
        collection: str,
        label: str,
        from_record: Callable[[Mapping[str, Any]], EntityT],
    ) -> None:
        self.store = store
        self.collection = collection
        self.label = label
        self._from_record = from_record

    def get(self, entity_id: str) -> EntityT | None:
        record = self.store.read(self.collection).get(entity_id)
        if record is None:
            return None
        return self._from_record(record)

    def require(self, entity_id: str) -> EntityT:
        entity = self.get(entity_id)
        if entity is None:
            raise EntityNotFound(self.label, entity_id)
        return entity

    def list(self, include_archived: bool = False) -> list[EntityT]:
        entities = [self._from_record(record) for record in self.store.read(self.collection).values()]
        if include_archived:
            return entities
        return [entity for entity in entities if is_visible(entity)]

    def put(self, entity: EntityT) -> EntityT:
        documents = self.store.read(self.collection)
        documents[entity.id] = entity.to_record()
        self.store.write(self.collection, documents)
        return entity

    def archive(self, entity_id: str) -> EntityT:
        entity = self.require(entity_id)
        now = utc_now_iso()
        archived = replace(entity, archived_at=now, updated_at=now)
        return self.put(archived)
