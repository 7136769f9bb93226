"""Entity store contract used by the ledger services."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Protocol

Document = dict[str, dict[str, Any]]

POSITIONS = "positions"
JOURNAL_ENTRIES = "journal_entries"
RELATION_EDGES = "relation_edges"
EVENTS = "events"
IMPORT_DEDUPE = "import_dedupe"

COLLECTIONS = (POSITIONS, JOURNAL_ENTRIES, RELATION_EDGES, EVENTS, IMPORT_DEDUPE)


class EntityStore(Protocol):
    """Durable mapping from collection name to an id -> record document."""

    def read(self, collection: str) -> Document:
        """Return a detached copy of the full collection document."""

    def write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        """Replace the collection document wholesale."""

    def close(self) -> None:
        """Release persistence resources."""


class InMemoryEntityStore:
    """Process-local store, mainly for tests and dry runs."""

    def __init__(self, initial: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._collections: dict[str, Document] = {}
        for name, documents in (initial or {}).items():
            self._collections[name] = copy.deepcopy(dict(documents))

    def read(self, collection: str) -> Document:
        return copy.deepcopy(self._collections.get(collection, {}))

    def write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        self._collections[collection] = copy.deepcopy(dict(documents))

    def close(self) -> None:
        return None
