"""Single JSON document store, addressed by collection and id."""

from __future__ import annotations

import copy
import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from tradeledger.errors import PersistenceError
from tradeledger.state.schema import empty_document, migrate_document, needs_migration
from tradeledger.state.store import Document


class JsonFileEntityStore:
    """JSON-file-backed implementation of the entity store.

    Every read loads the file from disk and every write replaces it through an
    atomic rename, so concurrent writers resolve to last-write-wins per file.
    """

    def __init__(self, path: str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.path = output_path
        if self.path.exists():
            document = self._load()
            if needs_migration(document):
                self._dump(migrate_document(document))

    def read(self, collection: str) -> Document:
        document = self._load()
        records = document.get(collection)
        if not isinstance(records, dict):
            return {}
        return copy.deepcopy(records)

    def write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        document = self._load()
        document[collection] = copy.deepcopy(dict(documents))
        self._dump(document)

    def close(self) -> None:
        return None

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return empty_document()
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to read store {self.path}: {exc}") from exc
        if not text.strip():
            return empty_document()
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Store {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceError(f"Store {self.path} must hold a JSON object")
        return migrate_document(document)

    def _dump(self, document: dict[str, Any]) -> None:
        temp_name: str | None = None
        try:
            handle, temp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=self.path.parent,
            )
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                json.dump(document, stream, sort_keys=True, indent=2)
            os.replace(temp_name, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write store {self.path}: {exc}") from exc
