"""SQLite entity store: one row per collection document."""

from __future__ import annotations

import copy
import json
import sqlite3
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tradeledger.errors import PersistenceError
from tradeledger.state.schema import (
    SCHEMA_VERSION,
    SCHEMA_VERSION_KEY,
    migrate_document,
)
from tradeledger.state.store import Document


class SqliteEntityStore:
    """SQLite-backed implementation of the entity store."""

    def __init__(self, db_path: str) -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.connection = sqlite3.connect(path)
            self.connection.row_factory = sqlite3.Row
            self._initialize_schema()
            self._migrate()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to open store {path}: {exc}") from exc

    def read(self, collection: str) -> Document:
        try:
            row = self.connection.execute(
                "SELECT document FROM collections WHERE name = ?",
                (collection,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read collection {collection}: {exc}") from exc
        if row is None:
            return {}
        return self._decode(collection, str(row["document"]))

    def write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        try:
            payload = json.dumps(copy.deepcopy(dict(documents)), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Collection {collection} is not serializable: {exc}") from exc
        try:
            self.connection.execute(
                """
                INSERT OR REPLACE INTO collections(name, document, updated_ts)
                VALUES(?, ?, ?)
                """,
                (collection, payload, self._utc_now()),
            )
            self.connection.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to write collection {collection}: {exc}") from exc

    def schema_version(self) -> int:
        row = self.connection.execute(
            "SELECT value FROM store_meta WHERE key = ?",
            (SCHEMA_VERSION_KEY,),
        ).fetchone()
        if row is None:
            return 1
        return int(row["value"])

    def close(self) -> None:
        self.connection.close()

    def _initialize_schema(self) -> None:
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS collections(
                name TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                updated_ts TEXT NOT NULL
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS store_meta(
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        has_rows = self.connection.execute("SELECT 1 FROM collections LIMIT 1").fetchone()
        if has_rows is None:
            self.connection.execute(
                "INSERT OR IGNORE INTO store_meta(key, value) VALUES(?, ?)",
                (SCHEMA_VERSION_KEY, str(SCHEMA_VERSION)),
            )
        self.connection.commit()

    def _migrate(self) -> None:
        version = self.schema_version()
        if version >= SCHEMA_VERSION:
            return
        rows = self.connection.execute("SELECT name, document FROM collections").fetchall()
        document: dict[str, Any] = {SCHEMA_VERSION_KEY: version}
        for row in rows:
            document[str(row["name"])] = self._decode(str(row["name"]), str(row["document"]))
        migrated = migrate_document(document)
        for name, records in migrated.items():
            if name == SCHEMA_VERSION_KEY:
                continue
            self.write(name, records)
        self.connection.execute(
            "INSERT OR REPLACE INTO store_meta(key, value) VALUES(?, ?)",
            (SCHEMA_VERSION_KEY, str(migrated[SCHEMA_VERSION_KEY])),
        )
        self.connection.commit()

    @staticmethod
    def _decode(collection: str, text: str) -> Document:
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Collection {collection} holds invalid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise PersistenceError(f"Collection {collection} must hold a JSON object")
        return decoded

    @staticmethod
    def _utc_now() -> str:
        return datetime.now(tz=UTC).isoformat()
