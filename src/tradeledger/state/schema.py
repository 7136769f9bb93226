"""Forward-only schema migrations for persisted documents."""

from __future__ import annotations

import logging
from typing import Any

from tradeledger.state.store import COLLECTIONS, EVENTS, RELATION_EDGES

SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schema_version"

logger = logging.getLogger(__name__)


def empty_document() -> dict[str, Any]:
    document: dict[str, Any] = {SCHEMA_VERSION_KEY: SCHEMA_VERSION}
    for name in COLLECTIONS:
        document[name] = {}
    return document


def document_version(document: dict[str, Any]) -> int:
    try:
        return int(document.get(SCHEMA_VERSION_KEY, 1))
    except (TypeError, ValueError):
        return 1


def needs_migration(document: dict[str, Any]) -> bool:
    return document_version(document) < SCHEMA_VERSION


def migrate_document(document: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a document in place to ``SCHEMA_VERSION``.

    Documents written by a newer version are returned untouched: their version
    and any keys this code does not know about survive.
    """
    version = document_version(document)
    if version >= SCHEMA_VERSION:
        return document

    if version < 2:
        _migrate_v1_to_v2(document)
        version = 2

    document[SCHEMA_VERSION_KEY] = version
    logger.info("migrated store document to schema version %s", version)
    return document


def _migrate_v1_to_v2(document: dict[str, Any]) -> None:
    if not isinstance(document.get(EVENTS), dict):
        document[EVENTS] = {}

    for name in COLLECTIONS:
        records = document.get(name)
        if not isinstance(records, dict):
            document[name] = {}
            continue
        for record in records.values():
            if isinstance(record, dict) and "created_at" in record and not record.get("updated_at"):
                record["updated_at"] = record["created_at"]

    for record in document[RELATION_EDGES].values():
        if not isinstance(record, dict):
            continue
        if "metadata" in record:
            legacy = record.pop("metadata")
            if "meta" not in record and legacy is not None:
                record["meta"] = legacy
