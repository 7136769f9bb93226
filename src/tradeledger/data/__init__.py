"""Bulk import of journal entries."""

from .journal_import import (
    ImportSummary,
    JournalImporter,
    NormalizedRecord,
    RowError,
    dedupe_hash,
    normalize_record,
    read_import_file,
)

__all__ = [
    "ImportSummary",
    "JournalImporter",
    "NormalizedRecord",
    "RowError",
    "dedupe_hash",
    "normalize_record",
    "read_import_file",
]
