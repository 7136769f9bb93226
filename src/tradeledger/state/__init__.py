"""Entity store interfaces and implementations."""

from .json_store import JsonFileEntityStore
from .schema import SCHEMA_VERSION
from .sqlite_store import SqliteEntityStore
from .store import COLLECTIONS, EntityStore, InMemoryEntityStore

__all__ = [
    "COLLECTIONS",
    "SCHEMA_VERSION",
    "EntityStore",
    "InMemoryEntityStore",
    "JsonFileEntityStore",
    "SqliteEntityStore",
]
