"""Environment and CLI runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Self

from dotenv import load_dotenv

STORE_BACKENDS = ("json", "sqlite", "memory")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def normalize_backend(value: str | None, default: str = "json") -> str:
    """Normalize store backend selector values."""
    mapping = {
        "json": "json",
        "file": "json",
        "sqlite": "sqlite",
        "sqlite3": "sqlite",
        "db": "sqlite",
        "memory": "memory",
        "mem": "memory",
    }
    if value is None or not value.strip():
        return default
    candidate = value.strip().lower()
    return mapping.get(candidate, candidate)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    store_backend: str = "json"
    store_path: str = "data/tradeledger.json"
    state_db_path: str = "state/tradeledger.db"
    log_level: str = "INFO"
    reports_dir: str = "reports"

    @classmethod
    def from_env(cls) -> Self:
        """Create settings from environment variables (and a local ``.env``)."""
        load_dotenv()
        raw = cls(
            store_backend=normalize_backend(os.getenv("STORE_BACKEND"), default="json"),
            store_path=str(os.getenv("STORE_PATH", "data/tradeledger.json")).strip(),
            state_db_path=str(os.getenv("STATE_DB_PATH", "state/tradeledger.db")).strip(),
            log_level=str(os.getenv("LOG_LEVEL", "INFO")).strip().upper(),
            reports_dir=str(os.getenv("REPORTS_DIR", "reports")).strip(),
        )
        return raw.validate()

    def with_overrides(self, **kwargs: object) -> Self:
        """Return a new settings object with updated values."""
        overrides = dict(kwargs)
        backend_override = overrides.get("store_backend")
        if isinstance(backend_override, str):
            overrides["store_backend"] = normalize_backend(backend_override, default=self.store_backend)
        level_override = overrides.get("log_level")
        if isinstance(level_override, str):
            overrides["log_level"] = level_override.strip().upper()
        updated = replace(self, **overrides)
        return updated.validate()

    def effective_store_path(self) -> str | None:
        """Path used by the selected backend; None for the in-memory store."""
        if self.store_backend == "sqlite":
            return self.state_db_path
        if self.store_backend == "json":
            return self.store_path
        return None

    def validate(self) -> Self:
        """Validate settings fields."""
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError("store_backend must be one of json, sqlite, memory")
        if self.store_backend == "json" and not self.store_path:
            raise ValueError("store_path is required for the json backend")
        if self.store_backend == "sqlite" and not self.state_db_path:
            raise ValueError("state_db_path is required for the sqlite backend")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if not self.reports_dir:
            raise ValueError("reports_dir must not be empty")
        return self
