from __future__ import annotations

import pytest

from tradeledger.config import Settings, normalize_backend

ENV_KEYS = ["STORE_BACKEND", "STORE_PATH", "STATE_DB_PATH", "LOG_LEVEL", "REPORTS_DIR"]


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tradeledger.config.load_dotenv", lambda *args, **kwargs: None)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_from_empty_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)

    settings = Settings.from_env()

    assert settings.store_backend == "json"
    assert settings.store_path == "data/tradeledger.json"
    assert settings.log_level == "INFO"
    assert settings.effective_store_path() == "data/tradeledger.json"


def test_environment_values_are_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("STORE_BACKEND", " SQLite3 ")
    monkeypatch.setenv("STATE_DB_PATH", "state/custom.db")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("REPORTS_DIR", "out")

    settings = Settings.from_env()

    assert settings.store_backend == "sqlite"
    assert settings.effective_store_path() == "state/custom.db"
    assert settings.log_level == "DEBUG"
    assert settings.reports_dir == "out"


def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("STORE_BACKEND", "postgres")

    with pytest.raises(ValueError, match="store_backend"):
        Settings.from_env()
    with pytest.raises(ValueError, match="log_level"):
        Settings().with_overrides(log_level="chatty")
    with pytest.raises(ValueError, match="store_path"):
        Settings().with_overrides(store_path="")


def test_with_overrides_returns_new_settings() -> None:
    base = Settings()

    memory = base.with_overrides(store_backend="mem")

    assert memory.store_backend == "memory"
    assert memory.effective_store_path() is None
    assert base.store_backend == "json"


def test_normalize_backend_aliases() -> None:
    assert normalize_backend(None) == "json"
    assert normalize_backend("", default="sqlite") == "sqlite"
    assert normalize_backend("file") == "json"
    assert normalize_backend("DB") == "sqlite"
