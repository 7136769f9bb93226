from __future__ import annotations

import json
from pathlib import Path

import pytest

from tradeledger.cli import apply_cli_overrides, build_parser, build_trade_request, main, parse_anchor
from tradeledger.config import Settings
from tradeledger.runtime import build_services
from tradeledger.state.json_store import JsonFileEntityStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tradeledger.config.load_dotenv", lambda *args, **kwargs: None)
    for key in ["STORE_BACKEND", "STORE_PATH", "STATE_DB_PATH", "LOG_LEVEL", "REPORTS_DIR"]:
        monkeypatch.delenv(key, raising=False)


def test_cli_overrides_produce_expected_settings() -> None:
    parser = build_parser()
    args = parser.parse_args(
        ["--backend", "sqlite", "--store", "state/test.db", "--log-level", "warning", "portfolio"]
    )

    merged = apply_cli_overrides(Settings(), args)

    assert merged.store_backend == "sqlite"
    assert merged.state_db_path == "state/test.db"
    assert merged.store_path == "data/tradeledger.json"
    assert merged.log_level == "WARNING"


def test_store_flag_rejected_for_memory_backend() -> None:
    args = build_parser().parse_args(["--backend", "memory", "--store", "x.json", "portfolio"])

    with pytest.raises(ValueError, match="memory backend"):
        apply_cli_overrides(Settings(), args)


def test_build_trade_request_from_flags() -> None:
    args = build_parser().parse_args(
        [
            "record",
            "--action",
            "buy",
            "--ticker",
            "AAPL",
            "--quantity",
            "3",
            "--price",
            "190.5",
            "--time",
            "2026-01-02T15:00:00Z",
            "--payment-asset",
            "USD",
            "--payment-amount",
            "571.5",
            "--fees",
            "1",
            "--anchor",
            "thought:t1:trigger",
        ]
    )

    request = build_trade_request(args)

    assert request.action_type == "buy"
    assert request.quantity == 3.0
    assert request.payment == {"asset": "USD", "amount": 571.5, "is_new_money": False}
    assert request.meta == {
        "fees": 1.0,
        "context_anchors": [{"entity_type": "thought", "entity_id": "t1", "role": "trigger"}],
    }


def test_build_trade_request_requires_price_for_trades() -> None:
    args = build_parser().parse_args(["record", "--action", "sell", "--ticker", "A", "--quantity", "1"])

    with pytest.raises(ValueError, match="--price is required"):
        build_trade_request(args)


def test_parse_anchor_validates_shape() -> None:
    assert parse_anchor("thesis:v2") == {"entity_type": "thesis", "entity_id": "v2"}
    with pytest.raises(ValueError):
        parse_anchor("thesis")


def test_main_records_and_rejects_against_json_store(tmp_path: Path) -> None:
    store_path = tmp_path / "ledger.json"
    common = ["--store", str(store_path)]

    assert main([*common, "record", "--action", "deposit", "--quantity", "5000"]) == 0
    rejected = main([*common, "record", "--action", "withdraw", "--quantity", "6000"])

    assert rejected == 1
    services = build_services(JsonFileEntityStore(str(store_path)))
    cash = services.positions.cash_position()
    assert cash is not None
    assert cash.quantity == 5000
    assert len(services.journal.list()) == 1


def test_main_configuration_error_exit_code(tmp_path: Path) -> None:
    exit_code = main(
        ["--store", str(tmp_path / "l.json"), "record", "--action", "buy", "--ticker", "A", "--quantity", "1"]
    )

    assert exit_code == 2


def test_main_history_report_writes_outputs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPORTS_DIR", str(tmp_path / "reports"))
    store_path = tmp_path / "ledger.json"
    common = ["--store", str(store_path)]
    main(
        [
            *common,
            "record",
            "--action",
            "buy",
            "--ticker",
            "AAPL",
            "--quantity",
            "2",
            "--price",
            "10",
            "--payment-asset",
            "USD",
            "--payment-amount",
            "20",
            "--new-money",
        ]
    )

    assert main([*common, "history", "--report"]) == 0

    html = (tmp_path / "reports" / "history.html").read_text(encoding="utf-8")
    assert "Portfolio History" in html
    lines = (tmp_path / "reports" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["type"] == "trade.buy"


def test_main_set_price_and_close(tmp_path: Path) -> None:
    store_path = tmp_path / "ledger.json"
    common = ["--store", str(store_path)]
    main(
        [
            *common,
            "record",
            "--action",
            "long",
            "--ticker",
            "BTC",
            "--quantity",
            "1",
            "--price",
            "50000",
        ]
    )
    services = build_services(JsonFileEntityStore(str(store_path)))
    position_id = services.positions.list_open()[0].id

    assert main([*common, "set-price", position_id, "55000"]) == 0
    assert main([*common, "close", position_id]) == 0
    assert main([*common, "close", "missing"]) == 1
    assert main([*common, "portfolio", "--status", "all"]) == 0
    assert main([*common, "events", "--type", "trade.long"]) == 0

    closed = services.positions.require(position_id)
    assert closed.current_price == 55000.0
    assert closed.is_closed
