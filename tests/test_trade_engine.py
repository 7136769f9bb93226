from __future__ import annotations

from typing import Any

import pytest

from tradeledger.domain.models import ActionType, ContextAnchor, EntityRef, PositionMode
from tradeledger.errors import (
    CannotSellNewPosition,
    EntityNotFound,
    EntryArchived,
    InsufficientFunds,
    InsufficientQuantity,
    InvalidActionType,
    InvalidEntryTime,
    InvalidPositionMode,
    InvalidPrice,
    InvalidQuantity,
    InvalidRelation,
    PaymentRequired,
    PersistenceError,
    PositionClosed,
    PositionIdRequired,
    StateConflictError,
    TickerMismatch,
)
from tradeledger.ledger.validation import TradePlan, TradeRequest
from tradeledger.runtime import Services, build_services
from tradeledger.state.store import EVENTS, JOURNAL_ENTRIES, RELATION_EDGES, InMemoryEntityStore

USD_PAYMENT = {"asset": "USD", "amount": 1000.0, "is_new_money": True}


def _services() -> Services:
    return build_services(InMemoryEntityStore())


def _request(action: str, ticker: str = "AAPL", **overrides: Any) -> TradeRequest:
    values: dict[str, Any] = {
        "action_type": action,
        "ticker": ticker,
        "quantity": 10,
        "price": 100.0,
        "entry_time": "2026-01-02T15:00:00+00:00",
    }
    if action == "buy":
        values["payment"] = USD_PAYMENT
    values.update(overrides)
    return TradeRequest(**values)


def test_buy_then_sell_scenario() -> None:
    services = _services()
    engine = services.journal

    first = engine.create(_request("buy"))
    position_id = first.position.id
    assert first.position.cost_basis == 1000.0
    assert first.position.avg_cost == 100.0

    second = engine.create(
        _request(
            "buy",
            price=200.0,
            position_mode="existing",
            position_id=position_id,
            entry_time="2026-01-03T15:00:00+00:00",
        )
    )
    assert second.position.id == position_id
    assert second.position.quantity == 20
    assert second.position.avg_cost == 150.0

    sold = engine.create(
        _request(
            "sell",
            price=175.0,
            position_mode="existing",
            position_id=position_id,
            entry_time="2026-01-04T15:00:00+00:00",
        )
    )
    assert sold.position.quantity == 10
    assert sold.position.avg_cost == 150.0
    assert services.pnl.realized("AAPL") == 250.0


def test_oversell_is_rejected_before_any_write() -> None:
    services = _services()
    opened = services.journal.create(_request("buy", quantity=50))
    events_before = len(services.events.list())
    entries_before = len(services.journal.list())

    with pytest.raises(InsufficientQuantity, match="Cannot sell 100; only 50 held"):
        services.journal.create(
            _request(
                "sell",
                quantity=100,
                position_mode="existing",
                position_id=opened.position.id,
            )
        )

    assert services.positions.require(opened.position.id).quantity == 50
    assert len(services.events.list()) == events_before
    assert len(services.journal.list()) == entries_before


def test_withdraw_more_than_cash_is_rejected() -> None:
    services = _services()
    services.journal.create(_request("deposit", ticker="", quantity=5000, price=0))

    with pytest.raises(InsufficientFunds, match="Cannot withdraw 6000; only 5000 available"):
        services.journal.create(_request("withdraw", ticker="", quantity=6000, price=0))

    cash = services.positions.cash_position()
    assert cash is not None
    assert cash.quantity == 5000


def test_deposits_accumulate_on_one_cash_position() -> None:
    services = _services()
    first = services.journal.create(_request("deposit", ticker="", quantity=100, price=55.0))
    second = services.journal.create(_request("deposit", ticker="", quantity=50, price=0))

    assert first.journal_entry.price == 1.0
    assert first.journal_entry.ticker == "USD"
    assert first.journal_entry.position_mode is PositionMode.NEW
    assert second.journal_entry.position_mode is PositionMode.EXISTING
    assert second.position.id == first.position.id
    assert second.position.quantity == 150
    assert second.position.avg_cost == 1.0


def test_withdraw_to_zero_closes_cash_and_next_deposit_reopens() -> None:
    services = _services()
    deposit = services.journal.create(_request("deposit", ticker="", quantity=100, price=1))
    withdrawn = services.journal.create(_request("withdraw", ticker="", quantity=100, price=1))

    assert withdrawn.position.closed_at is not None
    assert services.positions.cash_position() is None

    again = services.journal.create(_request("deposit", ticker="", quantity=10, price=1))
    assert again.position.id != deposit.position.id


def test_buy_paid_from_cash_deducts_available_cash() -> None:
    services = _services()
    services.journal.create(_request("deposit", ticker="", quantity=1500, price=1))

    result = services.journal.create(
        _request("buy", payment={"asset": "usd", "amount": 1000.0, "is_new_money": False})
    )

    assert result.cash_deducted == 1000.0
    assert result.journal_entry.payment is not None
    assert result.journal_entry.payment.asset == "USD"
    cash = services.positions.cash_position()
    assert cash is not None
    assert cash.quantity == 500
    event = services.events.get(result.event_id)
    assert event is not None
    assert event.payload["cashDeducted"] == 1000.0


def test_buy_paid_from_cash_never_overdraws() -> None:
    services = _services()
    services.journal.create(_request("deposit", ticker="", quantity=300, price=1))

    result = services.journal.create(
        _request("buy", payment={"asset": "USD", "amount": 1000.0, "is_new_money": False})
    )

    assert result.cash_deducted == 300
    assert services.positions.cash_position() is None


def test_new_money_buy_leaves_cash_alone() -> None:
    services = _services()
    services.journal.create(_request("deposit", ticker="", quantity=300, price=1))

    result = services.journal.create(_request("buy"))

    assert result.cash_deducted is None
    cash = services.positions.cash_position()
    assert cash is not None
    assert cash.quantity == 300


@pytest.mark.parametrize(
    ("request_", "error"),
    [
        (_request("buy", quantity=0), InvalidQuantity),
        (_request("buy", quantity=float("nan")), InvalidQuantity),
        (_request("buy", price=-1.0), InvalidPrice),
        (_request("hold"), InvalidActionType),
        (_request("buy", payment=None), PaymentRequired),
        (_request("buy", payment={"asset": "", "amount": 10}), PaymentRequired),
        (_request("buy", payment={"asset": "USD", "amount": "ten"}), PaymentRequired),
        (_request("sell"), CannotSellNewPosition),
        (_request("sell", position_mode="existing"), PositionIdRequired),
        (_request("sell", position_mode="existing", position_id="nope"), EntityNotFound),
        (_request("buy", entry_time="not a time"), InvalidEntryTime),
        (_request("buy", position_mode="maybe"), InvalidPositionMode),
    ],
)
def test_validation_failures(request_: TradeRequest, error: type[Exception]) -> None:
    services = _services()

    with pytest.raises(error):
        services.journal.create(request_)

    assert services.store.read(JOURNAL_ENTRIES) == {}
    assert services.store.read(EVENTS) == {}


def test_quantity_is_checked_before_price_and_action() -> None:
    services = _services()

    with pytest.raises(InvalidQuantity):
        services.journal.create(_request("hold", quantity=-1, price=-1.0))
    with pytest.raises(InvalidPrice):
        services.journal.create(_request("hold", price=-1.0))


def test_cash_actions_ignore_bad_price() -> None:
    services = _services()

    result = services.journal.create(_request("deposit", ticker="", quantity=10, price=-50.0))

    assert result.journal_entry.price == 1.0


def test_buy_into_closed_position_is_rejected() -> None:
    services = _services()
    opened = services.journal.create(_request("buy", quantity=1))
    services.journal.create(
        _request("sell", quantity=1, position_mode="existing", position_id=opened.position.id)
    )

    with pytest.raises(PositionClosed):
        services.journal.create(
            _request("buy", position_mode="existing", position_id=opened.position.id)
        )


def test_existing_position_ticker_must_match() -> None:
    services = _services()
    opened = services.journal.create(_request("buy"))

    with pytest.raises(TickerMismatch):
        services.journal.create(
            _request(
                "sell",
                ticker="MSFT",
                quantity=1,
                position_mode="existing",
                position_id=opened.position.id,
            )
        )


def test_successful_trade_writes_entry_relation_and_event() -> None:
    services = _services()

    result = services.journal.create(_request("buy", ticker="aapl", meta={"fees": 1.5}))
    entry = result.journal_entry
    position_ref = result.position.ref()

    assert entry.ticker == "AAPL"
    assert entry.position_id == result.position.id
    assert services.journal.get(entry.id) == entry

    edges = services.relations.list_for_entity(entry.ref())
    assert len(edges) == 1
    assert edges[0].to_ref == position_ref
    assert edges[0].relation_type.value == "related"

    event = services.events.get(result.event_id)
    assert event is not None
    assert event.type == "trade.buy"
    assert event.at == entry.entry_time
    assert event.refs == [entry.ref(), position_ref]
    assert event.payload["ticker"] == "AAPL"
    assert event.payload["actionType"] == "buy"
    assert event.payload["fees"] == 1.5
    assert event.payload["value"] == 1000.0
    assert event.payload["payment"] == {"asset": "USD", "amount": 1000.0, "is_new_money": True}


def test_long_opens_leveraged_position() -> None:
    services = _services()

    result = services.journal.create(_request("long", ticker="BTC", quantity=1, price=50000.0))

    assert result.position.leverage == "long"
    assert services.positions.is_leveraged(result.position)
    assert services.events.get(result.event_id).type == "trade.long"


def test_context_anchors_derive_context_edges() -> None:
    services = _services()
    anchors = [
        {"entity_type": "thought", "entity_id": "t1", "role": "thesis"},
        ContextAnchor(entity_type="thesis", entity_id="v2"),
    ]

    result = services.journal.create(_request("buy", meta={"context_anchors": anchors}))

    assert len(result.derived.created) == 2
    assert result.derived.skipped == 0
    derived = services.events.list_by_type("relation.derived")
    assert len(derived) == 2
    targets = {edge.to_ref for edge in result.derived.created}
    assert targets == {EntityRef("thought", "t1"), EntityRef("thesis", "v2")}
    roles = {edge.meta.get("anchor_role") for edge in result.derived.created}
    assert roles == {"thesis", None}


@pytest.mark.parametrize(
    "anchor",
    [
        {"entity_type": "thought", "entity_id": ""},
        {"entity_type": "", "entity_id": "t1"},
    ],
)
def test_malformed_context_anchor_is_rejected_before_any_write(anchor: dict[str, str]) -> None:
    services = _services()
    anchors = [{"entity_type": "thesis", "entity_id": "v2"}, anchor]

    with pytest.raises(InvalidRelation, match="entity_type and entity_id"):
        services.journal.create(_request("buy", meta={"context_anchors": anchors}))

    assert services.positions.list() == []
    assert services.journal.list(include_archived=True) == []
    assert services.events.list() == []
    assert services.store.read(RELATION_EDGES) == {}


def test_list_rejects_unknown_action_filter() -> None:
    services = _services()

    with pytest.raises(InvalidActionType):
        services.journal.list(action_type="bogus")


def test_list_is_newest_first_and_filters_action() -> None:
    services = _services()
    services.journal.create(_request("buy", entry_time="2026-01-01T00:00:00Z"))
    services.journal.create(_request("deposit", ticker="", entry_time="2026-03-01T00:00:00Z"))
    services.journal.create(_request("buy", ticker="MSFT", entry_time="2026-02-01T00:00:00Z"))

    entries = services.journal.list()
    assert [entry.entry_time[:10] for entry in entries] == [
        "2026-03-01",
        "2026-02-01",
        "2026-01-01",
    ]
    buys = services.journal.list(action_type="buy")
    assert [entry.ticker for entry in buys] == ["MSFT", "AAPL"]
    assert all(entry.action_type is ActionType.BUY for entry in buys)


def test_replace_archives_original_and_links_both_ways() -> None:
    services = _services()
    original = services.journal.create(_request("buy", quantity=10, price=100.0))

    replacement = services.journal.replace(
        original.journal_entry.id,
        _request("buy", quantity=12, price=100.0),
    )

    old = services.journal.get(original.journal_entry.id)
    assert old is not None
    assert old.archived_at is not None
    assert old.superseded_by == replacement.journal_entry.id
    assert replacement.journal_entry.supersedes == original.journal_entry.id
    assert [entry.id for entry in services.journal.list()] == [replacement.journal_entry.id]
    assert len(services.journal.list(include_archived=True)) == 2

    replaced_events = services.events.list_by_type("journal.replaced")
    assert len(replaced_events) == 1
    assert replaced_events[0].refs == [old.ref(), replacement.journal_entry.ref()]


def test_replace_validates_against_live_state() -> None:
    services = _services()
    opened = services.journal.create(_request("buy", quantity=10))
    sale = services.journal.create(
        _request("sell", quantity=4, position_mode="existing", position_id=opened.position.id)
    )

    with pytest.raises(InsufficientQuantity, match="Cannot sell 8; only 6 held"):
        services.journal.replace(
            sale.journal_entry.id,
            _request("sell", quantity=8, position_mode="existing", position_id=opened.position.id),
        )

    assert services.journal.get(sale.journal_entry.id).archived_at is None


def test_replace_of_archived_entry_is_rejected() -> None:
    services = _services()
    result = services.journal.create(_request("buy"))
    services.journal.archive(result.journal_entry.id)

    with pytest.raises(EntryArchived):
        services.journal.replace(result.journal_entry.id, _request("buy"))


class FailingEventStore(InMemoryEntityStore):
    def write(self, collection: str, documents: Any) -> None:
        if collection == EVENTS:
            raise PersistenceError("disk full")
        super().write(collection, documents)


def test_persistence_failure_leaves_partial_state_and_propagates() -> None:
    services = build_services(FailingEventStore())

    with pytest.raises(PersistenceError, match="disk full"):
        services.journal.create(_request("buy"))

    assert len(services.positions.list()) == 1
    assert len(services.journal.list()) == 1
    assert services.events.list() == []


def test_sell_plan_without_target_is_a_state_conflict() -> None:
    services = _services()
    plan = TradePlan(
        action_type=ActionType.SELL,
        ticker="AAPL",
        quantity=1.0,
        price=100.0,
        entry_time="2026-01-02T15:00:00+00:00",
        position_mode=PositionMode.EXISTING,
        target=None,
        payment=None,
        meta=None,
    )

    with pytest.raises(StateConflictError, match="No open AAPL position to sell from"):
        services.journal._execute(plan)

    assert services.positions.list() == []
    assert services.journal.list(include_archived=True) == []
