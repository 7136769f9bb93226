"""Pre-write validation gates for trading actions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from tradeledger.domain.models import (
    CASH_ACTIONS,
    CASH_TICKER,
    ActionType,
    EntryMeta,
    Payment,
    Position,
    PositionMode,
    is_finite_number,
    to_iso,
)
from tradeledger.errors import (
    CannotSellNewPosition,
    InsufficientFunds,
    InsufficientQuantity,
    InvalidActionType,
    InvalidEntryTime,
    InvalidPositionMode,
    InvalidPrice,
    InvalidQuantity,
    InvalidRelation,
    PaymentRequired,
    PositionIdRequired,
    TickerMismatch,
    ValidationError,
)
from tradeledger.ledger.positions import PositionLedger, ensure_mutable


@dataclass(frozen=True)
class TradeRequest:
    """One trading action as entered by a user or an importer."""

    action_type: str
    ticker: str
    quantity: float
    price: float
    entry_time: str
    position_mode: str = PositionMode.NEW.value
    position_id: str | None = None
    payment: Payment | Mapping[str, Any] | None = None
    meta: EntryMeta | Mapping[str, Any] | None = None


@dataclass(frozen=True)
class TradePlan:
    """A validated request, resolved against current position state."""

    action_type: ActionType
    ticker: str
    quantity: float
    price: float
    entry_time: str
    position_mode: PositionMode
    target: Position | None
    payment: Payment | None
    meta: EntryMeta | None
    cash_source: Position | None = None
    cash_deduction: float = 0.0


def validate_trade(request: TradeRequest, positions: PositionLedger) -> TradePlan:
    """Check a request end-to-end without writing anything.

    Gates run in a fixed order: quantity, price, action type, payment, then the
    state checks for sells, cash movements and increases.
    """
    quantity = request.quantity
    if not is_finite_number(quantity) or quantity <= 0:
        raise InvalidQuantity(quantity)

    raw_action = str(request.action_type or "").strip().lower()
    is_cash_action = raw_action in {item.value for item in CASH_ACTIONS}
    if is_cash_action:
        price = 1.0
    else:
        price = request.price
        if not is_finite_number(price) or price < 0:
            raise InvalidPrice(price)

    try:
        action_type = ActionType(raw_action)
    except ValueError as exc:
        raise InvalidActionType(request.action_type, [item.value for item in ActionType]) from exc

    payment = _coerce_payment(request.payment)
    if action_type is ActionType.BUY and not _payment_is_complete(payment):
        raise PaymentRequired()

    try:
        entry_time = to_iso(request.entry_time)
    except (TypeError, ValueError) as exc:
        raise InvalidEntryTime(request.entry_time) from exc

    meta = _coerce_meta(request.meta)
    if meta is not None:
        for anchor in meta.context_anchors:
            if not anchor.entity_type or not anchor.entity_id:
                raise InvalidRelation("Context anchor must have entity_type and entity_id")

    if is_cash_action:
        return _plan_cash(action_type, float(quantity), entry_time, payment, meta, positions)

    ticker = str(request.ticker or "").strip().upper()
    if not ticker:
        raise ValidationError("Ticker is required")
    try:
        position_mode = PositionMode(str(request.position_mode or "").strip().lower())
    except ValueError as exc:
        raise InvalidPositionMode(request.position_mode) from exc

    if action_type is ActionType.SELL:
        if position_mode is PositionMode.NEW:
            raise CannotSellNewPosition()
        target = _resolve_existing(action_type, request.position_id, ticker, positions)
        if quantity > target.quantity:
            raise InsufficientQuantity(quantity, target.quantity)
    elif position_mode is PositionMode.EXISTING:
        target = _resolve_existing(action_type, request.position_id, ticker, positions)
    else:
        target = None

    cash_source = None
    cash_deduction = 0.0
    if (
        action_type is ActionType.BUY
        and payment is not None
        and not payment.is_new_money
        and payment.asset == CASH_TICKER
    ):
        cash_source = positions.cash_position()
        if cash_source is not None:
            cash_deduction = min(float(payment.amount), cash_source.quantity)

    return TradePlan(
        action_type=action_type,
        ticker=ticker,
        quantity=float(quantity),
        price=float(price),
        entry_time=entry_time,
        position_mode=position_mode,
        target=target,
        payment=payment,
        meta=meta,
        cash_source=cash_source if cash_deduction > 0 else None,
        cash_deduction=cash_deduction,
    )


def _plan_cash(
    action_type: ActionType,
    quantity: float,
    entry_time: str,
    payment: Payment | None,
    meta: EntryMeta | None,
    positions: PositionLedger,
) -> TradePlan:
    cash = positions.cash_position()
    if action_type is ActionType.WITHDRAW:
        available = cash.quantity if cash is not None else 0.0
        if quantity > available:
            raise InsufficientFunds(quantity, available)
    return TradePlan(
        action_type=action_type,
        ticker=CASH_TICKER,
        quantity=quantity,
        price=1.0,
        entry_time=entry_time,
        position_mode=PositionMode.EXISTING if cash is not None else PositionMode.NEW,
        target=cash,
        payment=payment,
        meta=meta,
    )


def _resolve_existing(
    action_type: ActionType,
    position_id: str | None,
    ticker: str,
    positions: PositionLedger,
) -> Position:
    if not position_id:
        raise PositionIdRequired(action_type.value)
    position = positions.require(position_id)
    ensure_mutable(position)
    if position.ticker != ticker:
        raise TickerMismatch(ticker, position.ticker)
    return position


def _payment_is_complete(payment: Payment | None) -> bool:
    if payment is None:
        return False
    if not isinstance(payment.asset, str) or not payment.asset.strip():
        return False
    return is_finite_number(payment.amount) and payment.amount >= 0


def _coerce_payment(value: Payment | Mapping[str, Any] | None) -> Payment | None:
    if value is None:
        return None
    if isinstance(value, Payment):
        if isinstance(value.asset, str):
            return replace(value, asset=value.asset.strip().upper())
        return value
    amount = value.get("amount")
    return Payment(
        asset=str(value.get("asset") or "").strip().upper(),
        amount=amount if is_finite_number(amount) else float("nan"),
        is_new_money=bool(value.get("is_new_money", False)),
    )


def _coerce_meta(value: EntryMeta | Mapping[str, Any] | None) -> EntryMeta | None:
    if value is None or isinstance(value, EntryMeta):
        return value
    return EntryMeta.from_record(value)
