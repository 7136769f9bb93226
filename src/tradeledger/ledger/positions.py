"""Average-cost position ledger."""

from __future__ import annotations

import logging
from dataclasses import replace

from tradeledger.domain.models import (
    CASH_TICKER,
    AssetType,
    Position,
    is_finite_number,
    is_visible,
    new_id,
    to_iso,
    utc_now_iso,
)
from tradeledger.errors import (
    InsufficientQuantity,
    InvalidPrice,
    InvalidQuantity,
    PositionArchived,
    PositionClosed,
)
from tradeledger.ledger.repository import Repository
from tradeledger.state.store import POSITIONS, EntityStore

logger = logging.getLogger(__name__)


def weighted_average_cost(
    held_qty: float,
    held_avg_cost: float,
    quantity: float,
    price: float,
) -> float:
    """Average cost after adding ``quantity`` at ``price`` to a holding."""
    total_qty = held_qty + quantity
    if total_qty <= 0:
        return 0.0
    return (held_qty * held_avg_cost + quantity * price) / total_qty


def ensure_mutable(position: Position) -> None:
    """Reject changes to archived or closed positions."""
    if not is_visible(position):
        raise PositionArchived(position.id)
    if position.is_closed:
        raise PositionClosed(position.id)


def _check_quantity(quantity: float) -> None:
    if not is_finite_number(quantity) or quantity <= 0:
        raise InvalidQuantity(quantity)


def _check_price(price: float) -> None:
    if not is_finite_number(price) or price < 0:
        raise InvalidPrice(price)


class PositionLedger:
    """Owns quantity and average cost per position.

    Average cost moves only when a position grows; decreases leave it alone and
    close the position when the quantity reaches exactly zero.
    """

    def __init__(self, store: EntityStore) -> None:
        self.repository: Repository[Position] = Repository(
            store, POSITIONS, "Position", Position.from_record
        )

    def get(self, position_id: str) -> Position | None:
        return self.repository.get(position_id)

    def require(self, position_id: str) -> Position:
        return self.repository.require(position_id)

    def list(self, include_archived: bool = False) -> list[Position]:
        return self.repository.list(include_archived)

    def list_open(self, include_archived: bool = False) -> list[Position]:
        return [position for position in self.list(include_archived) if position.is_open]

    def list_closed(self, include_archived: bool = False) -> list[Position]:
        return [position for position in self.list(include_archived) if position.is_closed]

    def cash_position(self, ticker: str = CASH_TICKER) -> Position | None:
        """Return the running cash position for ``ticker``, if one is open."""
        for position in self.list_open():
            if position.ticker == ticker and self.is_cash(position):
                return position
        return None

    def open(
        self,
        ticker: str,
        quantity: float,
        price: float,
        opened_at: str,
        asset_type: str | None = None,
        leverage: str | None = None,
    ) -> Position:
        _check_quantity(quantity)
        _check_price(price)
        symbol = ticker.strip().upper()
        now = utc_now_iso()
        position = Position(
            id=new_id(),
            ticker=symbol,
            quantity=float(quantity),
            avg_cost=float(price),
            created_at=now,
            updated_at=now,
            asset_type=asset_type,
            opened_at=to_iso(opened_at),
            leverage=leverage,
        )
        self.repository.put(position)
        logger.debug("position opened | %s | %s @ %s", symbol, quantity, price)
        return position

    def open_cash(self, quantity: float, opened_at: str, ticker: str = CASH_TICKER) -> Position:
        return self.open(ticker, quantity, 1.0, opened_at, asset_type=AssetType.CASH.value)

    def increase(self, position_id: str, quantity: float, price: float) -> Position:
        _check_quantity(quantity)
        _check_price(price)
        existing = self.require(position_id)
        ensure_mutable(existing)
        if self.is_cash(existing):
            price = 1.0
        updated = replace(
            existing,
            quantity=existing.quantity + quantity,
            avg_cost=weighted_average_cost(existing.quantity, existing.avg_cost, quantity, price),
            updated_at=utc_now_iso(),
        )
        return self.repository.put(updated)

    def decrease(self, position_id: str, quantity: float, at: str) -> Position:
        _check_quantity(quantity)
        existing = self.require(position_id)
        ensure_mutable(existing)
        if quantity > existing.quantity:
            raise InsufficientQuantity(quantity, existing.quantity)
        remaining = existing.quantity - quantity
        updated = replace(
            existing,
            quantity=remaining,
            closed_at=to_iso(at) if remaining == 0 else None,
            updated_at=utc_now_iso(),
        )
        if remaining == 0:
            logger.debug("position closed | %s | %s", existing.ticker, existing.id)
        return self.repository.put(updated)

    def close(self, position_id: str, at: str | None = None) -> Position:
        """Explicitly close a position regardless of the quantity held."""
        existing = self.require(position_id)
        ensure_mutable(existing)
        now = utc_now_iso()
        updated = replace(
            existing,
            quantity=0.0,
            closed_at=to_iso(at) if at else now,
            updated_at=now,
        )
        return self.repository.put(updated)

    def set_current_price(self, position_id: str, price: float) -> Position:
        _check_price(price)
        existing = self.require(position_id)
        updated = replace(existing, current_price=float(price), updated_at=utc_now_iso())
        return self.repository.put(updated)

    def archive(self, position_id: str) -> Position:
        return self.repository.archive(position_id)

    @staticmethod
    def is_leveraged(position: Position) -> bool:
        """True for positions whose originating action was long or short."""
        return position.leverage is not None

    @staticmethod
    def is_cash(position: Position) -> bool:
        return position.asset_type == AssetType.CASH.value or position.ticker == CASH_TICKER
