"""Realized/unrealized P&L and historical value reconstruction."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from tradeledger.domain.models import SPOT_TRADE_ACTIONS, ActionType, JournalEntry, Position
from tradeledger.ledger.journal import TradeActionEngine
from tradeledger.ledger.positions import PositionLedger, weighted_average_cost

logger = logging.getLogger(__name__)

POSITION_STATUSES = ("open", "closed", "all")

HISTORY_COLUMNS = [
    "journal_entry_id",
    "ticker",
    "cost_basis",
    "portfolio_value",
    "cumulative_realized_pnl",
]


@dataclass(frozen=True)
class PnlResult:
    realized: float
    unrealized: float | None
    combined: float | None


@dataclass(frozen=True)
class PortfolioTotals:
    """Aggregates over open, visible, non-leveraged, non-cash positions.

    ``total_value`` sums the positions that have a current price.
    ``unrealized_pnl`` and ``combined_pnl`` are None as soon as one included
    position has no current price.
    """

    total_value: float
    total_cost_basis: float
    unrealized_pnl: float | None
    realized_pnl: float
    combined_pnl: float | None
    position_count: int


@dataclass(frozen=True)
class PortfolioViewPosition:
    position: Position
    is_leveraged: bool
    pnl: PnlResult


@dataclass(frozen=True)
class PortfolioView:
    positions: list[PortfolioViewPosition]
    totals: PortfolioTotals


@dataclass(frozen=True)
class HistoricalSnapshot:
    """Portfolio state right after one buy or sell."""

    at: str
    journal_entry_id: str
    ticker: str
    cost_basis: float
    portfolio_value: float
    cumulative_realized_pnl: float


@dataclass
class _Holding:
    ticker: str
    quantity: float = 0.0
    avg_cost: float = 0.0


class PnlCalculator:
    """Read-only P&L views over positions and the journal."""

    def __init__(self, positions: PositionLedger, journal: TradeActionEngine) -> None:
        self.positions = positions
        self.journal = journal

    def unrealized(self, position: Position) -> float | None:
        if position.current_price is None:
            return None
        if self.positions.is_cash(position) or self.positions.is_leveraged(position):
            return None
        return (position.current_price - position.avg_cost) * position.quantity

    def realized(self, ticker: str) -> float:
        """Sum of ``(sell price - avg cost at sale) * quantity`` over the ticker's history.

        Replays buys and sells in entry-time order, archived entries included, so
        the figure survives the position being closed.
        """
        symbol = ticker.strip().upper()
        entries = [entry for entry in self._spot_history() if entry.ticker == symbol]
        _, realized = _replay(entries)
        return realized

    def combined(self, position: Position) -> PnlResult:
        realized = self.realized(position.ticker)
        unrealized = self.unrealized(position)
        combined = realized + unrealized if unrealized is not None else None
        return PnlResult(realized=realized, unrealized=unrealized, combined=combined)

    def portfolio_totals(self) -> PortfolioTotals:
        included = [position for position in self.positions.list_open() if self._is_spot(position)]

        total_cost_basis = sum(position.cost_basis for position in included)
        priced = [position for position in included if position.current_price is not None]
        total_value = sum(position.quantity * position.current_price for position in priced)
        unrealized: float | None = None
        if len(priced) == len(included):
            unrealized = sum(self.unrealized(position) or 0.0 for position in included)

        tickers = {position.ticker for position in included}
        tickers.update(
            position.ticker
            for position in self.positions.list_closed()
            if self._is_spot(position)
        )
        realized = sum(self.realized(ticker) for ticker in sorted(tickers))

        return PortfolioTotals(
            total_value=total_value,
            total_cost_basis=total_cost_basis,
            unrealized_pnl=unrealized,
            realized_pnl=realized,
            combined_pnl=realized + unrealized if unrealized is not None else None,
            position_count=len(included),
        )

    def portfolio_view(self, status: str = "open") -> PortfolioView:
        if status not in POSITION_STATUSES:
            raise ValueError(f"status must be one of {', '.join(POSITION_STATUSES)}")
        if status == "open":
            selected = self.positions.list_open()
        elif status == "closed":
            selected = self.positions.list_closed()
        else:
            selected = self.positions.list()

        rows = [
            PortfolioViewPosition(
                position=position,
                is_leveraged=self.positions.is_leveraged(position),
                pnl=self.combined(position),
            )
            for position in sorted(selected, key=lambda item: (item.ticker, item.created_at))
        ]
        return PortfolioView(positions=rows, totals=self.portfolio_totals())

    def historical_snapshots(self) -> list[HistoricalSnapshot]:
        """One snapshot per buy/sell, oldest first, rebuilt purely from the journal.

        Cost basis sums ``quantity * avg_cost`` over every holding. Portfolio
        value marks holdings in the traded ticker at the entry price and the
        others at their average cost.
        """
        holdings: dict[str, _Holding] = {}
        realized = 0.0
        snapshots: list[HistoricalSnapshot] = []

        for entry in self._spot_history():
            holding = holdings.setdefault(entry.position_id, _Holding(ticker=entry.ticker))
            realized += _apply(holding, entry)
            snapshots.append(
                HistoricalSnapshot(
                    at=entry.entry_time,
                    journal_entry_id=entry.id,
                    ticker=entry.ticker,
                    cost_basis=sum(item.quantity * item.avg_cost for item in holdings.values()),
                    portfolio_value=_mark_to_entry(holdings.values(), entry),
                    cumulative_realized_pnl=realized,
                )
            )

        logger.debug("rebuilt %s historical snapshots", len(snapshots))
        return snapshots

    def history_frame(self) -> pd.DataFrame:
        """Historical snapshots as a DataFrame indexed by entry time."""
        snapshots = self.historical_snapshots()
        if not snapshots:
            frame = pd.DataFrame(columns=HISTORY_COLUMNS)
            frame.index = pd.DatetimeIndex([], tz="UTC", name="at")
            return frame

        frame = pd.DataFrame(
            [
                {
                    "at": snapshot.at,
                    "journal_entry_id": snapshot.journal_entry_id,
                    "ticker": snapshot.ticker,
                    "cost_basis": snapshot.cost_basis,
                    "portfolio_value": snapshot.portfolio_value,
                    "cumulative_realized_pnl": snapshot.cumulative_realized_pnl,
                }
                for snapshot in snapshots
            ]
        )
        frame["at"] = pd.to_datetime(frame["at"], utc=True)
        return frame.set_index("at")

    def _spot_history(self) -> list[JournalEntry]:
        return [
            entry
            for entry in self.journal.history(include_archived=True)
            if entry.action_type in SPOT_TRADE_ACTIONS
        ]

    def _is_spot(self, position: Position) -> bool:
        return not self.positions.is_cash(position) and not self.positions.is_leveraged(position)


def _apply(holding: _Holding, entry: JournalEntry) -> float:
    """Apply one buy/sell to a replayed holding; return the P&L it realizes."""
    if entry.action_type is ActionType.BUY:
        holding.avg_cost = weighted_average_cost(
            holding.quantity, holding.avg_cost, entry.quantity, entry.price
        )
        holding.quantity += entry.quantity
        return 0.0
    sold = min(entry.quantity, holding.quantity)
    holding.quantity -= sold
    return (entry.price - holding.avg_cost) * sold


def _replay(entries: Iterable[JournalEntry]) -> tuple[dict[str, _Holding], float]:
    holdings: dict[str, _Holding] = {}
    realized = 0.0
    for entry in entries:
        holding = holdings.setdefault(entry.position_id, _Holding(ticker=entry.ticker))
        realized += _apply(holding, entry)
    return holdings, realized


def _mark_to_entry(holdings: Iterable[_Holding], entry: JournalEntry) -> float:
    return sum(
        item.quantity * (entry.price if item.ticker == entry.ticker else item.avg_cost)
        for item in holdings
    )
