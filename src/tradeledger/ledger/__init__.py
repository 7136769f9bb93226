"""Ledger services: positions, trade actions, relations, events and P&L."""

from .events import EventLog
from .journal import TradeActionEngine, TradeResult
from .pnl import HistoricalSnapshot, PnlCalculator, PnlResult, PortfolioTotals, PortfolioView
from .positions import PositionLedger, weighted_average_cost
from .relations import DeriveResult, RelationGraph
from .validation import TradePlan, TradeRequest, validate_trade

__all__ = [
    "DeriveResult",
    "EventLog",
    "HistoricalSnapshot",
    "PnlCalculator",
    "PnlResult",
    "PortfolioTotals",
    "PortfolioView",
    "PositionLedger",
    "RelationGraph",
    "TradeActionEngine",
    "TradePlan",
    "TradeRequest",
    "TradeResult",
    "validate_trade",
    "weighted_average_cost",
]
