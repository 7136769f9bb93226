"""Domain models and event types."""

from .events import Event
from .models import (
    CASH_TICKER,
    ActionType,
    AssetType,
    ContextAnchor,
    EntityRef,
    EntryMeta,
    JournalEntry,
    Payment,
    Position,
    PositionMode,
    RelationEdge,
    RelationType,
    is_visible,
)

__all__ = [
    "CASH_TICKER",
    "ActionType",
    "AssetType",
    "ContextAnchor",
    "EntityRef",
    "EntryMeta",
    "Event",
    "JournalEntry",
    "Payment",
    "Position",
    "PositionMode",
    "RelationEdge",
    "RelationType",
    "is_visible",
]
