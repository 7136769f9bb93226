"""Custom exceptions for clearer error handling across the ledger."""

from __future__ import annotations


def format_amount(value: float, precision: int = 8) -> str:
    """Render a quantity without trailing zeros (``100`` rather than ``100.0``)."""
    normalized = 0.0 if abs(float(value)) < 1e-12 else float(value)
    text = f"{normalized:.{max(0, precision)}f}".rstrip("0").rstrip(".")
    if text in {"", "-", "-0"}:
        return "0"
    return text


class TradeLedgerError(Exception):
    """Base exception for all ledger-specific errors."""


class ValidationError(TradeLedgerError):
    """Raised when input has the wrong shape or range."""


class StateConflictError(TradeLedgerError):
    """Raised when an operation is illegal given current entity state."""


class NotFoundError(TradeLedgerError):
    """Raised when a referenced id does not resolve."""


class PersistenceError(TradeLedgerError):
    """Raised when the entity store cannot be read or written."""


# --- validation ---


class InvalidQuantity(ValidationError):
    def __init__(self, quantity: object) -> None:
        super().__init__(f"Quantity must be greater than 0, got {quantity}")


class InvalidPrice(ValidationError):
    def __init__(self, price: object) -> None:
        super().__init__(f"Price cannot be negative, got {price}")


class InvalidActionType(ValidationError):
    def __init__(self, action_type: object, supported: list[str]) -> None:
        super().__init__(
            f"Unknown action type '{action_type}'. Supported: {', '.join(supported)}"
        )


class InvalidPositionMode(ValidationError):
    def __init__(self, position_mode: object) -> None:
        super().__init__(f"Position mode must be one of new, existing; got '{position_mode}'")


class InvalidEntryTime(ValidationError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid entry time: {value!r}")


class PaymentRequired(ValidationError):
    def __init__(self) -> None:
        super().__init__("Buy actions require a payment with an asset and a numeric amount")


class PositionIdRequired(ValidationError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"Position ID required for {action_type} into an existing position")


class CannotSellNewPosition(ValidationError):
    def __init__(self) -> None:
        super().__init__("Cannot sell a new position; must select existing position")


class TickerMismatch(ValidationError):
    def __init__(self, requested: str, held: str) -> None:
        super().__init__(f"Ticker {requested} does not match position ticker {held}")


class InvalidRelation(ValidationError):
    """Raised for malformed relation refs or unknown relation types."""


class InvalidEvent(ValidationError):
    """Raised for events without a type or with malformed refs."""


# --- state conflicts ---


class InsufficientQuantity(StateConflictError):
    def __init__(self, requested: float, held: float) -> None:
        self.requested = requested
        self.held = held
        super().__init__(f"Cannot sell {format_amount(requested)}; only {format_amount(held)} held")


class InsufficientFunds(StateConflictError):
    def __init__(self, requested: float, available: float) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot withdraw {format_amount(requested)}; "
            f"only {format_amount(available)} available"
        )


class PositionClosed(StateConflictError):
    def __init__(self, position_id: str) -> None:
        super().__init__(f"Position {position_id} is closed")


class PositionArchived(StateConflictError):
    def __init__(self, position_id: str) -> None:
        super().__init__(f"Position {position_id} is archived")


class EntryArchived(StateConflictError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Journal entry {entry_id} is archived")


class DuplicateRelation(StateConflictError):
    def __init__(self, relation_id: str) -> None:
        self.relation_id = relation_id
        super().__init__(f"An active relation already exists: {relation_id}")


# --- lookups ---


class EntityNotFound(NotFoundError):
    def __init__(self, label: str, entity_id: str) -> None:
        self.label = label
        self.entity_id = entity_id
        super().__init__(f"{label} {entity_id} not found")
