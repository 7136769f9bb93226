"""Trade action engine: one validated action, four coupled writes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from tradeledger.domain.events import JOURNAL_REPLACED, trade_event_type
from tradeledger.domain.models import (
    ActionType,
    JournalEntry,
    Position,
    RelationType,
    is_visible,
    new_id,
    parse_timestamp,
    utc_now_iso,
)
from tradeledger.errors import (
    EntryArchived,
    InvalidActionType,
    PersistenceError,
    StateConflictError,
)
from tradeledger.ledger.events import EventLog
from tradeledger.ledger.positions import PositionLedger
from tradeledger.ledger.relations import DeriveResult, RelationGraph
from tradeledger.ledger.repository import Repository
from tradeledger.ledger.validation import TradePlan, TradeRequest, validate_trade
from tradeledger.state.store import JOURNAL_ENTRIES, EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeResult:
    """Everything one successful action produced."""

    journal_entry: JournalEntry
    position: Position
    event_id: str
    cash_deducted: float | None = None
    derived: DeriveResult = field(default_factory=DeriveResult)


class TradeActionEngine:
    """Validates trading actions and records them across the ledger.

    All validation happens before the first write. After that the writes run in
    a fixed order (position, journal entry, relation, event); a store failure
    part way through is logged and re-raised, never rolled back.
    """

    def __init__(
        self,
        store: EntityStore,
        positions: PositionLedger,
        relations: RelationGraph,
        events: EventLog,
    ) -> None:
        self.repository: Repository[JournalEntry] = Repository(
            store, JOURNAL_ENTRIES, "JournalEntry", JournalEntry.from_record
        )
        self.positions = positions
        self.relations = relations
        self.events = events

    def create(self, request: TradeRequest) -> TradeResult:
        """Validate and record one trading action."""
        plan = validate_trade(request, self.positions)
        return self._execute(plan)

    def replace(self, entry_id: str, request: TradeRequest) -> TradeResult:
        """Correct a trade by archiving it and recording a replacement.

        The replacement is validated against live position state and applied
        exactly like a fresh action; the original's effects are not reversed.
        """
        original = self.repository.require(entry_id)
        if not is_visible(original):
            raise EntryArchived(entry_id)
        plan = validate_trade(request, self.positions)
        result = self._execute(plan, supersedes=original.id)

        now = utc_now_iso()
        self.repository.put(
            replace(
                original,
                archived_at=now,
                updated_at=now,
                superseded_by=result.journal_entry.id,
            )
        )
        self.events.append(
            JOURNAL_REPLACED,
            [original.ref(), result.journal_entry.ref()],
            {"originalId": original.id, "replacementId": result.journal_entry.id},
        )
        logger.debug(
            "journal entry replaced | %s -> %s",
            original.id,
            result.journal_entry.id,
        )
        return result

    def get(self, entry_id: str) -> JournalEntry | None:
        return self.repository.get(entry_id)

    def list(
        self,
        action_type: str | ActionType | None = None,
        include_archived: bool = False,
    ) -> list[JournalEntry]:
        """Entries newest first by entry time."""
        entries = self.repository.list(include_archived)
        if action_type is not None:
            try:
                wanted = ActionType(action_type)
            except ValueError as exc:
                raise InvalidActionType(action_type, [item.value for item in ActionType]) from exc
            entries = [entry for entry in entries if entry.action_type is wanted]
        return sorted(entries, key=_chronological_key, reverse=True)

    def history(self, include_archived: bool = True) -> list[JournalEntry]:
        """Entries oldest first by entry time, archived entries included by default."""
        return sorted(self.repository.list(include_archived), key=_chronological_key)

    def archive(self, entry_id: str) -> JournalEntry:
        """Hide an entry from default listings. Position effects are kept."""
        return self.repository.archive(entry_id)

    def _execute(self, plan: TradePlan, supersedes: str | None = None) -> TradeResult:
        step = "position"
        try:
            position = self._apply_position(plan)
            cash_deducted: float | None = None
            if plan.cash_source is not None and plan.cash_deduction > 0:
                self.positions.decrease(plan.cash_source.id, plan.cash_deduction, plan.entry_time)
                cash_deducted = plan.cash_deduction

            step = "journal"
            now = utc_now_iso()
            entry = JournalEntry(
                id=new_id(),
                action_type=plan.action_type,
                ticker=plan.ticker,
                quantity=plan.quantity,
                price=plan.price,
                entry_time=plan.entry_time,
                position_mode=plan.position_mode,
                position_id=position.id,
                created_at=now,
                updated_at=now,
                payment=plan.payment,
                meta=plan.meta,
                supersedes=supersedes,
            )
            self.repository.put(entry)

            step = "relation"
            journal_ref = entry.ref()
            position_ref = position.ref()
            self.relations.ensure(
                journal_ref,
                position_ref,
                RelationType.RELATED,
                {"derived_from": "journalEntry", "action_type": plan.action_type.value},
            )

            step = "event"
            event = self.events.append(
                trade_event_type(plan.action_type.value),
                [journal_ref, position_ref],
                self._event_payload(plan, cash_deducted),
                at=plan.entry_time,
            )

            step = "context"
            derived = DeriveResult()
            if plan.meta is not None and plan.meta.context_anchors:
                derived = self.relations.derive_from_anchors(journal_ref, plan.meta.context_anchors)
        except PersistenceError:
            logger.error(
                "trade left partial state | %s %s | failed at %s write",
                plan.action_type.value,
                plan.ticker,
                step,
            )
            raise

        logger.debug(
            "trade recorded | %s | %s | qty %s @ %s",
            plan.action_type.value,
            plan.ticker,
            plan.quantity,
            plan.price,
        )
        return TradeResult(
            journal_entry=entry,
            position=position,
            event_id=event.id,
            cash_deducted=cash_deducted,
            derived=derived,
        )

    def _apply_position(self, plan: TradePlan) -> Position:
        action = plan.action_type
        if action is ActionType.SELL or action is ActionType.WITHDRAW:
            if plan.target is None:
                raise StateConflictError(f"No open {plan.ticker} position to {action.value} from")
            return self.positions.decrease(plan.target.id, plan.quantity, plan.entry_time)
        if action is ActionType.DEPOSIT:
            if plan.target is None:
                return self.positions.open_cash(plan.quantity, plan.entry_time, plan.ticker)
            return self.positions.increase(plan.target.id, plan.quantity, 1.0)
        if plan.target is not None:
            return self.positions.increase(plan.target.id, plan.quantity, plan.price)
        leverage = action.value if action in {ActionType.LONG, ActionType.SHORT} else None
        return self.positions.open(
            plan.ticker,
            plan.quantity,
            plan.price,
            plan.entry_time,
            leverage=leverage,
        )

    @staticmethod
    def _event_payload(plan: TradePlan, cash_deducted: float | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ticker": plan.ticker,
            "quantity": plan.quantity,
            "price": plan.price,
            "actionType": plan.action_type.value,
            "fees": plan.meta.fees if plan.meta is not None else None,
            "value": plan.quantity * plan.price,
        }
        if plan.payment is not None:
            payload["payment"] = plan.payment.to_record()
        if cash_deducted is not None:
            payload["cashDeducted"] = cash_deducted
        return payload


def _chronological_key(entry: JournalEntry) -> tuple[Any, str]:
    return (parse_timestamp(entry.entry_time), entry.created_at)
