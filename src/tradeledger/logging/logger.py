"""Concise human-readable ledger logger."""

from __future__ import annotations

import logging
from datetime import datetime

from tradeledger.errors import format_amount


class HumanLogger:
    """Console logger with fixed line types.

    Configures the ``tradeledger`` logger once; module loggers below it
    propagate into the same handler.
    """

    def __init__(self, level: str = "INFO") -> None:
        self._logger = logging.getLogger("tradeledger")
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self._logger.propagate = False
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s | %(message)s", "%Y-%m-%d %H:%M:%S")
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

    def trade(
        self,
        action_type: str,
        ticker: str,
        quantity: float,
        price: float,
        entry_time: str | None = None,
        cash_deducted: float | None = None,
    ) -> None:
        parts = [
            f"trade | {action_type} | {ticker} | qty {self._format_qty(quantity)} "
            f"@ ${price:,.3f}"
        ]
        parts.append(f"value ${quantity * price:,.2f}")
        if cash_deducted is not None:
            parts.append(f"cash -${cash_deducted:,.2f}")
        if entry_time:
            parts.append(f"at {self._short_ts(entry_time)}")
        self._logger.info(" | ".join(parts))

    def rejected(self, action_type: str, ticker: str, reason: str) -> None:
        self._logger.warning("rejected | %s | %s | %s", action_type, ticker or "-", reason)

    def replaced(self, original_id: str, replacement_id: str) -> None:
        self._logger.info(
            "replaced | %s -> %s",
            self._short_id(original_id),
            self._short_id(replacement_id),
        )

    def derived(self, source_id: str, created: int, skipped: int) -> None:
        if created == 0 and skipped == 0:
            return None
        self._logger.info(
            "derived | %s | created %s | skipped %s",
            self._short_id(source_id),
            created,
            skipped,
        )

    def import_summary(
        self,
        total: int,
        created: int,
        duplicates: int,
        failed: int,
        dry_run: bool = False,
    ) -> None:
        label = "import (dry run)" if dry_run else "import"
        self._logger.info(
            "%s | rows %s | created %s | duplicates %s | failed %s",
            label,
            total,
            created,
            duplicates,
            failed,
        )

    def portfolio(
        self,
        position_count: int,
        cost_basis: float,
        value: float | None,
        realized_pnl: float,
        combined_pnl: float | None,
    ) -> None:
        self._logger.info(
            "portfolio | positions %s | cost $%s | value %s | realized %s | combined %s",
            position_count,
            f"{cost_basis:,.2f}",
            self._money_or_unknown(value),
            f"{realized_pnl:+,.2f}",
            self._signed_or_unknown(combined_pnl),
        )

    def position(
        self,
        ticker: str,
        quantity: float,
        avg_cost: float,
        current_price: float | None = None,
        unrealized_pnl: float | None = None,
        leverage: str | None = None,
    ) -> None:
        parts = [
            f"position | {ticker} | qty {self._format_qty(quantity)} | avg ${avg_cost:,.3f}"
        ]
        if leverage:
            parts.append(leverage)
        if current_price is not None:
            parts.append(f"price ${current_price:,.3f}")
        if unrealized_pnl is not None:
            parts.append(f"upl {unrealized_pnl:+,.2f}")
        self._logger.info(" | ".join(parts))

    def snapshot(self, at: str, ticker: str, cost_basis: float, realized_pnl: float) -> None:
        self._logger.info(
            "snapshot | %s | %s | cost $%s | realized %s",
            self._short_ts(at, "%Y-%m-%d %H:%M"),
            ticker,
            f"{cost_basis:,.2f}",
            f"{realized_pnl:+,.2f}",
        )

    def event(self, event_type: str, at: str, ref_count: int) -> None:
        self._logger.info(
            "event | %s | %s | refs %s",
            event_type,
            self._short_ts(at, "%Y-%m-%d %H:%M"),
            ref_count,
        )

    def error(self, message: str) -> None:
        self._logger.error("error | %s", message)

    @staticmethod
    def _short_id(value: str | None, head: int = 8) -> str:
        if not value:
            return ""
        text = str(value)
        return text if len(text) <= head else text[:head]

    @staticmethod
    def _format_qty(value: float) -> str:
        return format_amount(value)

    @staticmethod
    def _money_or_unknown(value: float | None) -> str:
        return "n/a" if value is None else f"${value:,.2f}"

    @staticmethod
    def _signed_or_unknown(value: float | None) -> str:
        return "n/a" if value is None else f"{value:+,.2f}"

    @staticmethod
    def _short_ts(value: str, pattern: str = "%Y-%m-%d") -> str:
        text = value.strip()
        if not text:
            return text
        normalized = text.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return text
        return parsed.strftime(pattern)
