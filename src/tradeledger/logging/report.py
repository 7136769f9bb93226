"""Event log export and Plotly history report."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.express as px

from tradeledger.domain.events import Event


def export_events_jsonl(events: Iterable[Event], path: str | Path) -> int:
    """Write events as JSONL, oldest first. Returns the number of lines written."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    ordered = sorted(events, key=lambda event: (event.at, event.created_at))
    with output_path.open("w", encoding="utf-8") as handle:
        for event in ordered:
            handle.write(json.dumps(event.to_record(), sort_keys=True))
            handle.write("\n")
    return len(ordered)


def load_events(path: str | Path) -> list[dict[str, Any]]:
    """Load JSONL records from disk."""
    records: list[dict[str, Any]] = []
    input_path = Path(path)
    if not input_path.exists():
        return records
    with input_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            text = line.strip()
            if not text:
                continue
            records.append(json.loads(text))
    return records


def generate_history_report(
    frame: pd.DataFrame,
    events: Iterable[Event],
    output_html_path: str | Path,
) -> None:
    """Render cost basis, realized P&L and event counts into one HTML page."""
    output = Path(output_html_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    if frame.empty:
        empty_df = pd.DataFrame({"series": ["no-trades"], "value": [0]})
        history = px.bar(empty_df, x="series", y="value", title="Portfolio History")
    else:
        series = frame.reset_index()[["at", "cost_basis", "portfolio_value", "cumulative_realized_pnl"]]
        long_form = series.melt(id_vars="at", var_name="series", value_name="value")
        history = px.line(
            long_form,
            x="at",
            y="value",
            color="series",
            markers=True,
            title="Portfolio History",
        )

    rows = [{"event_type": event.type, "at": event.at} for event in events]
    if rows:
        counts = pd.DataFrame(rows).groupby("event_type").size().reset_index(name="count")
    else:
        counts = pd.DataFrame({"event_type": ["none"], "count": [0]})
    bars = px.bar(counts, x="event_type", y="count", title="Event Counts")

    html_parts = [
        "<html><head><meta charset='utf-8'><title>tradeledger history report</title></head><body>",
        history.to_html(full_html=False, include_plotlyjs="cdn"),
        bars.to_html(full_html=False, include_plotlyjs=False),
        "</body></html>",
    ]
    output.write_text("".join(html_parts), encoding="utf-8")
