"""Logging helpers."""

from .logger import HumanLogger
from .report import export_events_jsonl, generate_history_report, load_events

__all__ = ["HumanLogger", "export_events_jsonl", "generate_history_report", "load_events"]
