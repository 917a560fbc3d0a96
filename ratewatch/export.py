"""
CSV and Markdown exports of rules and notification history.
"""

import csv
import io
import math
from typing import Any, Optional

from ratewatch.database.models import Rule, HistoryEntry

RULE_COLUMNS = [
    "id",
    "currency_from",
    "currency_to",
    "frequency",
    "time_of_day",
    "day_of_week",
    "last_exchange_rate",
    "threshold_percent",
    "notify_if_better",
    "notify_if_worse",
    "enabled",
]

HISTORY_COLUMNS = ["id", "date", "pair", "rate", "delta", "percent", "message"]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _to_csv(header: list[str], rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def rules_to_csv(rules: list[Rule]) -> str:
    """Render rules as CSV, one row per rule."""
    rows = [[_cell(getattr(rule, col)) for col in RULE_COLUMNS] for rule in rules]
    return _to_csv(RULE_COLUMNS, rows)


def history_to_csv(history: list[HistoryEntry]) -> str:
    """Render history as CSV in insertion order, BOM-prefixed for spreadsheets."""
    rows = [[_cell(getattr(entry, col)) for col in HISTORY_COLUMNS] for entry in history]
    return "\ufeff" + _to_csv(HISTORY_COLUMNS, rows)


def _number(value: Optional[float], digits: int, suffix: str = "") -> str:
    if value is None or not math.isfinite(value):
        return "-"
    return f"{value:.{digits}f}{suffix}"


def history_to_markdown(history: list[HistoryEntry]) -> str:
    """Render history as a Markdown table, newest first."""
    lines = [
        "# Notification History",
        "",
        "| Date | Pair | Rate | Delta | % | Message |",
        "| --- | --- | --- | --- | --- | --- |",
    ]
    for entry in reversed(history):
        date = entry.date.strftime("%Y-%m-%d %H:%M:%S") if entry.date else "-"
        message = (entry.message or "-").replace("|", "\\|")
        lines.append(
            f"| {date} | {entry.pair or '-'} | {_number(entry.rate, 4)} "
            f"| {_number(entry.delta, 4)} | {_number(entry.percent, 2, '%')} "
            f"| {message} |"
        )
    return "\n".join(lines) + "\n"
