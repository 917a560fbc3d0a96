"""
Data models for ratewatch.
"""

import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

FREQUENCIES = ("daily", "weekly")

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def new_id() -> str:
    """Generate a stable unique identifier."""
    return uuid.uuid4().hex


@dataclass
class Rule:
    """Currency pair watch rule."""

    currency_from: str
    currency_to: str
    frequency: str = "daily"  # "daily", "weekly"
    time_of_day: str = "09:00"
    day_of_week: Optional[int] = None  # 0 = Sunday ... 6 = Saturday, weekly only
    threshold_percent: Optional[float] = None  # None = any change counts
    notify_if_better: bool = True
    notify_if_worse: bool = True
    enabled: bool = True
    last_exchange_rate: Optional[float] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.currency_from = (self.currency_from or "").strip().upper()
        self.currency_to = (self.currency_to or "").strip().upper()

    @property
    def pair(self) -> str:
        """Human readable pair label."""
        return f"{self.currency_from} → {self.currency_to}"

    @property
    def hour_minute(self) -> tuple[int, int]:
        """Scheduled time as (hour, minute)."""
        hour, minute = self.time_of_day.split(":")
        return int(hour), int(minute)

    def validate(self) -> None:
        """
        Check rule invariants.

        Raises:
            ValueError: If any field is out of range
        """
        for code in (self.currency_from, self.currency_to):
            if not _CURRENCY_PATTERN.match(code):
                raise ValueError(f"Invalid currency code: {code!r}")

        if self.frequency not in FREQUENCIES:
            raise ValueError(f"Unknown frequency: {self.frequency!r}")

        if not isinstance(self.time_of_day, str) or not _TIME_PATTERN.match(
            self.time_of_day
        ):
            raise ValueError(f"Invalid time of day (expected HH:MM): {self.time_of_day!r}")

        if self.frequency == "weekly":
            if self.day_of_week is None:
                raise ValueError("Weekly rules require a day of week")
        if self.day_of_week is not None and not 0 <= int(self.day_of_week) <= 6:
            raise ValueError(f"Day of week must be 0-6: {self.day_of_week}")

        if self.threshold_percent is not None:
            threshold = float(self.threshold_percent)
            if not math.isfinite(threshold) or threshold < 0:
                raise ValueError(
                    f"Threshold must be a non-negative number: {self.threshold_percent}"
                )


@dataclass(frozen=True)
class HistoryEntry:
    """Record of a sent rate notification."""

    pair: str
    rate: float
    message: str
    delta: Optional[float] = None
    percent: Optional[float] = None
    date: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)
