"""
Rule evaluation engine.

Better means the rate went up (more units of the target currency per unit
of the source currency); worse means it went down.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ratewatch.database.models import Rule

__all__ = ["Direction", "Evaluation", "evaluate_rule", "format_rate", "next_run_preview"]

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class Direction(str, Enum):
    """Direction of a rate move."""

    BETTER = "better"
    WORSE = "worse"


@dataclass(frozen=True)
class Evaluation:
    """Outcome of evaluating a rule against an observed rate."""

    rate: float
    should_notify: bool = False
    direction: Optional[Direction] = None
    message: Optional[str] = None
    delta: Optional[float] = None
    percent: Optional[float] = None

    @property
    def kind(self) -> Optional[Direction]:
        """Direction that triggered a notification, if any."""
        return self.direction if self.should_notify else None


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def evaluate_rule(rule: Rule, current_rate: float) -> Evaluation:
    """
    Evaluate a rule against the current exchange rate.

    A rule without a usable previous rate never notifies; the caller stores
    `current_rate` as its new baseline either way.

    Args:
        rule: Rule holding the previous rate and notification policy
        current_rate: Freshly observed rate

    Returns:
        Evaluation with the notify decision and computed change
    """
    last = rule.last_exchange_rate
    if not _is_number(last):
        return Evaluation(rate=current_rate)

    delta = current_rate - last
    percent = 0.0 if last == 0 else delta / last * 100

    direction = None
    if delta > 0:
        direction = Direction.BETTER
    elif delta < 0:
        direction = Direction.WORSE

    threshold = rule.threshold_percent
    over_threshold = not _is_number(threshold) or abs(percent) >= threshold

    message = None
    if over_threshold and direction == Direction.BETTER and rule.notify_if_better:
        message = (
            f"{rule.pair} is now {format_rate(current_rate)} "
            f"(was {format_rate(last)}). Good time to exchange 💱"
        )
    elif over_threshold and direction == Direction.WORSE and rule.notify_if_worse:
        message = (
            f"{rule.pair} dropped to {format_rate(current_rate)} "
            f"(last {format_rate(last)})"
        )

    return Evaluation(
        rate=current_rate,
        should_notify=message is not None,
        direction=direction,
        message=message,
        delta=delta,
        percent=percent,
    )


def format_rate(rate: Optional[float]) -> str:
    """Format a rate for messages."""
    if not _is_number(rate):
        return "n/a"
    if abs(rate) >= 1000 or (rate != 0 and abs(rate) < 0.01):
        return f"{rate:.2e}"
    return f"{rate:.2f}"


def next_run_preview(rule: Rule) -> str:
    """Describe when a rule runs, e.g. "Daily 09:00" or "Mon 09:00"."""
    time_of_day = rule.time_of_day or "09:00"
    if rule.frequency == "weekly" and rule.day_of_week is not None:
        try:
            day = WEEKDAY_NAMES[int(rule.day_of_week)]
        except (IndexError, ValueError):
            day = "?"
        return f"{day} {time_of_day}"
    return f"Daily {time_of_day}"
