"""
Periodic rule checks.

Every tick selects the enabled rules scheduled for the current minute,
refreshes the rate table if it is stale, evaluates each rule, sends
notifications and stores the new baseline rates.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional

from ratewatch.data.rates import RateProvider, DEFAULT_MAX_AGE
from ratewatch.database.models import Rule, HistoryEntry
from ratewatch.database.repository import (
    RuleRepository,
    HistoryRepository,
    StateRepository,
)
from ratewatch.notifiers.base import Notifier
from ratewatch.rules.engine import Direction, evaluate_rule

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Exchange rate alert"


def weekday_number(moment: datetime) -> int:
    """Day of week with 0 = Sunday, 1 = Monday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def is_due(rule: Rule, now: datetime) -> bool:
    """
    Check whether a rule is scheduled for the minute of `now`.

    Matching is exact to the minute; a missed minute is not caught up.
    """
    if not rule.enabled:
        return False
    try:
        hour, minute = rule.hour_minute
    except ValueError:
        return False
    if now.hour != hour or now.minute != minute:
        return False
    if rule.frequency == "weekly":
        day = rule.day_of_week if rule.day_of_week is not None else 0
        return weekday_number(now) == int(day)
    return True


@dataclass
class TickResult:
    """Counts from one scheduler tick."""

    due: int = 0
    checked: int = 0
    notified: int = 0
    skipped: int = 0


class Scheduler:
    """Runs rule checks on a fixed period in a background thread."""

    def __init__(
        self,
        rule_repo: RuleRepository,
        history_repo: HistoryRepository,
        state_repo: StateRepository,
        rate_provider: RateProvider,
        notifiers: Optional[list[Notifier]] = None,
        interval_seconds: float = 60.0,
        max_rate_age: timedelta = DEFAULT_MAX_AGE,
        timezone: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize scheduler.

        Args:
            rule_repo: Rule collection store
            history_repo: Notification history log
            state_repo: Store for the last-checked timestamp
            rate_provider: Source of exchange rates
            notifiers: Channels to notify; empty logs notifications only
            interval_seconds: Tick period, at most one minute
            max_rate_age: Age after which the rate table is refreshed
            timezone: Timezone of rule times; local time when None
            clock: Override for the current time, mainly for tests
        """
        self.rule_repo = rule_repo
        self.history_repo = history_repo
        self.state_repo = state_repo
        self.rate_provider = rate_provider
        self.notifiers = notifiers or []
        self.interval_seconds = interval_seconds
        self.max_rate_age = max_rate_age
        self.timezone = timezone
        self._clock = clock

        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._evaluated_minute: Optional[datetime] = None
        self._evaluated_rule_ids: set[str] = set()

    def now(self) -> datetime:
        """Current wall-clock time in the scheduler's timezone."""
        if self._clock is not None:
            return self._clock()
        return datetime.now(self.timezone)

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        """Start ticking. Calling start on a running scheduler does nothing."""
        with self._state_lock:
            if self._thread is not None:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event,),
                name="ratewatch-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Scheduler started (every {self.interval_seconds:g}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop ticking. A tick in progress runs to completion.

        Calling stop on a stopped scheduler does nothing.
        """
        with self._state_lock:
            thread = self._thread
            if thread is None:
                return
            self._thread = None
            self._stop_event.set()

        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Scheduler stopped")

    def run_forever(self) -> None:
        """Run until stopped or interrupted."""
        self.start()
        try:
            while True:
                thread = self._thread
                if thread is None or not thread.is_alive():
                    break
                thread.join(1.0)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def tick(self, now: Optional[datetime] = None) -> Optional[TickResult]:
        """
        Run one check.

        Never raises; failures are logged and the next tick proceeds.

        Returns:
            TickResult, or None if another tick was running or this one failed
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Previous tick still running, skipping")
            return None
        try:
            return self._run_tick(now or self.now())
        except Exception:
            logger.exception("Scheduler tick failed")
            return None
        finally:
            self._tick_lock.release()

    def _loop(self, stop_event: threading.Event) -> None:
        next_run = time.monotonic()
        while True:
            self.tick()
            # Fixed phase so ticks do not drift across minute boundaries
            next_run += self.interval_seconds
            current = time.monotonic()
            while next_run <= current:
                next_run += self.interval_seconds
            if stop_event.wait(next_run - current):
                break

    def _run_tick(self, now: datetime) -> TickResult:
        result = TickResult()
        rules = self.rule_repo.load()

        # Sub-minute periods must evaluate each rule at most once per minute
        minute = now.replace(second=0, microsecond=0)
        if minute != self._evaluated_minute:
            self._evaluated_minute = minute
            self._evaluated_rule_ids = set()
        due = [
            rule
            for rule in rules
            if rule.id not in self._evaluated_rule_ids and is_due(rule, now)
        ]

        if not due:
            self.state_repo.set_last_checked(now)
            return result

        self._evaluated_rule_ids.update(rule.id for rule in due)
        result.due = len(due)
        logger.info(f"{len(due)} rule(s) due at {now:%Y-%m-%d %H:%M}")

        self.rate_provider.ensure_fresh(self.max_rate_age)
        if self.rate_provider.last_refreshed is not None:
            self.state_repo.set_last_rate_fetch(self.rate_provider.last_refreshed)

        changed = False
        for rule in due:
            rate = self.rate_provider.get_rate(rule.currency_from, rule.currency_to)
            if rate is None:
                logger.info(f"No rate available for {rule.pair}, skipping rule {rule.id}")
                result.skipped += 1
                continue

            result.checked += 1
            evaluation = evaluate_rule(rule, rate)
            if evaluation.should_notify:
                self._notify(evaluation.message, evaluation.direction)
                self.history_repo.append(
                    HistoryEntry(
                        date=now,
                        pair=rule.pair,
                        rate=evaluation.rate,
                        delta=evaluation.delta,
                        percent=evaluation.percent,
                        message=evaluation.message,
                    )
                )
                result.notified += 1

            rule.last_exchange_rate = rate
            changed = True

        if changed:
            self.rule_repo.save(rules)
        self.state_repo.set_last_checked(now)
        return result

    def _notify(self, message: str, direction: Optional[Direction] = None) -> None:
        if not self.notifiers:
            logger.info(f"{NOTIFICATION_TITLE}: {message}")
            return

        for notifier in self.notifiers:
            try:
                outcome = notifier.notify(NOTIFICATION_TITLE, message, direction=direction)
            except Exception:
                logger.exception(f"{notifier.channel} notifier raised")
                continue
            if not outcome.success:
                logger.warning(f"{outcome.channel} notification failed: {outcome.error}")
