"""
Health check - sends a status summary through the configured notifiers.
"""

import logging
from datetime import datetime

from ratewatch.database.connection import Database
from ratewatch.database.repository import RuleRepository, StateRepository
from ratewatch.notifiers.base import Notifier, NotificationResult
from ratewatch.rules.engine import format_rate, next_run_preview

logger = logging.getLogger(__name__)


def build_status_report(db: Database) -> str:
    """Summarize enabled rules and the last scheduler activity."""
    rules = RuleRepository(db).load()
    state = StateRepository(db)
    enabled = [r for r in rules if r.enabled]

    rule_lines = []
    for r in enabled:
        line = f"{r.pair}: {next_run_preview(r)}"
        if r.threshold_percent is not None:
            line += f", ±{r.threshold_percent:g}%"
        if r.last_exchange_rate is not None:
            line += f", last {format_rate(r.last_exchange_rate)}"
        rule_lines.append(line)

    last_checked = state.get_last_checked()
    last_fetch = state.get_last_rate_fetch()

    lines = [
        f"Rules: {len(enabled)} enabled / {len(rules)} total",
        *rule_lines,
        "",
        f"Last check: {last_checked:%Y-%m-%d %H:%M:%S}" if last_checked else "Last check: never",
        f"Last rate fetch: {last_fetch:%Y-%m-%d %H:%M:%S}" if last_fetch else "Last rate fetch: never",
    ]
    return "\n".join(lines)


def run_healthcheck(db: Database, notifiers: list[Notifier]) -> list[NotificationResult]:
    """Run health check and send status to every notifier.

    Args:
        db: Database instance (already initialized)
        notifiers: Channels to report to

    Returns:
        One result per notifier
    """
    if not notifiers:
        logger.warning("No notifiers configured, health check not sent")
        return []

    report = build_status_report(db)
    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    results = []
    for notifier in notifiers:
        result = notifier.notify("ratewatch health check", report)
        if result.success:
            logger.info(f"{now} - Health check sent via {result.channel}")
        else:
            logger.warning(f"Health check via {result.channel} failed: {result.error}")
        results.append(result)
    return results
