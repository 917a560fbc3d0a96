"""
Repository classes for rules, history and scheduler state.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from .connection import Database
from .models import Rule, HistoryEntry

logger = logging.getLogger(__name__)


class RuleRepository:
    """Rule collection persisted as a whole."""

    def __init__(self, db: Database):
        self.db = db

    def load(self) -> list[Rule]:
        """
        Load every stored rule in insertion order.

        Unreadable storage yields an empty list and invalid rows are skipped.
        """
        try:
            rules, skipped = self._read()
        except sqlite3.Error as e:
            logger.warning(f"Could not read rules, using empty collection: {e}")
            return []

        for rule_id, error in skipped:
            logger.warning(f"Skipping invalid stored rule {rule_id}: {error}")
        return rules

    def save(self, rules: list[Rule]) -> None:
        """
        Replace the stored collection with `rules` in one transaction.

        Rows that `load` skips are kept unless `rules` carries the same id.
        """
        connection = self.db.connection
        try:
            _, skipped = self._read()
            keep = [rule_id for rule_id, _ in skipped if rule_id not in {r.id for r in rules}]

            cursor = connection.cursor()
            if keep:
                placeholders = ", ".join("?" for _ in keep)
                cursor.execute(f"DELETE FROM rules WHERE id NOT IN ({placeholders})", keep)
            else:
                cursor.execute("DELETE FROM rules")
            cursor.executemany(
                """
                INSERT INTO rules (
                    id, position, currency_from, currency_to, frequency,
                    time_of_day, day_of_week, threshold_percent,
                    notify_if_better, notify_if_worse, enabled, last_exchange_rate
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [self._rule_to_params(pos, rule) for pos, rule in enumerate(rules)],
            )
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.warning(f"Could not save {len(rules)} rules: {e}")

    def get(self, rule_id: str) -> Optional[Rule]:
        """Get rule by ID."""
        for rule in self.load():
            if rule.id == rule_id:
                return rule
        return None

    def add(self, rule: Rule) -> Rule:
        """Validate and append a new rule."""
        rule.validate()
        rules = self.load()
        if any(r.id == rule.id for r in rules):
            raise ValueError(f"Rule already exists: {rule.id}")
        rules.append(rule)
        self.save(rules)
        return rule

    def update(self, rule: Rule) -> Optional[Rule]:
        """
        Replace an existing rule's definition.

        The stored id and last exchange rate are kept.

        Returns:
            The updated rule, or None if no rule has that id
        """
        rule.validate()
        rules = self.load()
        for idx, existing in enumerate(rules):
            if existing.id == rule.id:
                rule.last_exchange_rate = existing.last_exchange_rate
                rules[idx] = rule
                self.save(rules)
                return rule
        return None

    def toggle(self, rule_id: str) -> Optional[Rule]:
        """Flip a rule's enabled flag."""
        rules = self.load()
        for rule in rules:
            if rule.id == rule_id:
                rule.enabled = not rule.enabled
                self.save(rules)
                return rule
        return None

    def delete(self, rule_id: str) -> bool:
        """Delete rule, including one `load` skips. Returns False if it did not exist."""
        connection = self.db.connection
        try:
            cursor = connection.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.warning(f"Could not delete rule {rule_id}: {e}")
            return False
        return cursor.rowcount > 0

    def _read(self) -> tuple[list[Rule], list[tuple[str, str]]]:
        """Read stored rows as (valid rules, [(id, error) for invalid rows])."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM rules ORDER BY position")

        rules = []
        skipped = []
        for row in cursor.fetchall():
            try:
                rule = self._row_to_rule(row)
                rule.validate()
            except (ValueError, TypeError) as e:
                skipped.append((row["id"], str(e)))
                continue
            rules.append(rule)
        return rules, skipped

    def _rule_to_params(self, position: int, rule: Rule) -> tuple:
        return (
            rule.id,
            position,
            rule.currency_from,
            rule.currency_to,
            rule.frequency,
            rule.time_of_day,
            rule.day_of_week,
            rule.threshold_percent,
            int(rule.notify_if_better),
            int(rule.notify_if_worse),
            int(rule.enabled),
            rule.last_exchange_rate,
        )

    def _row_to_rule(self, row) -> Rule:
        """Convert database row to Rule."""
        day_of_week = row["day_of_week"]
        if row["frequency"] == "weekly" and day_of_week is None:
            day_of_week = 0  # Sunday, as the scheduler treats it
        return Rule(
            id=row["id"],
            currency_from=row["currency_from"],
            currency_to=row["currency_to"],
            frequency=row["frequency"],
            time_of_day=row["time_of_day"],
            day_of_week=day_of_week,
            threshold_percent=row["threshold_percent"],
            notify_if_better=bool(row["notify_if_better"]),
            notify_if_worse=bool(row["notify_if_worse"]),
            enabled=bool(row["enabled"]),
            last_exchange_rate=row["last_exchange_rate"],
        )


class HistoryRepository:
    """Append-only log of sent notifications."""

    def __init__(self, db: Database):
        self.db = db

    def append(self, entry: HistoryEntry) -> None:
        """Append a history entry."""
        connection = self.db.connection
        try:
            connection.execute(
                """
                INSERT INTO history (id, date, pair, rate, delta, percent, message)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.date.isoformat(),
                    entry.pair,
                    entry.rate,
                    entry.delta,
                    entry.percent,
                    entry.message,
                ),
            )
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.warning(f"Could not append history entry {entry.id}: {e}")

    def load(self) -> list[HistoryEntry]:
        """Load all entries in insertion order."""
        try:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT * FROM history ORDER BY rowid")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Could not read history, using empty log: {e}")
            return []

        entries = []
        for row in rows:
            try:
                entries.append(self._row_to_entry(row))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable history entry {row['id']}: {e}")
        return entries

    def _row_to_entry(self, row) -> HistoryEntry:
        return HistoryEntry(
            id=row["id"],
            date=datetime.fromisoformat(row["date"]),
            pair=row["pair"],
            rate=row["rate"],
            delta=row["delta"],
            percent=row["percent"],
            message=row["message"],
        )


class StateRepository:
    """Timestamps kept between runs."""

    LAST_SCHEDULER_CHECK = "last_scheduler_check"
    LAST_RATE_FETCH = "last_rate_fetch"

    def __init__(self, db: Database):
        self.db = db

    def get_last_checked(self) -> Optional[datetime]:
        return self._get_timestamp(self.LAST_SCHEDULER_CHECK)

    def set_last_checked(self, when: datetime) -> None:
        self._set_timestamp(self.LAST_SCHEDULER_CHECK, when)

    def get_last_rate_fetch(self) -> Optional[datetime]:
        return self._get_timestamp(self.LAST_RATE_FETCH)

    def set_last_rate_fetch(self, when: datetime) -> None:
        self._set_timestamp(self.LAST_RATE_FETCH, when)

    def _get_timestamp(self, key: str) -> Optional[datetime]:
        try:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT value FROM app_state WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Could not read state {key}: {e}")
            return None
        if row is None or not row["value"]:
            return None
        try:
            return datetime.fromisoformat(row["value"])
        except ValueError:
            return None

    def _set_timestamp(self, key: str, when: datetime) -> None:
        connection = self.db.connection
        try:
            connection.execute(
                """
                INSERT INTO app_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, when.isoformat()),
            )
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.warning(f"Could not write state {key}: {e}")
