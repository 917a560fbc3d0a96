"""
Data model tests.
Tests for dataclass models and their validation.
"""

import math

import pytest
from dataclasses import FrozenInstanceError
from datetime import datetime

from ratewatch.database.models import Rule, HistoryEntry


class TestRuleModel:
    """Test Rule model."""

    def test_create_rule_defaults(self):
        """Should create a rule with default policy."""
        rule = Rule(currency_from="EUR", currency_to="USD")
        assert rule.frequency == "daily"
        assert rule.time_of_day == "09:00"
        assert rule.day_of_week is None
        assert rule.threshold_percent is None
        assert rule.notify_if_better is True
        assert rule.notify_if_worse is True
        assert rule.enabled is True
        assert rule.last_exchange_rate is None
        assert rule.id

    def test_ids_are_unique(self):
        """Should generate distinct ids."""
        assert Rule("EUR", "USD").id != Rule("EUR", "USD").id

    def test_currency_codes_normalized(self):
        """Should upper-case and strip currency codes."""
        rule = Rule(currency_from=" eur", currency_to="usd ")
        assert rule.currency_from == "EUR"
        assert rule.currency_to == "USD"

    def test_pair_label(self):
        """Should label the pair with an arrow."""
        assert Rule("EUR", "USD").pair == "EUR → USD"

    def test_hour_minute(self):
        """Should split time of day."""
        assert Rule("EUR", "USD", time_of_day="17:05").hour_minute == (17, 5)


class TestRuleValidation:
    """Test Rule.validate invariants."""

    def test_valid_daily_rule(self):
        """Should accept a valid daily rule."""
        Rule("EUR", "USD", threshold_percent=2.5).validate()

    def test_valid_weekly_rule(self):
        """Should accept a weekly rule with a day."""
        Rule("EUR", "USD", frequency="weekly", day_of_week=1).validate()

    def test_weekly_requires_day(self):
        """Should reject a weekly rule without a day."""
        with pytest.raises(ValueError, match="day of week"):
            Rule("EUR", "USD", frequency="weekly").validate()

    @pytest.mark.parametrize("day", [-1, 7])
    def test_day_out_of_range(self, day):
        """Should reject days outside 0-6."""
        with pytest.raises(ValueError):
            Rule("EUR", "USD", frequency="weekly", day_of_week=day).validate()

    @pytest.mark.parametrize("threshold", [-0.1, math.inf, math.nan])
    def test_invalid_threshold(self, threshold):
        """Should reject negative or non-finite thresholds."""
        with pytest.raises(ValueError, match="Threshold"):
            Rule("EUR", "USD", threshold_percent=threshold).validate()

    def test_zero_threshold_allowed(self):
        """Should accept a zero threshold."""
        Rule("EUR", "USD", threshold_percent=0).validate()

    @pytest.mark.parametrize("time_of_day", ["9:00", "24:00", "12:60", "noon"])
    def test_invalid_time(self, time_of_day):
        """Should reject malformed times."""
        with pytest.raises(ValueError, match="time of day"):
            Rule("EUR", "USD", time_of_day=time_of_day).validate()

    def test_invalid_frequency(self):
        """Should reject unknown frequencies."""
        with pytest.raises(ValueError, match="frequency"):
            Rule("EUR", "USD", frequency="hourly").validate()

    @pytest.mark.parametrize("code", ["", "EU", "EURO", "E1R"])
    def test_invalid_currency(self, code):
        """Should reject malformed currency codes."""
        with pytest.raises(ValueError, match="currency"):
            Rule(code, "USD").validate()


class TestHistoryEntryModel:
    """Test HistoryEntry model."""

    def test_create_entry(self):
        """Should create a history entry with generated id and date."""
        entry = HistoryEntry(
            pair="EUR → USD",
            rate=1.12,
            delta=0.02,
            percent=1.818,
            message="EUR → USD is now 1.12",
        )
        assert entry.id
        assert isinstance(entry.date, datetime)

    def test_entry_is_immutable(self):
        """Should not allow mutation once created."""
        entry = HistoryEntry(pair="EUR → USD", rate=1.12, message="x")
        with pytest.raises(FrozenInstanceError):
            entry.rate = 2.0
