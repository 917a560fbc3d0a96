"""
Rule engine tests.
Tests for rate rule evaluation.
"""

import math

import pytest

from ratewatch.database.models import Rule
from ratewatch.rules.engine import (
    Direction,
    Evaluation,
    evaluate_rule,
    format_rate,
    next_run_preview,
)


def make_rule(**overrides) -> Rule:
    fields = {"currency_from": "EUR", "currency_to": "USD", "last_exchange_rate": 1.10}
    fields.update(overrides)
    return Rule(**fields)


class TestBaseline:
    """Test first observation of a rule."""

    @pytest.mark.parametrize("last", [None, math.nan, math.inf])
    def test_no_prior_rate_never_notifies(self, last):
        """Should not notify and should return the observed rate."""
        result = evaluate_rule(make_rule(last_exchange_rate=last), 1.12)

        assert result.should_notify is False
        assert result.kind is None
        assert result.rate == 1.12
        assert result.delta is None
        assert result.percent is None


class TestChange:
    """Test delta and percent computation."""

    @pytest.mark.parametrize(
        "last,current",
        [(1.10, 1.12), (161.5, 158.2), (0.85, 0.85), (19.8, 21.0)],
    )
    def test_percent_formula(self, last, current):
        """Should compute percent exactly as delta / last * 100."""
        result = evaluate_rule(make_rule(last_exchange_rate=last), current)

        assert result.delta == current - last
        assert result.percent == (current - last) / last * 100

    def test_zero_last_rate(self):
        """Should report zero percent when the last rate is zero."""
        result = evaluate_rule(make_rule(last_exchange_rate=0.0), 1.5)

        assert result.delta == 1.5
        assert result.percent == 0

    def test_change_reported_without_notify(self):
        """Should report delta and percent even when not notifying."""
        result = evaluate_rule(make_rule(threshold_percent=5), 1.12)

        assert result.should_notify is False
        assert result.delta == pytest.approx(0.02)
        assert result.direction == Direction.BETTER


class TestDirection:
    """Test direction and notify flag combinations."""

    def test_better_scenario(self):
        """Should notify better on 1.10 -> 1.12 without threshold."""
        result = evaluate_rule(make_rule(), 1.12)

        assert result.should_notify is True
        assert result.kind == Direction.BETTER
        assert result.delta == pytest.approx(0.02)
        assert result.percent == pytest.approx(1.818, abs=1e-3)
        assert result.rate == 1.12

    def test_threshold_blocks_small_move(self):
        """Should not notify when the move is below the threshold."""
        result = evaluate_rule(make_rule(threshold_percent=5), 1.12)

        assert result.should_notify is False
        assert result.kind is None

    def test_worse(self):
        """Should notify worse when the rate falls."""
        result = evaluate_rule(make_rule(), 1.05)

        assert result.should_notify is True
        assert result.kind == Direction.WORSE
        assert result.delta < 0

    def test_better_disabled(self):
        """Should not notify a rise when better notifications are off."""
        result = evaluate_rule(make_rule(notify_if_better=False), 1.12)
        assert result.should_notify is False

    def test_worse_disabled(self):
        """Should not notify a fall when worse notifications are off."""
        result = evaluate_rule(make_rule(notify_if_worse=False), 1.05)
        assert result.should_notify is False

    def test_worse_only_rule_still_notifies_fall(self):
        """Should notify a fall when only worse notifications are on."""
        result = evaluate_rule(make_rule(notify_if_better=False), 1.05)
        assert result.kind == Direction.WORSE

    def test_unchanged_rate(self):
        """Should never notify when the rate is unchanged."""
        result = evaluate_rule(make_rule(threshold_percent=0), 1.10)

        assert result.should_notify is False
        assert result.direction is None
        assert result.delta == 0

    @pytest.mark.parametrize(
        "better,worse,current,expected",
        [
            (True, True, 1.2, Direction.BETTER),
            (True, True, 1.0, Direction.WORSE),
            (True, False, 1.2, Direction.BETTER),
            (True, False, 1.0, None),
            (False, True, 1.2, None),
            (False, True, 1.0, Direction.WORSE),
            (False, False, 1.2, None),
            (False, False, 1.0, None),
        ],
    )
    def test_flag_matrix(self, better, worse, current, expected):
        """Should fire only when the direction's flag is set."""
        rule = make_rule(notify_if_better=better, notify_if_worse=worse)
        assert evaluate_rule(rule, current).kind == expected


class TestThreshold:
    """Test threshold gate boundaries."""

    def test_inclusive_boundary(self):
        """Should notify when percent equals the threshold."""
        rule = make_rule(last_exchange_rate=2.0, threshold_percent=25)
        result = evaluate_rule(rule, 2.5)  # exactly +25%

        assert result.percent == 25.0
        assert result.should_notify is True

    def test_just_below_boundary(self):
        """Should not notify just below the threshold."""
        rule = make_rule(last_exchange_rate=2.0, threshold_percent=25)
        result = evaluate_rule(rule, 2.4999)

        assert result.should_notify is False

    def test_negative_move_uses_absolute_percent(self):
        """Should compare the absolute percent for falls."""
        rule = make_rule(last_exchange_rate=2.0, threshold_percent=5)
        assert evaluate_rule(rule, 1.9).kind == Direction.WORSE
        assert evaluate_rule(rule, 1.95).kind is None

    def test_non_finite_threshold_passes(self):
        """Should treat a non-finite threshold as absent."""
        rule = make_rule(threshold_percent=math.nan)
        assert evaluate_rule(rule, 1.1001).should_notify is True


class TestMessages:
    """Test notification message formatting."""

    def test_better_message(self):
        """Should describe the improved rate."""
        result = evaluate_rule(make_rule(), 1.12)

        assert result.message == (
            "EUR → USD is now 1.12 (was 1.10). Good time to exchange 💱"
        )

    def test_worse_message(self):
        """Should describe the dropped rate."""
        result = evaluate_rule(make_rule(), 1.05)

        assert result.message == "EUR → USD dropped to 1.05 (last 1.10)"

    def test_no_message_without_notify(self):
        """Should leave message empty when not notifying."""
        assert evaluate_rule(make_rule(notify_if_better=False), 1.12).message is None


class TestFormatRate:
    """Test rate formatting."""

    @pytest.mark.parametrize(
        "rate,expected",
        [
            (1.1, "1.10"),
            (0, "0.00"),
            (999.994, "999.99"),
            (1000, "1.00e+03"),
            (161234.0, "1.61e+05"),
            (0.01, "0.01"),
            (0.00123, "1.23e-03"),
            (-0.005, "-5.00e-03"),
            (None, "n/a"),
            (math.nan, "n/a"),
        ],
    )
    def test_format(self, rate, expected):
        assert format_rate(rate) == expected


class TestNextRunPreview:
    """Test schedule descriptions."""

    def test_daily(self):
        assert next_run_preview(make_rule(time_of_day="08:15")) == "Daily 08:15"

    def test_weekly(self):
        rule = make_rule(frequency="weekly", day_of_week=1, time_of_day="09:00")
        assert next_run_preview(rule) == "Mon 09:00"

    def test_weekly_sunday(self):
        rule = make_rule(frequency="weekly", day_of_week=0, time_of_day="20:00")
        assert next_run_preview(rule) == "Sun 20:00"


class TestEvaluation:
    """Test Evaluation helpers."""

    def test_kind_only_when_notifying(self):
        """Should hide the direction when nothing fires."""
        evaluation = Evaluation(rate=1.0, direction=Direction.BETTER)
        assert evaluation.kind is None
