"""
Integration tests.
Tests the application wiring from rate fetch to notification delivery.
"""

import pytest
from datetime import datetime
from unittest.mock import patch, MagicMock

import requests

from ratewatch.config import (
    AppConfig,
    DiscordNotificationConfig,
    EmailNotificationConfig,
    NotificationsConfig,
)
from ratewatch.database.models import Rule
from ratewatch.healthcheck import build_status_report, run_healthcheck
from ratewatch.main import RateWatchApp, build_notifiers
from ratewatch.notifiers.discord import DiscordNotifier
from ratewatch.notifiers.email import EmailNotifier

MONDAY_9AM = datetime(2026, 10, 19, 9, 0)


def ecb_response(xml: str) -> MagicMock:
    response = MagicMock(status_code=200)
    response.text = xml
    return response


class TestBuildNotifiers:
    """Test notifier construction from config."""

    def test_none_configured(self):
        assert build_notifiers(NotificationsConfig()) == []

    def test_all_configured(self):
        config = NotificationsConfig(
            discord=DiscordNotificationConfig(webhook_url="https://discord.com/api/webhooks/1/a"),
            email=EmailNotificationConfig(
                smtp_host="smtp.example.com", to_addresses=["me@example.com"]
            ),
        )

        notifiers = build_notifiers(config)

        assert [type(n) for n in notifiers] == [DiscordNotifier, EmailNotifier]

    def test_email_without_recipients_skipped(self):
        config = NotificationsConfig(email=EmailNotificationConfig(smtp_host="smtp.example.com"))
        assert build_notifiers(config) == []


class TestRateWatchApp:
    """Test a full check through the application."""

    @pytest.fixture
    def app(self, db, sample_discord_webhook_url):
        config = AppConfig()
        config.notifications.discord.webhook_url = sample_discord_webhook_url
        config.advanced.max_retries = 1
        config.advanced.retry_delay_seconds = 0
        app = RateWatchApp(db=db, config=config)
        app.scheduler._clock = lambda: MONDAY_9AM
        return app

    def test_check_notifies_discord(self, app, sample_ecb_xml):
        """Should fetch rates, post to Discord and record history."""
        rule = app.rule_repo.add(Rule("EUR", "USD", last_exchange_rate=1.10))

        with patch("requests.get", return_value=ecb_response(sample_ecb_xml)) as mock_get, \
             patch("requests.post") as mock_post:
            mock_post.return_value.status_code = 204
            mock_post.return_value.ok = True

            result = app.run_check()

        assert result.notified == 1
        mock_get.assert_called_once()
        assert mock_get.call_args.kwargs["timeout"] == 30
        embed = mock_post.call_args.kwargs["json"]["embeds"][0]
        assert embed["title"] == "Exchange rate alert"
        assert embed["color"] == DiscordNotifier.COLOR_BETTER
        assert app.rule_repo.get(rule.id).last_exchange_rate == 1.12
        assert len(app.history_repo.load()) == 1
        assert app.state_repo.get_last_checked() == MONDAY_9AM

    def test_cross_rate_worse(self, app, sample_ecb_xml):
        """Should detect a worse cross rate between two non-base currencies."""
        app.rule_repo.add(Rule("GBP", "USD", last_exchange_rate=1.40))

        with patch("requests.get", return_value=ecb_response(sample_ecb_xml)), \
             patch("requests.post") as mock_post:
            mock_post.return_value.status_code = 204
            mock_post.return_value.ok = True

            app.run_check()

        embed = mock_post.call_args.kwargs["json"]["embeds"][0]
        assert embed["description"].startswith("GBP → USD dropped to 1.32")
        assert embed["color"] == DiscordNotifier.COLOR_WORSE

    def test_fetch_failure_skips_rules(self, app):
        """Should leave baselines untouched when rates are unavailable."""
        rule = app.rule_repo.add(Rule("EUR", "USD", last_exchange_rate=1.10))

        with patch("requests.get", side_effect=requests.exceptions.Timeout("slow")), \
             patch("requests.post") as mock_post:
            result = app.run_check()

        assert result.skipped == 1
        mock_post.assert_not_called()
        assert app.rule_repo.get(rule.id).last_exchange_rate == 1.10
        assert app.history_repo.load() == []

    def test_cached_rates_reused(self, app, sample_ecb_xml):
        """Should not refetch a fresh table on the next due minute."""
        app.rule_repo.add(Rule("EUR", "USD", time_of_day="09:00"))
        app.rule_repo.add(Rule("EUR", "JPY", time_of_day="09:01"))

        with patch("requests.get", return_value=ecb_response(sample_ecb_xml)) as mock_get:
            app.scheduler.tick(MONDAY_9AM)
            app.scheduler.tick(MONDAY_9AM.replace(minute=1))

        assert mock_get.call_count == 1


class TestHealthcheck:
    """Test status reporting."""

    def test_report_contents(self, db):
        app = RateWatchApp(db=db, notifiers=[])
        app.rule_repo.add(Rule("EUR", "USD", threshold_percent=2, last_exchange_rate=1.1))
        app.rule_repo.add(Rule("EUR", "JPY", enabled=False))

        report = build_status_report(db)

        assert "Rules: 1 enabled / 2 total" in report
        assert "EUR → USD: Daily 09:00, ±2%, last 1.10" in report
        assert "EUR → JPY" not in report
        assert "Last check: never" in report

    def test_sends_to_each_notifier(self, db, sample_discord_webhook_url):
        notifier = DiscordNotifier(webhook_url=sample_discord_webhook_url)

        with patch("requests.post") as mock_post:
            mock_post.return_value.status_code = 204
            mock_post.return_value.ok = True

            results = run_healthcheck(db, [notifier])

        assert [r.success for r in results] == [True]
        embed = mock_post.call_args.kwargs["json"]["embeds"][0]
        assert embed["title"] == "ratewatch health check"

    def test_no_notifiers(self, db):
        assert run_healthcheck(db, []) == []
