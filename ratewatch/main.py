"""
Main application entry point.
"""

import logging
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from ratewatch.config import AppConfig, NotificationsConfig
from ratewatch.database.connection import Database
from ratewatch.database.repository import (
    RuleRepository,
    HistoryRepository,
    StateRepository,
)
from ratewatch.data.rates import RateProvider
from ratewatch.notifiers.base import Notifier, NotifierFactory
from ratewatch.scheduler import Scheduler, TickResult

logger = logging.getLogger(__name__)


def build_notifiers(config: NotificationsConfig) -> list[Notifier]:
    """Create a notifier for every configured channel."""
    notifiers = []
    if config.discord.webhook_url:
        notifiers.append(
            NotifierFactory.create(
                {
                    "type": "discord",
                    "webhook_url": config.discord.webhook_url,
                    "username": config.discord.username,
                }
            )
        )
    if config.email.smtp_host and config.email.to_addresses:
        notifiers.append(
            NotifierFactory.create(
                {
                    "type": "email",
                    "smtp_host": config.email.smtp_host,
                    "smtp_port": config.email.smtp_port,
                    "smtp_user": config.email.smtp_user,
                    "smtp_password": config.email.smtp_password,
                    "from_address": config.email.from_address,
                    "to_addresses": config.email.to_addresses,
                }
            )
        )
    return notifiers


class RateWatchApp:
    """Main ratewatch application."""

    def __init__(
        self,
        db: Database,
        config: Optional[AppConfig] = None,
        notifiers: Optional[list[Notifier]] = None,
        rate_provider: Optional[RateProvider] = None,
    ):
        """
        Initialize ratewatch app.

        Args:
            db: Database instance
            config: Application configuration, defaults when None
            notifiers: Override for the configured notifiers
            rate_provider: Override for the configured rate provider
        """
        self.db = db
        self.config = config or AppConfig()

        # Initialize repositories
        self.rule_repo = RuleRepository(db)
        self.history_repo = HistoryRepository(db)
        self.state_repo = StateRepository(db)

        # Initialize services
        source = self.config.data_source
        self.rate_provider = rate_provider or RateProvider(
            url=source.url,
            base_currency=source.base_currency,
            timeout=source.timeout_seconds,
            max_retries=self.config.advanced.max_retries,
            retry_delay=self.config.advanced.retry_delay_seconds,
        )
        if notifiers is None:
            notifiers = build_notifiers(self.config.notifications)
        self.notifiers = notifiers

        self.scheduler = Scheduler(
            rule_repo=self.rule_repo,
            history_repo=self.history_repo,
            state_repo=self.state_repo,
            rate_provider=self.rate_provider,
            notifiers=self.notifiers,
            interval_seconds=self.config.schedule.interval_seconds,
            max_rate_age=timedelta(hours=source.max_age_hours),
            timezone=self.config.schedule.tzinfo(),
        )

    def run_check(self) -> Optional[TickResult]:
        """Run a single scheduler tick."""
        return self.scheduler.tick()

    def run_forever(self) -> None:
        """Tick until interrupted."""
        if not self.notifiers:
            logger.warning("No notifiers configured, notifications will only be logged")
        self.scheduler.run_forever()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="ratewatch exchange rate notifier")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--once", action="store_true", help="Run a single check and exit"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Run without sending notifications"
    )

    args = parser.parse_args()

    # Load config
    from ratewatch.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else config.advanced.log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    notifiers = None
    if args.dry_run:
        logger.info("Dry run mode - no notifications will be sent")
        notifiers = []

    app = RateWatchApp(db=db, config=config, notifiers=notifiers)

    try:
        if args.once:
            result = app.run_check()
            if result is not None:
                logger.info(
                    f"Checked {result.checked} rule(s), notified {result.notified}, "
                    f"skipped {result.skipped}"
                )
        else:
            app.run_forever()
    finally:
        db.close()


if __name__ == "__main__":
    main()
