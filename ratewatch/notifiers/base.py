"""
Base notifier classes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any

from ratewatch.rules.engine import Direction

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """Whether a channel may deliver notifications."""

    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"  # not yet determined


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    channel = "notifier"

    def permission(self) -> Permission:
        """Current delivery permission."""
        return Permission.GRANTED

    def request_permission(self) -> Permission:
        """Ask for permission. Channels without a prompt just report state."""
        return self.permission()

    def notify(
        self, title: str, body: str = "", direction: Optional[Direction] = None
    ) -> NotificationResult:
        """
        Send a notification if permission has been granted.

        Args:
            title: Notification title
            body: Notification text
            direction: Rate move that triggered the notification, if any

        Returns:
            NotificationResult indicating success or failure
        """
        permission = self.permission()
        if permission != Permission.GRANTED:
            logger.debug(f"{self.channel} notification skipped: permission {permission.value}")
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Permission {permission.value}",
            )
        return self.send(title, body, direction)

    @abstractmethod
    def send(
        self, title: str, body: str, direction: Optional[Direction] = None
    ) -> NotificationResult:
        """
        Deliver a notification.

        Args:
            title: Notification title
            body: Notification text
            direction: Rate move that triggered the notification, if any

        Returns:
            NotificationResult indicating success or failure
        """
        pass


class NotifierFactory:
    """Factory for creating notifier instances."""

    @staticmethod
    def create(config: dict[str, Any]) -> Notifier:
        """
        Create a notifier from configuration.

        Args:
            config: Notifier configuration dict

        Returns:
            Appropriate Notifier instance

        Raises:
            ValueError: If notifier type is unknown
        """
        notifier_type = config.get("type")

        if notifier_type == "discord":
            from .discord import DiscordNotifier

            return DiscordNotifier(
                webhook_url=config.get("webhook_url", ""),
                username=config.get("username", "ratewatch"),
            )

        elif notifier_type == "email":
            from .email import EmailNotifier

            return EmailNotifier(
                smtp_host=config.get("smtp_host", ""),
                smtp_port=config.get("smtp_port", 587),
                smtp_user=config.get("smtp_user", ""),
                smtp_password=config.get("smtp_password", ""),
                from_address=config.get("from_address", ""),
                to_addresses=config.get("to_addresses", []),
            )

        else:
            raise ValueError(f"Unknown notifier type: {notifier_type}")
