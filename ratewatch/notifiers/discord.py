"""
Discord webhook notifier.
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

import requests

from ratewatch.rules.engine import Direction

from .base import Notifier, NotificationResult, Permission


class DiscordNotifier(Notifier):
    """Sends notifications via Discord webhook."""

    channel = "discord"

    COLOR_BETTER = 0x2ECC71  # Green
    COLOR_WORSE = 0xE74C3C  # Red
    COLOR_DEFAULT = 0x3498DB  # Blue

    def __init__(self, webhook_url: str, username: str = "ratewatch"):
        """
        Initialize Discord notifier.

        Args:
            webhook_url: Discord webhook URL
            username: Name shown as the message author
        """
        self.webhook_url = webhook_url
        self.username = username

    def permission(self) -> Permission:
        if not self.webhook_url:
            return Permission.DENIED
        return Permission.GRANTED

    def send(
        self, title: str, body: str, direction: Optional[Direction] = None
    ) -> NotificationResult:
        """Send notification to Discord."""
        try:
            payload = self._create_payload(title, body, direction)
            response = self._send_webhook(payload)

            if response.ok:
                return NotificationResult(success=True, channel=self.channel)
            else:
                return NotificationResult(
                    success=False,
                    channel=self.channel,
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Connection error: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=str(e),
            )

    def _send_webhook(self, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=10,
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(float(retry_after))
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=10,
            )

        return response

    def _create_payload(
        self, title: str, body: str, direction: Optional[Direction] = None
    ) -> dict[str, Any]:
        """Create Discord webhook payload."""
        return {
            "username": self.username,
            "embeds": [self._create_embed(title, body, direction)],
        }

    def _create_embed(
        self, title: str, body: str, direction: Optional[Direction] = None
    ) -> dict[str, Any]:
        """Create Discord embed for a notification."""
        return {
            "title": title,
            "description": body,
            "color": self._get_color(direction),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _get_color(self, direction: Optional[Direction]) -> int:
        """Get embed color for a rate move."""
        if direction == Direction.BETTER:
            return self.COLOR_BETTER
        elif direction == Direction.WORSE:
            return self.COLOR_WORSE
        else:
            return self.COLOR_DEFAULT
