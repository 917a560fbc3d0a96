"""
Email SMTP notifier.
"""

import html
import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from ratewatch.rules.engine import Direction

from .base import Notifier, NotificationResult, Permission


class EmailNotifier(Notifier):
    """Sends notifications via email SMTP."""

    channel = "email"

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
        to_addresses: list[str],
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: Sender email address
            to_addresses: List of recipient email addresses
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.to_addresses = to_addresses
        self._relay_permission = Permission.DEFAULT

    def permission(self) -> Permission:
        if not self.smtp_host or not self.to_addresses:
            return Permission.DENIED
        if not self.smtp_user:
            # Unauthenticated relay: unknown until the server has been probed
            return self._relay_permission
        return Permission.GRANTED

    def request_permission(self) -> Permission:
        """Probe an unauthenticated relay once to settle its permission."""
        if self.permission() != Permission.DEFAULT:
            return self.permission()
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                code, _ = server.noop()
            self._relay_permission = (
                Permission.GRANTED if code == 250 else Permission.DENIED
            )
        except (smtplib.SMTPException, OSError):
            self._relay_permission = Permission.DENIED
        return self._relay_permission

    def send(
        self, title: str, body: str, direction: Optional[Direction] = None
    ) -> NotificationResult:
        """Send notification via email."""
        try:
            message = self._create_message(title, body)

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.smtp_user:
                    server.starttls()
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)

            return NotificationResult(success=True, channel=self.channel)

        except smtplib.SMTPAuthenticationError as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Authentication failed: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"SMTP error: {str(e)}",
            )

    def _create_message(self, title: str, body: str) -> MIMEMultipart:
        """Create email message."""
        message = MIMEMultipart("alternative")
        message["Subject"] = f"[ratewatch] {title}"
        message["From"] = self.from_address
        message["To"] = ", ".join(self.to_addresses)

        sent_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        message.attach(MIMEText(self._create_text_body(title, body, sent_at), "plain"))
        message.attach(MIMEText(self._create_html_body(title, body, sent_at), "html"))

        return message

    def _create_text_body(self, title: str, body: str, sent_at: str) -> str:
        """Create plain text email body."""
        return f"""
{title}

{body}

Time: {sent_at}
"""

    def _create_html_body(self, title: str, body: str, sent_at: str) -> str:
        """Create HTML email body."""
        return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; }}
        .alert-box {{
            border-left: 4px solid #3498DB;
            padding: 15px;
            background-color: #f9f9f9;
        }}
        .title {{ font-size: 20px; font-weight: bold; }}
        .message {{ margin: 15px 0; color: #555; }}
        .meta {{ color: #888; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="alert-box">
        <div class="title">{html.escape(title)}</div>
        <div class="message">{html.escape(body)}</div>
        <div class="meta">Time: {sent_at}</div>
    </div>
</body>
</html>
"""
