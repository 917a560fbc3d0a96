"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from ratewatch.data.rates import ECB_DAILY_URL


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/ratewatch.db"


@dataclass
class DataSourceConfig:
    """Rate source configuration."""

    provider: str = "ecb"
    url: str = ECB_DAILY_URL
    base_currency: str = "EUR"
    max_age_hours: float = 24
    timeout_seconds: float = 30


@dataclass
class ScheduleConfig:
    """Schedule configuration."""

    timezone: Optional[str] = None  # None = system local time
    interval_seconds: float = 60

    def tzinfo(self) -> Optional[ZoneInfo]:
        return ZoneInfo(self.timezone) if self.timezone else None


@dataclass
class DiscordNotificationConfig:
    """Discord notification settings."""

    webhook_url: str = ""
    username: str = "ratewatch"


@dataclass
class EmailNotificationConfig:
    """Email notification settings."""

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_address: str = ""
    to_addresses: list[str] = field(default_factory=list)


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    discord: DiscordNotificationConfig = field(
        default_factory=DiscordNotificationConfig
    )
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    max_retries: int = 3
    retry_delay_seconds: float = 5


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: Optional[str]) -> None:
    """Validate an IANA timezone name."""
    if timezone is None:
        return
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigValidationError(f"Unknown timezone: {timezone}") from e


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    # Check database path is provided
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    # Check schedule
    schedule = config_dict.get("schedule") or {}
    _validate_timezone(schedule.get("timezone"))
    interval = schedule.get("interval_seconds", ScheduleConfig.interval_seconds)
    if not isinstance(interval, (int, float)) or not 0 < interval <= 60:
        raise ConfigValidationError(
            f"schedule.interval_seconds must be in (0, 60]: {interval}"
        )

    # Check data source
    data_source = config_dict.get("data_source") or {}
    provider = data_source.get("provider", DataSourceConfig.provider)
    if provider != "ecb":
        raise ConfigValidationError(f"Unknown rate provider: {provider}")
    max_age = data_source.get("max_age_hours", DataSourceConfig.max_age_hours)
    if not isinstance(max_age, (int, float)) or max_age <= 0:
        raise ConfigValidationError(f"data_source.max_age_hours must be positive: {max_age}")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    # Validate
    _validate_config(config_dict)

    try:
        database = DatabaseConfig(**(config_dict.get("database") or {}))
        data_source = DataSourceConfig(**(config_dict.get("data_source") or {}))
        schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))

        # Notifications
        notif_dict = config_dict.get("notifications") or {}
        notifications = NotificationsConfig(
            discord=DiscordNotificationConfig(**(notif_dict.get("discord") or {})),
            email=EmailNotificationConfig(**(notif_dict.get("email") or {})),
        )

        advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}") from e

    return AppConfig(
        database=database,
        data_source=data_source,
        schedule=schedule,
        notifications=notifications,
        advanced=advanced,
    )
