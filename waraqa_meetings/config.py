"""Configuration handling for the Waraqa meetings client."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import yaml  # type: ignore
from dotenv import load_dotenv

from waraqa_meetings.constants import CALENDAR_PREFERENCES, MEETING_TYPES
from waraqa_meetings.timezones import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


# Load environment variables from .env file if it exists
load_dotenv()

DEFAULT_API_BASE_URL = "http://127.0.0.1:5000/api"


@dataclass
class ApiConfig:
    """Backend REST API connection settings."""

    base_url: str = DEFAULT_API_BASE_URL
    token: Optional[str] = None
    timeout: float = 60.0

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")
        if not self.base_url:
            raise ValueError("api.base_url must not be empty")
        if self.timeout <= 0:
            raise ValueError(f"api.timeout must be positive, got {self.timeout}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiConfig":
        """Create API configuration from dictionary."""
        # Token can be specified in environment variable
        token = data.get("token") or os.environ.get("WARAQA_API_TOKEN")
        return cls(
            base_url=data.get("base_url")
            or os.environ.get("WARAQA_API_URL", DEFAULT_API_BASE_URL),
            token=token,
            timeout=float(data.get("timeout", 60.0)),
        )


@dataclass
class CalendarConfig:
    """Where the calendar preference lives and where ICS files go."""

    preference_file: str = "~/.config/waraqa-meetings/preferences.yaml"
    default_preference: str = "google"
    ics_dir: str = "~/Downloads"

    def __post_init__(self):
        if self.default_preference not in CALENDAR_PREFERENCES:
            raise ValueError(
                f"Invalid calendar preference '{self.default_preference}'. "
                f"Must be one of: {', '.join(CALENDAR_PREFERENCES)}"
            )

    @property
    def preference_path(self) -> Path:
        return Path(self.preference_file).expanduser()

    @property
    def ics_path(self) -> Path:
        return Path(self.ics_dir).expanduser()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarConfig":
        return cls(
            preference_file=data.get("preference_file")
            or os.environ.get(
                "WARAQA_CALENDAR_PREFERENCE_FILE",
                "~/.config/waraqa-meetings/preferences.yaml",
            ),
            default_preference=data.get("default_preference", "google"),
            ics_dir=data.get("ics_dir") or os.environ.get("WARAQA_ICS_DIR", "~/Downloads"),
        )


@dataclass
class BookingConfig:
    """Per meeting type look-ahead overrides (days)."""

    lookahead_days: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        for meeting_type, days in self.lookahead_days.items():
            if meeting_type not in MEETING_TYPES:
                raise ValueError(f"Unknown meeting type in lookahead_days: {meeting_type}")
            if int(days) < 0:
                raise ValueError(
                    f"lookahead_days for {meeting_type} must not be negative, got {days}"
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingConfig":
        return cls(
            lookahead_days={
                key: int(value)
                for key, value in (data.get("lookahead_days") or {}).items()
            }
        )


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebConfig":
        return cls(
            host=data.get("host") or os.environ.get("WEB_HOST", "0.0.0.0"),
            port=int(data.get("port") or os.environ.get("WEB_PORT", "8080")),
        )


@dataclass
class AppConfig:
    """Top level configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    timezone: str = DEFAULT_TIMEZONE
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    web: WebConfig = field(default_factory=WebConfig)

    def __post_init__(self):
        """Validate application configuration."""
        try:
            ZoneInfo(self.timezone)
        except Exception as e:
            raise ValueError(
                f"Invalid timezone '{self.timezone}': {e}. "
                "Must be a valid IANA timezone (e.g., 'Africa/Cairo')"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create configuration from dictionary."""
        return cls(
            api=ApiConfig.from_dict(data.get("api", {})),
            timezone=data.get("timezone")
            or os.environ.get("WARAQA_TIMEZONE", DEFAULT_TIMEZONE),
            calendar=CalendarConfig.from_dict(data.get("calendar", {})),
            booking=BookingConfig.from_dict(data.get("booking", {})),
            web=WebConfig.from_dict(data.get("web", {})),
        )


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Application configuration

    Raises:
        ValueError: If configuration is invalid
    """
    default_locations = [
        Path("config/config.yaml"),
        Path("config/config.yml"),
        Path("config.yaml"),
        Path("config.yml"),
        Path("~/.config/waraqa-meetings/config.yaml"),
        Path("/etc/waraqa-meetings/config.yaml"),
    ]

    config_data: Dict[str, Any] = {}

    if config_path:
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {config_path}")
    else:
        for path in default_locations:
            expanded_path = path.expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                break

    if not config_data:
        logger.info("No configuration file found, using environment variables")

    try:
        return AppConfig.from_dict(config_data)
    except (TypeError, AttributeError) as e:
        raise ValueError(f"Malformed configuration: {e}")
