"""Configuration manager: JSON file in the app directory plus environment overrides."""
import json
import os
from dataclasses import dataclass, asdict, fields
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from mailspend.utils.exceptions import ConfigError
from mailspend.utils.logger import get_app_dir, get_logger

logger = get_logger()

LOCALTIME_PATH = "/etc/localtime"

# Environment variable -> Config field
ENV_OVERRIDES = {
    "GEMINI_API_KEY": "gemini_api_key",
    "GOOGLE_CLIENT_ID": "google_client_id",
    "GOOGLE_CLIENT_SECRET": "google_client_secret",
    "GMAIL_BACKEND_REFRESH_TOKEN": "gmail_refresh_token",
    "MAILSPEND_DATABASE": "database_path",
    "MAILSPEND_TIMEZONE": "timezone",
    "MAILSPEND_MAX_CONCURRENT_USERS": "max_concurrent_users",
    "MAILSPEND_LOG_LEVEL": "log_level",
}


def _zone_or_none(key: str) -> Optional[tzinfo]:
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def host_timezone() -> tzinfo:
    """
    The host's named time zone, so daylight-saving changes are followed.

    Looks at TZ, then the /etc/localtime link. Falls back to the current fixed
    UTC offset only when no IANA name can be found.
    """
    candidates = []
    tz_env = os.environ.get("TZ", "").lstrip(":")
    if tz_env:
        candidates.append(tz_env)
    if os.path.islink(LOCALTIME_PATH):
        target = os.path.realpath(LOCALTIME_PATH)
        if "zoneinfo/" in target:
            candidates.append(target.split("zoneinfo/", 1)[1])
    candidates.append("localtime")

    for key in candidates:
        zone = _zone_or_none(key)
        if zone is not None:
            return zone

    fallback = datetime.now().astimezone().tzinfo
    logger.warning(f"Host time zone has no IANA name; using fixed offset {fallback}. Set MAILSPEND_TIMEZONE.")
    return fallback


@dataclass
class Config:
    """System configuration."""
    gemini_api_key: str
    google_client_id: str = ""
    google_client_secret: str = ""
    gmail_refresh_token: Optional[str] = None
    database_path: Optional[str] = None
    timezone: Optional[str] = None  # IANA name of the mailbox account's clock; system zone when unset
    max_concurrent_users: int = 3
    log_level: str = "INFO"

    def get_tzinfo(self) -> tzinfo:
        if not self.timezone:
            return host_timezone()
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError as e:
            raise ConfigError(f"Unknown time zone: {self.timezone}") from e

    def get_database_path(self, default_file: str = "mailspend.db") -> Path:
        if self.database_path:
            return Path(self.database_path)
        return get_app_dir() / default_file


class ConfigManager:
    """Loads configuration from config.json and the environment."""

    def __init__(self):
        self.config_dir = get_app_dir()
        self.config_file = self.config_dir / "config.json"

    def load_config(self) -> Optional[Config]:
        """Load configuration; returns None when nothing is configured at all."""
        load_dotenv()

        values = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    values = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Failed to load configuration: {e}") from e

        known = {f.name for f in fields(Config)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        for env_name, field_name in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value

        if not values:
            return None

        if "max_concurrent_users" in values:
            try:
                values["max_concurrent_users"] = int(values["max_concurrent_users"])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"max_concurrent_users must be an integer: {e}") from e

        values.setdefault("gemini_api_key", "")
        return Config(**values)

    def save_config(self, config: Config) -> None:
        """Save configuration to config.json."""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(asdict(config), f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e

    def validate_config(self, config: Config) -> tuple[bool, str]:
        """Validate configuration values."""
        if not config.gemini_api_key:
            return False, "Gemini API key is required"

        if not config.google_client_id or not config.google_client_secret:
            return False, "Google OAuth client id and secret are required"

        if config.max_concurrent_users < 1:
            return False, "max_concurrent_users must be at least 1"

        try:
            config.get_tzinfo()
        except ConfigError as e:
            return False, str(e)

        return True, "Configuration is valid"
