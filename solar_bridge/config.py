"""Configuration management for the Solar Analytics bridge."""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List
from pathlib import Path
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo
import os

from .models import Credentials

REFRESH_MODES = ("on_demand", "background")


def load_secrets_file(secrets_path: str = ".secrets") -> dict:
    """Load secrets from a separate secrets file.

    The secrets file uses the same format as .env files.
    Returns a dict of key-value pairs.
    """
    secrets = {}

    # Check multiple locations for secrets file
    paths_to_check = [
        Path(secrets_path),  # Current directory
        Path("/app/.secrets"),  # Docker container path
        Path.home() / ".secrets",  # Home directory
    ]

    for path in paths_to_check:
        if path.exists():
            with open(path, "r") as f:
                for line in f:
                    line = line.strip()
                    # Skip comments and empty lines
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        key, value = line.split("=", 1)
                        secrets[key.strip()] = value.strip().strip('"').strip("'")
            break  # Use first secrets file found

    return secrets


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Solar Analytics account
    sa_username: str = Field(default="", alias="SA_USERNAME")
    sa_password: str = Field(default="", alias="SA_PASSWORD")
    sa_site_id: str = Field(default="", alias="SA_SITE_ID")
    sa_base_url: str = Field(
        default="https://portal.solaranalytics.com.au/api", alias="SA_BASE_URL"
    )

    # "on_demand" fetches per request, "background" serves polled snapshots
    refresh_mode: str = Field(default="on_demand", alias="REFRESH_MODE")

    # Polling intervals (seconds), background mode only
    live_poll_interval: int = Field(default=30, alias="LIVE_POLL_INTERVAL")
    site_poll_interval: int = Field(default=60, alias="SITE_POLL_INTERVAL")

    # Per-request timeout for vendor calls (seconds)
    request_timeout: float = Field(default=5.0, alias="REQUEST_TIMEOUT")

    # Local HTTP server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")

    # API metadata
    api_title: str = "Solar Analytics Bridge"
    api_version: str = "1.0.0"

    # Timezone used for the daily summary boundary; empty means the host zone
    tz: str = Field(default="", alias="TZ")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            username=self.sa_username,
            password=self.sa_password,
            site_id=self.sa_site_id,
        )

    @property
    def background(self) -> bool:
        return self.refresh_mode == "background"

    def local_zone(self) -> tzinfo:
        """Resolve TZ to a zone, accepting IANA names and POSIX `:path` forms."""
        name = self.tz.lstrip(":") or "/etc/localtime"
        if not name.startswith("/"):
            return ZoneInfo(name)

        path = Path(name)
        if path.is_file():
            with open(path, "rb") as f:
                return ZoneInfo.from_file(f, key=name)
        return datetime.now().astimezone().tzinfo

    def missing_credentials(self) -> List[str]:
        """Return the env names of required settings that are empty."""
        missing = []
        if not self.sa_username:
            missing.append("SA_USERNAME")
        if not self.sa_password:
            missing.append("SA_PASSWORD")
        if not self.sa_site_id:
            missing.append("SA_SITE_ID")
        return missing

    def validate_refresh_mode(self) -> None:
        if self.refresh_mode not in REFRESH_MODES:
            raise ValueError(
                f"REFRESH_MODE must be one of {', '.join(REFRESH_MODES)}, "
                f"got {self.refresh_mode!r}"
            )


def create_settings() -> Settings:
    """Create settings instance, loading secrets from .secrets file."""
    secrets = load_secrets_file()

    # The .secrets file is authoritative for account values
    for key, value in secrets.items():
        if key.startswith("SA_") or key.endswith("_PASSWORD"):
            os.environ[key] = value

    return Settings()


# Global settings instance
settings = create_settings()
