"""Bot configuration via pydantic-settings."""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent

_PRODUCTION_ENVS = ("production", "prod", "staging")


class CredentialCheck(str, Enum):
    """When to verify the bot token against the REST API."""

    ALWAYS = "always"
    ON_FAILURE = "on_failure"
    NEVER = "never"


class Settings(BaseSettings):
    """Bot settings loaded from environment variables.

    Variable names are the upper-cased field names (e.g. ``DISCORD_BOT_TOKEN``,
    ``VOICE_CHANNEL_ID``, ``PORT``).
    """

    # Discord
    discord_bot_token: str = ""
    voice_channel_id: int = 1396967239948701859
    self_mute: bool = True
    self_deaf: bool = False
    bot_name: str = "T3N Voice Bot"
    presence_name: str = "🎵 T3N Voice"

    # Token check before / after login
    credential_check: CredentialCheck = CredentialCheck.ALWAYS
    credential_check_timeout: float = 10.0

    # Gateway login retry
    login_max_attempts: int = 3
    login_backoff_seconds: list[float] = [15.0, 30.0]

    # Voice link
    voice_connect_timeout: float = 30.0
    voice_resume_timeout: float = 5.0
    voice_rejoin_delay: float = 5.0
    voice_health_interval: float = 2.0

    # Welcome playback
    welcome_sound: Path = _PACKAGE_DIR / "assets" / "welcome.wav"
    playback_retry_delay: float = 0.5

    # HTTP status server
    host: str = "0.0.0.0"  # nosec B104: probed from outside the container
    port: int = 3000

    # Deployment
    bot_env: str = "development"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def model_post_init(self, __context: object) -> None:
        """Warn about settings that leave the bot degraded but still serving status."""
        if self.login_max_attempts < 1:
            raise ValueError("LOGIN_MAX_ATTEMPTS must be at least 1")
        if not self.login_backoff_seconds:
            raise ValueError("LOGIN_BACKOFF_SECONDS must list at least one delay")
        if not self.discord_bot_token:
            _logger.warning(
                "DISCORD_BOT_TOKEN not set — the status endpoint will report disconnected"
            )
        if not self.welcome_sound.is_file():
            _logger.warning("Welcome sound not found at %s", self.welcome_sound)

    @property
    def is_production(self) -> bool:
        return self.bot_env.lower() in _PRODUCTION_ENVS

    def login_backoff(self, attempt: int) -> float:
        """Delay before the attempt following *attempt* (1-based); the last value repeats."""
        index = min(attempt, len(self.login_backoff_seconds)) - 1
        return self.login_backoff_seconds[index]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""
    return Settings()
