"""Failure taxonomy for the welcome bot.

Each failure is handled by the component that raises it and reflected into
``HealthStatus``; none of them is allowed to stop the process.
"""

from __future__ import annotations


class WelcomeBotError(Exception):
    """Base class for failures the bot knows how to report."""


class CredentialInvalid(WelcomeBotError):
    """The token check against the REST API did not succeed."""


class AuthFailure(WelcomeBotError):
    """The gateway refused the login. Retrying will not help."""


class NetworkFailure(WelcomeBotError):
    """A transient failure talking to Discord. Safe to retry."""


class ChannelNotFound(WelcomeBotError):
    """The configured voice channel does not resolve to a joinable channel."""

    def __init__(self, channel_id: int) -> None:
        self.channel_id = channel_id
        super().__init__(f"Voice channel not found: {channel_id}")


class PlaybackFailure(WelcomeBotError):
    """The welcome clip could not be started."""
