"""
T3N Voice Bot — Welcome Sound

Sits in a single voice channel and plays a short welcome clip whenever a
member joins it. Serves a status page and a ``/health`` endpoint for the
hosting platform's liveness checks, and keeps serving them even when the
Discord side is down.

Usage:
    python -m welcome_bot.bot
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import discord

from welcome_bot.config import Settings, get_settings
from welcome_bot.health import HealthStatus
from welcome_bot.logging_config import configure_logging
from welcome_bot.playback import PlaybackGate
from welcome_bot.server import create_app, serve
from welcome_bot.session import SessionConnector
from welcome_bot.state import is_target_join
from welcome_bot.timers import Timers
from welcome_bot.transport import DiscordVoiceTransport
from welcome_bot.voice import VoiceLinkManager

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Main bot
# ---------------------------------------------------------------------------


class WelcomeBot(discord.Client):
    """Discord client that routes gateway and voice events to the managers."""

    def __init__(
        self,
        settings: Settings,
        health: HealthStatus,
        *,
        timers: Optional[Timers] = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.voice_states = True
        intents.members = True
        super().__init__(intents=intents)

        self.settings = settings
        self.health = health
        timers = timers or Timers()

        self.transport = DiscordVoiceTransport(
            self,
            self_mute=settings.self_mute,
            self_deaf=settings.self_deaf,
            timeout=settings.voice_connect_timeout,
        )
        self.voice = VoiceLinkManager(self.transport, settings, health, timers=timers)
        self.playback = PlaybackGate(self.voice, self.transport, settings, health, timers=timers)
        self.connector = SessionConnector(self, settings, health, timers=timers)
        self.connector.add_ready_listener(self._join_target_channel)

    async def _join_target_channel(self) -> None:
        await self.voice.join()
        self.voice.start_monitor()

    # ------------------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------------------

    async def on_ready(self) -> None:
        logger.info("Voice Bot Ready! Logged in as %s (ID: %s)", self.user, self.user.id)
        logger.info("Serving %d server(s)", len(self.guilds))
        await self.connector.handle_ready(self.user)

    async def on_disconnect(self) -> None:
        self.connector.handle_disconnect()

    async def on_resumed(self) -> None:
        self.connector.handle_resumed()

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if self.user is not None and member.id == self.user.id:
            if after.channel is None:
                self.voice.on_transport_disconnected()
            return

        before_id = before.channel.id if before.channel else None
        after_id = after.channel.id if after.channel else None
        if not is_target_join(before_id, after_id, self.settings.voice_channel_id):
            return

        await self.playback.on_member_joined(member)

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        logger.exception("Discord Error in %s", event_method)
        self.health.record_error(f"Discord error in {event_method}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self.voice.stop()
        await super().close()


# ---------------------------------------------------------------------------
# Unhandled async failures
# ---------------------------------------------------------------------------


def make_loop_exception_handler(health: HealthStatus):
    """Build a loop exception handler that logs and records instead of crashing."""

    def _handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled async failure")
        logger.error("Unhandled async failure: %s", message, exc_info=exc)
        health.record_error(f"Unhandled async failure: {exc or message}")

    return _handler


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    configure_logging(settings)

    health = HealthStatus()
    asyncio.get_running_loop().set_exception_handler(make_loop_exception_handler(health))

    app = create_app(health, settings)
    server_task = asyncio.create_task(serve(app, settings))

    bot = WelcomeBot(settings, health)
    logger.info("Starting bot (voice channel: %s)", settings.voice_channel_id)
    try:
        await bot.connector.run(settings.discord_bot_token)
        # Whatever happened to the gateway, keep answering status checks
        await server_task
    finally:
        if not bot.is_closed():
            await bot.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
