"""
Voice transport adapter.

Wraps discord.py's ``VoiceChannel.connect`` / ``VoiceClient`` behind the
handful of operations the link manager and playback gate need, and maps
library errors onto the bot's failure taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import discord

from welcome_bot.errors import ChannelNotFound, NetworkFailure, PlaybackFailure

logger = logging.getLogger(__name__)

AfterCallback = Callable[[Optional[Exception]], None]


class VoiceTransport(Protocol):
    def resolve_channel(self, channel_id: int) -> Any: ...

    def describe_channels(self) -> list[str]: ...

    async def connect(self, channel: Any) -> Any: ...

    def is_connected(self, link: Any) -> bool: ...

    async def destroy(self, link: Any) -> None: ...

    def play(self, link: Any, path: Path, after: AfterCallback) -> None: ...


class DiscordVoiceTransport:
    """``VoiceTransport`` backed by a live ``discord.Client``."""

    def __init__(
        self,
        client: discord.Client,
        *,
        self_mute: bool = True,
        self_deaf: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._self_mute = self_mute
        self._self_deaf = self_deaf
        self._timeout = timeout

    def resolve_channel(self, channel_id: int) -> discord.VoiceChannel:
        channel = self._client.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel):
            raise ChannelNotFound(channel_id)
        return channel

    def describe_channels(self) -> list[str]:
        """List every voice channel the bot can see, for debugging a bad channel id."""
        return [
            f"{channel.name} ({channel.id}) in {guild.name}"
            for guild in self._client.guilds
            for channel in guild.voice_channels
        ]

    async def connect(self, channel: discord.VoiceChannel) -> discord.VoiceClient:
        # A stale client from a torn-down link blocks a fresh connect
        stale = channel.guild.voice_client
        if stale is not None:
            await stale.disconnect(force=True)

        try:
            return await channel.connect(
                timeout=self._timeout,
                reconnect=True,
                self_mute=self._self_mute,
                self_deaf=self._self_deaf,
            )
        except (asyncio.TimeoutError, discord.ClientException, discord.ConnectionClosed, OSError) as exc:
            raise NetworkFailure(f"Could not connect to {channel.name}: {exc}") from exc

    def is_connected(self, link: discord.VoiceClient) -> bool:
        return link.is_connected()

    async def destroy(self, link: discord.VoiceClient) -> None:
        if link.is_playing():
            link.stop()
        await link.disconnect(force=True)

    def play(self, link: discord.VoiceClient, path: Path, after: AfterCallback) -> None:
        """Stream *path* into the link. *after* runs on discord.py's player thread."""
        if not path.is_file():
            raise PlaybackFailure(f"Welcome sound missing: {path}")
        try:
            link.play(discord.FFmpegPCMAudio(str(path)), after=after)
        except (discord.ClientException, discord.opus.OpusNotLoaded) as exc:
            raise PlaybackFailure(f"Could not start welcome sound: {exc}") from exc
