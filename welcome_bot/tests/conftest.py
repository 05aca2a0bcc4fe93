"""Shared fixtures and fakes for the welcome bot test suite.

The voice transport, gateway and timers are replaced with in-memory fakes
so reconnect and playback behaviour can be driven deterministically,
without Discord or wall-clock delays.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import pytest

from welcome_bot.config import CredentialCheck, Settings
from welcome_bot.errors import ChannelNotFound, NetworkFailure
from welcome_bot.health import HealthStatus

TARGET_CHANNEL_ID = 1396967239948701859


async def drain(rounds: int = 20) -> None:
    """Let spawned tasks and ``call_soon_threadsafe`` callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualTimers:
    """``Timers`` stand-in: callbacks fire on ``advance()``, sleeps return at once."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        await asyncio.sleep(0)

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self._handles if not h.cancelled()]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (h for h in self.pending if h.when <= self.now),
            key=lambda h: h.when,
        )
        self._handles = [h for h in self.pending if h not in due]
        for handle in due:
            handle.callback()


# ---------------------------------------------------------------------------
# Voice transport
# ---------------------------------------------------------------------------


@dataclass
class FakeChannel:
    id: int
    name: str


@dataclass
class FakeLink:
    channel: FakeChannel
    connected: bool = True
    destroyed: bool = False
    played: list[Path] = field(default_factory=list)
    after: Optional[Callable[[Optional[Exception]], None]] = None


class FakeTransport:
    def __init__(self, channels: Optional[list[FakeChannel]] = None) -> None:
        if channels is None:
            channels = [FakeChannel(TARGET_CHANNEL_ID, "Lobby")]
        self.channels = {c.id: c for c in channels}
        self.connect_calls = 0
        self.connect_failures = 0
        self.links: list[FakeLink] = []
        self.destroyed: list[FakeLink] = []
        self.play_error: Optional[Exception] = None

    def resolve_channel(self, channel_id: int) -> FakeChannel:
        try:
            return self.channels[channel_id]
        except KeyError:
            raise ChannelNotFound(channel_id) from None

    def describe_channels(self) -> list[str]:
        return [f"{c.name} ({c.id})" for c in self.channels.values()]

    async def connect(self, channel: FakeChannel) -> FakeLink:
        self.connect_calls += 1
        await asyncio.sleep(0)
        if self.connect_failures:
            self.connect_failures -= 1
            raise NetworkFailure("voice handshake timed out")
        link = FakeLink(channel)
        self.links.append(link)
        return link

    def is_connected(self, link: FakeLink) -> bool:
        return link.connected

    async def destroy(self, link: FakeLink) -> None:
        link.connected = False
        link.destroyed = True
        self.destroyed.append(link)

    def play(self, link: FakeLink, path: Path, after) -> None:
        if self.play_error is not None:
            raise self.play_error
        link.played.append(path)
        link.after = after


@dataclass
class FakeMember:
    name: str
    bot: bool = False
    id: int = 1

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    sound = tmp_path / "welcome.wav"
    sound.write_bytes(b"RIFF")
    return Settings(
        discord_bot_token="test-token",
        voice_channel_id=TARGET_CHANNEL_ID,
        credential_check=CredentialCheck.NEVER,
        login_max_attempts=3,
        login_backoff_seconds=[15.0, 30.0],
        voice_resume_timeout=5.0,
        voice_rejoin_delay=5.0,
        welcome_sound=sound,
        playback_retry_delay=0.5,
        bot_env="development",
    )


@pytest.fixture()
def health() -> HealthStatus:
    return HealthStatus()


@pytest.fixture()
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()
