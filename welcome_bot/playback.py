"""Welcome clip playback, at most one at a time."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from welcome_bot.config import Settings
from welcome_bot.errors import PlaybackFailure
from welcome_bot.health import HealthStatus
from welcome_bot.state import PlaybackDecision, decide_playback
from welcome_bot.timers import Timers
from welcome_bot.transport import VoiceTransport
from welcome_bot.voice import VoiceLinkManager

logger = logging.getLogger(__name__)


class PlaybackGate:
    """Plays the welcome clip once per qualifying join.

    A join that arrives while the clip is playing is dropped rather than
    queued. A join that arrives while the voice link is down triggers one
    join attempt and a single delayed retry.
    """

    def __init__(
        self,
        voice: VoiceLinkManager,
        transport: VoiceTransport,
        settings: Settings,
        health: HealthStatus,
        *,
        timers: Optional[Timers] = None,
    ) -> None:
        self.in_progress: bool = False
        self._voice = voice
        self._transport = transport
        self._health = health
        self._timers = timers or Timers()
        self._sound = settings.welcome_sound
        self._retry_delay = settings.playback_retry_delay

    async def on_member_joined(self, member: Any) -> PlaybackDecision:
        """Handle a member entering the target channel. Returns what was done."""
        decision = decide_playback(
            is_bot=member.bot,
            link_status=self._voice.status,
            in_progress=self.in_progress,
        )
        if decision is PlaybackDecision.IGNORE_BOT:
            return decision

        logger.info("%s joined the voice channel!", member, extra={"member": str(member)})

        if decision is PlaybackDecision.JOIN_THEN_RETRY:
            return await self._join_then_play(member)
        if decision is PlaybackDecision.BUSY:
            logger.info("Welcome sound already playing; skipping %s", member)
            return decision

        self._start()
        return decision

    async def _join_then_play(self, member: Any) -> PlaybackDecision:
        logger.info("Voice link is %s; joining before welcoming %s", self._voice.status.value, member)
        await self._voice.join()
        await self._timers.sleep(self._retry_delay)

        decision = decide_playback(
            is_bot=member.bot,
            link_status=self._voice.status,
            in_progress=self.in_progress,
            allow_join=False,
        )
        if decision is PlaybackDecision.PLAY:
            self._start()
        elif decision is PlaybackDecision.NOT_READY:
            logger.warning("Voice link still %s; no welcome for %s", self._voice.status.value, member)
        return decision

    def _start(self) -> None:
        loop = asyncio.get_running_loop()

        def _after(error: Optional[Exception]) -> None:
            # discord.py calls this from its player thread
            loop.call_soon_threadsafe(self._finished, error)

        self.in_progress = True
        try:
            self._transport.play(self._voice.link, self._sound, _after)
        except PlaybackFailure as exc:
            self._finished(exc)
            return
        logger.info("Playing welcome sound!")

    def _finished(self, error: Optional[Exception]) -> None:
        self.in_progress = False
        if error is not None:
            logger.error("Audio player error: %s", error)
            self._health.record_error(f"Playback failed: {error}")
        else:
            logger.info("Welcome sound finished.")
            self._health.record_success()
