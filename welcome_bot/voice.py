"""
Voice link manager.

Owns the single connection to the target voice channel: the initial join,
a health monitor that notices drops, a bounded wait for discord.py to
resume on its own, and an unbounded teardown-and-rejoin cycle when it
doesn't. State changes go through ``reduce_link``; this module only
carries out the commands it returns.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from welcome_bot.config import Settings
from welcome_bot.errors import ChannelNotFound, NetworkFailure
from welcome_bot.health import HealthStatus
from welcome_bot.state import LinkCommand, LinkEvent, LinkState, LinkStatus, reduce_link
from welcome_bot.timers import TimerHandle, Timers
from welcome_bot.transport import VoiceTransport

logger = logging.getLogger(__name__)


class VoiceLinkManager:
    """Keeps the bot connected to one voice channel."""

    def __init__(
        self,
        transport: VoiceTransport,
        settings: Settings,
        health: HealthStatus,
        *,
        timers: Optional[Timers] = None,
    ) -> None:
        self.channel_id = settings.voice_channel_id
        self.state = LinkState()
        self.link: Any = None

        self._transport = transport
        self._health = health
        self._timers = timers or Timers()
        self._resume_timeout = settings.voice_resume_timeout
        self._rejoin_delay = settings.voice_rejoin_delay
        self._health_interval = settings.voice_health_interval

        self._resume_timer: Optional[TimerHandle] = None
        self._rejoin_timer: Optional[TimerHandle] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    @property
    def status(self) -> LinkStatus:
        return self.state.status

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def join(self) -> LinkStatus:
        """Join the target channel unless a link already exists.

        Returns once any connect attempt in flight has settled.
        """
        self._dispatch(LinkEvent.JOIN_REQUESTED)
        task = self._connect_task
        if task is not None and not task.done():
            await asyncio.shield(task)
        return self.state.status

    def poll(self) -> None:
        """Compare the transport's view of the link with ours."""
        if self.link is None:
            return
        connected = self._transport.is_connected(self.link)
        if self.status is LinkStatus.READY and not connected:
            logger.warning("Disconnected from voice. Waiting for resume...")
            self._dispatch(LinkEvent.TRANSPORT_DISCONNECTED)
        elif self.status is LinkStatus.DISCONNECTED and connected:
            logger.info("Voice connection resumed")
            self._dispatch(LinkEvent.TRANSPORT_READY)

    def on_transport_disconnected(self) -> None:
        """The bot's own voice state left every channel."""
        if self.status is LinkStatus.READY:
            logger.warning("Removed from voice channel. Waiting for resume...")
        self._dispatch(LinkEvent.TRANSPORT_DISCONNECTED)

    def start_monitor(self) -> None:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor())

    async def stop(self) -> None:
        """Cancel timers and background work and leave the channel."""
        for handle in (self._resume_timer, self._rejoin_timer):
            if handle is not None:
                handle.cancel()
        tasks = [t for t in (self._monitor_task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.link is not None:
            link, self.link = self.link, None
            await self._transport.destroy(link)

    # ------------------------------------------------------------------
    # State machine plumbing
    # ------------------------------------------------------------------

    def _dispatch(self, event: LinkEvent) -> None:
        previous = self.state
        self.state, commands = reduce_link(previous, event)
        if self.state.status is not previous.status:
            logger.info(
                "Voice link %s -> %s (%s)",
                previous.status.value,
                self.state.status.value,
                event.value,
                extra={"channel_id": self.channel_id, "attempt": self.state.reconnect_attempt},
            )
        for command in commands:
            self._execute(command)

    def _execute(self, command: LinkCommand) -> None:
        if command is LinkCommand.CONNECT:
            self._connect_task = self._spawn(self._connect())
        elif command is LinkCommand.START_RESUME_TIMER:
            self._resume_timer = self._timers.call_later(
                self._resume_timeout, lambda: self._dispatch(LinkEvent.RESUME_TIMEOUT)
            )
        elif command is LinkCommand.CANCEL_RESUME_TIMER:
            if self._resume_timer is not None:
                self._resume_timer.cancel()
                self._resume_timer = None
        elif command is LinkCommand.DESTROY:
            self._resume_timer = None
            link, self.link = self.link, None
            if link is not None:
                logger.info("Reconnecting to voice channel...")
                self._spawn(self._transport.destroy(link))
        elif command is LinkCommand.SCHEDULE_REJOIN:
            logger.info("Rejoining voice channel in %.0fs", self._rejoin_delay)
            self._rejoin_timer = self._timers.call_later(
                self._rejoin_delay, lambda: self._dispatch(LinkEvent.REJOIN_DUE)
            )

    async def _connect(self) -> None:
        try:
            channel = self._transport.resolve_channel(self.channel_id)
        except ChannelNotFound as exc:
            logger.error("Voice channel not found! ID: %s", self.channel_id)
            available = self._transport.describe_channels()
            logger.info("Available voice channels: %s", ", ".join(available) or "none")
            self._health.record_error(str(exc))
            self._dispatch(LinkEvent.CHANNEL_NOT_FOUND)
            return

        try:
            self.link = await self._transport.connect(channel)
        except NetworkFailure as exc:
            logger.error("Error joining voice channel: %s", exc)
            self._health.record_error(str(exc))
            self._dispatch(LinkEvent.CONNECT_FAILED)
            return
        except Exception as exc:
            logger.exception("Unexpected error joining voice channel")
            self._health.record_error(f"Voice link error: {exc}")
            self._dispatch(LinkEvent.CONNECT_FAILED)
            return

        logger.info("Connected to voice channel: %s", channel.name)
        self._health.record_success()
        self._dispatch(LinkEvent.TRANSPORT_READY)

    async def _monitor(self) -> None:
        while True:
            await self._timers.sleep(self._health_interval)
            self.poll()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Voice link task failed: %s", exc, exc_info=exc)
            self._health.record_error(f"Voice link error: {exc}")
