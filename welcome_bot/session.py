"""
Gateway session connector.

Logs the bot in, retries transient failures a fixed number of times with
increasing backoff, and gives up for the rest of the process lifetime
after that. The HTTP status endpoint keeps running either way.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

import discord

from welcome_bot.config import CredentialCheck, Settings
from welcome_bot.errors import AuthFailure, CredentialInvalid, NetworkFailure, WelcomeBotError
from welcome_bot.health import HealthStatus
from welcome_bot.state import SessionEvent, SessionStatus, reduce_session
from welcome_bot.timers import Timers
from welcome_bot.validator import BotIdentity, validate_token

logger = logging.getLogger(__name__)

# Gateway close code for a token the gateway refuses to identify
_GATEWAY_AUTH_FAILED = 4004

ReadyListener = Callable[[], Awaitable[None]]
TokenValidator = Callable[..., Awaitable[BotIdentity]]


class Gateway(Protocol):
    """The parts of ``discord.Client`` the connector drives."""

    http: Any

    async def login(self, token: str) -> None: ...

    async def connect(self) -> None: ...

    async def change_presence(self, **kwargs: Any) -> None: ...

    def clear(self) -> None: ...


def classify_gateway_error(exc: BaseException) -> WelcomeBotError:
    """Map a login/connect exception onto ``AuthFailure`` or ``NetworkFailure``."""
    if isinstance(exc, WelcomeBotError):
        return exc
    if isinstance(exc, discord.LoginFailure):
        return AuthFailure(f"Invalid token: {exc}")
    if isinstance(exc, discord.PrivilegedIntentsRequired):
        return AuthFailure("Privileged intents are not enabled for this bot")
    if isinstance(exc, discord.ConnectionClosed) and exc.code == _GATEWAY_AUTH_FAILED:
        return AuthFailure(f"Gateway rejected the token: {exc}")
    if isinstance(exc, discord.HTTPException) and exc.status == 429:
        return NetworkFailure(f"Rate limited by Discord: {exc}")
    return NetworkFailure(f"{type(exc).__name__}: {exc}")


class SessionConnector:
    """Establishes and supervises the single gateway session."""

    def __init__(
        self,
        gateway: Gateway,
        settings: Settings,
        health: HealthStatus,
        *,
        timers: Optional[Timers] = None,
        validator: TokenValidator = validate_token,
    ) -> None:
        self.status = SessionStatus.DISCONNECTED
        self.identity: Optional[BotIdentity] = None
        self.attempts: int = 0

        self._gateway = gateway
        self._settings = settings
        self._health = health
        self._timers = timers or Timers()
        self._validator = validator
        self._ready_listeners: list[ReadyListener] = []
        self._ready_seen = False

    def add_ready_listener(self, listener: ReadyListener) -> None:
        """Call *listener* the first time the session becomes ready."""
        self._ready_listeners.append(listener)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def run(self, token: Optional[str]) -> None:
        """Log in and hold the gateway session until it closes or retries run out."""
        if not token:
            logger.error("DISCORD_BOT_TOKEN not set!")
            self._give_up("DISCORD_BOT_TOKEN not set")
            return

        check = self._settings.credential_check
        if check is CredentialCheck.ALWAYS and not await self._check_credential(token):
            return

        max_attempts = self._settings.login_max_attempts
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            self.attempts += 1
            self._apply(SessionEvent.LOGIN_STARTED)
            self._ready_seen = False
            try:
                logger.info("Logging in (attempt %d/%d)", attempt, max_attempts, extra={"attempt": attempt})
                await self._gateway.login(token)
                logger.info("Login successful!")
                await self._gateway.connect()
            except Exception as exc:
                reached_ready = self._ready_seen
                failure = classify_gateway_error(exc)
                self._apply(SessionEvent.ATTEMPT_FAILED)
                self._health.mark_not_ready()
                logger.error("LOGIN FAILED: %s", failure)

                if isinstance(failure, AuthFailure):
                    self._give_up(f"Login failed: {failure}")
                    return
                if check is CredentialCheck.ON_FAILURE and not await self._check_credential(token):
                    return
                self._health.record_error(f"Login attempt {attempt} failed: {failure}")
                if reached_ready:
                    # The session worked before it dropped; start counting afresh
                    attempt = 0
                elif attempt >= max_attempts:
                    self._give_up(f"Login failed after {attempt} attempts: {failure}")
                    return

                await self._reset_gateway()
                delay = self._settings.login_backoff(max(attempt, 1))
                logger.info("Retrying login in %.0fs", delay)
                await self._timers.sleep(delay)
            else:
                logger.info("Gateway session closed")
                self._apply(SessionEvent.CLOSED)
                self._health.mark_not_ready()
                return

    async def _check_credential(self, token: str) -> bool:
        try:
            identity = await self._validator(
                token, timeout=self._settings.credential_check_timeout
            )
        except CredentialInvalid as exc:
            logger.error("Token check failed: %s", exc)
            self._give_up(f"Token check failed: {exc}")
            return False
        logger.info("Token valid for %s (ID: %s)", identity.name, identity.id)
        return True

    async def _reset_gateway(self) -> None:
        """Close the HTTP session a failed attempt opened and reopen the client.

        Each ``login()`` opens a fresh HTTP session, and ``connect()`` closes the
        client on a fatal gateway close code.
        """
        try:
            await self._gateway.http.close()
            self._gateway.clear()
        except Exception as exc:
            logger.warning("Could not close HTTP session before retrying: %s", exc)

    def _give_up(self, message: str) -> None:
        self._apply(SessionEvent.GAVE_UP)
        self._health.mark_not_ready()
        self._health.record_error(message)
        logger.error("%s; not retrying until restart", message)

    # ------------------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------------------

    async def handle_ready(self, user: Any) -> None:
        """Record the bot's identity, declare presence, and notify listeners once."""
        first_ready = self.identity is None
        self.identity = BotIdentity(id=user.id, name=str(user))
        self._ready_seen = True
        self._apply(SessionEvent.GATEWAY_READY)
        self._health.mark_ready()

        await self._declare_presence()

        if first_ready:
            for listener in self._ready_listeners:
                await listener()

    def handle_disconnect(self) -> None:
        if self.status is SessionStatus.READY:
            logger.warning("Gateway connection lost; discord.py is reconnecting")
        self._apply(SessionEvent.GATEWAY_DISCONNECTED)
        self._health.mark_not_ready()

    def handle_resumed(self) -> None:
        logger.info("Gateway session resumed")
        self._apply(SessionEvent.GATEWAY_READY)
        self._health.mark_ready()

    async def _declare_presence(self) -> None:
        try:
            await self._gateway.change_presence(
                activity=discord.Activity(
                    type=discord.ActivityType.listening,
                    name=self._settings.presence_name,
                ),
                status=discord.Status.online,
            )
        except Exception as exc:
            logger.warning("Could not set presence: %s", exc)

    def _apply(self, event: SessionEvent) -> None:
        previous = self.status
        self.status = reduce_session(previous, event)
        if self.status is not previous:
            logger.debug(
                "Session %s -> %s (%s)",
                previous.value,
                self.status.value,
                event.value,
                extra={"status": self.status.value},
            )
