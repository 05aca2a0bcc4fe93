"""Bot token check against Discord's REST identity endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from welcome_bot.errors import CredentialInvalid

DISCORD_API = "https://discord.com/api/v10"
DISCORD_USER_URL = f"{DISCORD_API}/users/@me"

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class BotIdentity:
    """The bot account as reported by Discord."""

    id: int
    name: str


async def validate_token(
    token: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BotIdentity:
    """Look up the bot's own account with *token*.

    Any outcome other than a well-formed 2xx response raises
    ``CredentialInvalid``, including timeouts and network errors.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(
                DISCORD_USER_URL,
                headers={"Authorization": f"Bot {token}"},
            )
            resp.raise_for_status()
            data = resp.json()
    except httpx.TimeoutException as exc:
        raise CredentialInvalid(f"Token check timed out after {timeout:g}s") from exc
    except httpx.HTTPStatusError as exc:
        raise CredentialInvalid(
            f"Token rejected by Discord (HTTP {exc.response.status_code})"
        ) from exc
    except httpx.HTTPError as exc:
        raise CredentialInvalid(f"Token check failed: {exc}") from exc
    except ValueError as exc:
        raise CredentialInvalid("Token check returned a malformed response") from exc

    try:
        return BotIdentity(id=int(data["id"]), name=data["username"])
    except (KeyError, TypeError, ValueError) as exc:
        raise CredentialInvalid("Token check returned a malformed response") from exc
