"""Logging setup: JSON lines in production, a readable console format otherwise."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from welcome_bot.config import Settings

# Context attached through ``extra=`` by the voice, session and playback code
_CONTEXT_FIELDS = ("channel_id", "member", "attempt", "status")

# discord.py narrates every voice handshake step and gateway heartbeat at INFO
_QUIET_LOGGERS = {
    "discord.gateway": logging.WARNING,
    "discord.client": logging.WARNING,
    "discord.voice_state": logging.WARNING,
    "discord.voice_client": logging.WARNING,
    "discord.player": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}

_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the hosting platform's log collector."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in _CONTEXT_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Route all logging to stdout at ``LOG_LEVEL`` and quiet chatty libraries."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # At DEBUG, let discord.py speak too
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level if level > logging.DEBUG else logging.NOTSET)
