"""HTTP status page and health check for the hosting platform."""

from __future__ import annotations

import logging
from typing import Literal, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from welcome_bot.config import Settings
from welcome_bot.health import HealthStatus

_logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: Literal["connected", "disconnected"]
    error: Optional[str]
    uptime: float


def get_health(request: Request) -> HealthStatus:
    return request.app.state.health


def format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


@router.get("/", response_class=PlainTextResponse, summary="Status page")
async def status_page(request: Request, health: HealthStatus = Depends(get_health)) -> str:
    snapshot = health.snapshot()
    lines = [
        f"{request.app.title} is running! 🎵",
        f"Connected: {'yes' if snapshot.ready else 'no'}",
        f"Uptime: {format_uptime(snapshot.uptime)}",
    ]
    if snapshot.last_error:
        lines.append(f"Last error: {snapshot.last_error}")
    return "\n".join(lines)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(health: HealthStatus = Depends(get_health)) -> HealthResponse:
    """Always 200; ``status`` tells the platform whether the bot is connected."""
    snapshot = health.snapshot()
    return HealthResponse(
        status=snapshot.status,
        error=snapshot.last_error,
        uptime=round(snapshot.uptime, 3),
    )


def create_app(health: HealthStatus, settings: Settings) -> FastAPI:
    """Build and return the status application."""
    application = FastAPI(
        title=settings.bot_name,
        description="Liveness and status endpoint for the welcome voice bot.",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
    )
    application.state.health = health
    application.include_router(router)

    @application.exception_handler(Exception)
    async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch unhandled exceptions and return a clean JSON error response."""
        _logger.exception("Unhandled exception serving %s", request.url.path)

        if settings.is_production:
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": str(exc),
                "type": type(exc).__name__,
            },
        )

    return application


async def serve(application: FastAPI, settings: Settings) -> None:
    """Run uvicorn on the current event loop until it is told to exit."""
    config = uvicorn.Config(
        application,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(config)
    _logger.info("Server on port %d", settings.port)
    await server.serve()
