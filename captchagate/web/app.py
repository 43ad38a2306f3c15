"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from captchagate import __version__
from captchagate.config.logging import setup_logging
from captchagate.config.settings import get_settings, validate_settings
from captchagate.exceptions import (
    ChallengeNotReadyError,
    MalformedInputError,
    VerificationRejectedError,
)
from captchagate.web.dependencies import build_state
from captchagate.web.middleware import IssuanceThrottleMiddleware, RequestIDMiddleware
from captchagate.web.routes.captcha import router as captcha_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from captchagate.config.settings import Settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    state = app.state.captcha
    if state.settings.sweep_interval_seconds > 0:
        state.sweeper.start()
    yield
    await state.sweeper.stop()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = validate_settings(settings) if settings is not None else get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="captchagate",
        description="Five-digit image challenges with single-use verification",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.captcha = build_state(settings)

    # Client errors carry no internal state in their bodies
    @app.exception_handler(MalformedInputError)
    async def malformed_handler(request: Request, exc: MalformedInputError) -> PlainTextResponse:
        logger.info("bad_request", path=request.url.path, error=str(exc))
        return PlainTextResponse(str(exc), status_code=400)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(
        request: Request, exc: RequestValidationError
    ) -> PlainTextResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        logger.info("bad_request", path=request.url.path, error=message)
        return PlainTextResponse(message, status_code=400)

    @app.exception_handler(ChallengeNotReadyError)
    async def not_ready_handler(
        request: Request, exc: ChallengeNotReadyError
    ) -> PlainTextResponse:
        return PlainTextResponse("Challenge not found", status_code=404)

    @app.exception_handler(VerificationRejectedError)
    async def rejected_handler(
        request: Request, exc: VerificationRejectedError
    ) -> PlainTextResponse:
        return PlainTextResponse("Verification failed", status_code=401)

    # Last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(
        IssuanceThrottleMiddleware,
        max_requests=settings.issue_limit_per_minute,
        window_seconds=60,
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(captcha_router)

    @app.get("/api/health")
    async def health_check(request: Request) -> dict[str, object]:
        from captchagate.web.health import check_health

        return check_health(request.app.state.captcha)

    logger.info("app_created")
    return app
