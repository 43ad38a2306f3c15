"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from captchagate.engine.identifiers import IdentifierAllocator
from captchagate.engine.lifecycle import ChallengeLifecycleEngine
from captchagate.engine.store import ChallengeStore
from captchagate.engine.sweeper import ExpirySweeper
from captchagate.gateway import VerificationGateway
from captchagate.registry import UserRegistry
from captchagate.rendering import DigitRenderer

if TYPE_CHECKING:
    from captchagate.config.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass
class AppState:
    """Everything one application instance shares across requests."""

    settings: Settings
    engine: ChallengeLifecycleEngine
    registry: UserRegistry
    gateway: VerificationGateway
    sweeper: ExpirySweeper


def build_state(settings: Settings) -> AppState:
    """Wire store, engine, registry and renderer from settings."""
    allocator = IdentifierAllocator(encoding=settings.id_encoding)
    engine = ChallengeLifecycleEngine(
        store=ChallengeStore(),
        allocator=allocator,
        ttl_seconds=settings.challenge_ttl_seconds,
        require_display=settings.require_display,
    )
    registry = UserRegistry()
    gateway = VerificationGateway(
        engine=engine,
        allocator=allocator,
        registry=registry,
        renderer=DigitRenderer(),
        max_identity_length=settings.max_identity_length,
    )
    sweeper = ExpirySweeper(engine, interval_seconds=settings.sweep_interval_seconds)
    logger.info(
        "state_built",
        id_encoding=str(settings.id_encoding),
        ttl_seconds=settings.challenge_ttl_seconds,
        require_display=settings.require_display,
    )
    return AppState(
        settings=settings,
        engine=engine,
        registry=registry,
        gateway=gateway,
        sweeper=sweeper,
    )


def get_state(request: Request) -> AppState:
    return request.app.state.captcha  # type: ignore[no-any-return]


def get_gateway(request: Request) -> VerificationGateway:
    return get_state(request).gateway
