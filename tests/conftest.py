"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterable

import pytest
from httpx import ASGITransport, AsyncClient

from captchagate.config.settings import Settings
from captchagate.engine.identifiers import IdentifierAllocator
from captchagate.engine.lifecycle import ChallengeLifecycleEngine
from captchagate.engine.store import ChallengeStore
from captchagate.web.app import create_app

TTL = 3600.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRandom:
    """Returns queued values from ``randrange`` in order."""

    def __init__(self, values: Iterable[int]) -> None:
        self._values = list(values)
        self.calls = 0

    def randrange(self, stop: int) -> int:
        self.calls += 1
        value = self._values.pop(0)
        assert 0 <= value < stop
        return value


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> ChallengeStore:
    return ChallengeStore()


@pytest.fixture()
def engine(store: ChallengeStore, clock: FakeClock) -> ChallengeLifecycleEngine:
    return ChallengeLifecycleEngine(
        store=store,
        allocator=IdentifierAllocator(),
        ttl_seconds=TTL,
        clock=clock,
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(sweep_interval_seconds=0, issue_limit_per_minute=0, _env_file=None)


@pytest.fixture()
def app(settings: Settings):
    """Create a fresh app instance for tests."""
    return create_app(settings)


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
def scripted_random():
    """Factory for a random source with predetermined draws."""
    return ScriptedRandom
