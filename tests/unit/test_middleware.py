"""Unit tests for captchagate/web/middleware.py."""

from __future__ import annotations

from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from httpx import ASGITransport, AsyncClient

from captchagate.web.middleware import IssuanceThrottleMiddleware, RequestIDMiddleware

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(max_requests: int = 3, window_seconds: int = 60) -> FastAPI:
    """Minimal app with the throttle guarding /api/new-qid."""
    app = FastAPI()
    app.add_middleware(
        IssuanceThrottleMiddleware,
        max_requests=max_requests,
        window_seconds=window_seconds,
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/new-qid", response_class=PlainTextResponse)
    async def new_qid() -> str:
        return "0000000001"

    @app.get("/api/users", response_class=PlainTextResponse)
    async def users() -> str:
        return ""

    return app


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRequestIDMiddleware:
    async def test_generates_request_id(self) -> None:
        transport = ASGITransport(app=_make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/users")
        assert resp.headers["x-request-id"]

    async def test_echoes_incoming_request_id(self) -> None:
        transport = ASGITransport(app=_make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/users", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["x-request-id"] == "abc-123"


@pytest.mark.unit
class TestIssuanceThrottleMiddleware:
    def test_default_parameters(self) -> None:
        middleware = IssuanceThrottleMiddleware(FastAPI())
        assert middleware._max_requests == 30
        assert middleware._window == 60
        assert middleware._paths == frozenset({"/api/new-qid"})

    async def test_under_limit_allowed(self) -> None:
        transport = ASGITransport(app=_make_app(max_requests=3))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for i in range(3):
                resp = await client.get("/api/new-qid")
                assert resp.status_code == 200, f"Request {i + 1} should be allowed"

    async def test_over_limit_returns_429_with_retry_after(self) -> None:
        transport = ASGITransport(app=_make_app(max_requests=2, window_seconds=45))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(2):
                await client.get("/api/new-qid")
            resp = await client.get("/api/new-qid")
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "45"

    async def test_other_paths_not_throttled(self) -> None:
        transport = ASGITransport(app=_make_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/api/new-qid")
            for _ in range(10):
                resp = await client.get("/api/users")
                assert resp.status_code == 200

    async def test_zero_disables_throttle(self) -> None:
        transport = ASGITransport(app=_make_app(max_requests=0))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(20):
                resp = await client.get("/api/new-qid")
                assert resp.status_code == 200

    async def test_window_expiry_resets_limit(self) -> None:
        """Hits older than the window are dropped, letting new requests through."""
        transport = ASGITransport(app=_make_app(max_requests=2, window_seconds=1))
        timestamps = [0.0, 0.0, 2.0]

        with patch("captchagate.web.middleware.time") as mock_time:
            mock_time.monotonic.side_effect = timestamps
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                for _ in range(2):
                    await client.get("/api/new-qid")
                resp = await client.get("/api/new-qid")

        assert resp.status_code == 200

    async def test_throttle_logged(self) -> None:
        transport = ASGITransport(app=_make_app(max_requests=1))
        with patch("captchagate.web.middleware.logger") as mock_logger:
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                await client.get("/api/new-qid")
                await client.get("/api/new-qid")

            mock_logger.warning.assert_called_once()
            call_kwargs = mock_logger.warning.call_args[1]
            assert "ip" in call_kwargs


@pytest.mark.unit
class TestIssuanceThrottleMemory:
    def test_idle_clients_are_forgotten(self) -> None:
        middleware = IssuanceThrottleMiddleware(FastAPI(), max_requests=5, window_seconds=1)
        for i in range(500):
            assert middleware._record_hit(f"10.0.{i // 256}.{i % 256}", now=0.0)
        assert len(middleware._hits) == 500

        middleware._record_hit("192.0.2.1", now=2.0)
        assert set(middleware._hits) == {"192.0.2.1"}

    def test_zero_window_tracks_only_current_client(self) -> None:
        middleware = IssuanceThrottleMiddleware(FastAPI(), max_requests=5, window_seconds=0)
        for i in range(500):
            middleware._record_hit(f"2001:db8::{i:x}", now=float(i))
        assert len(middleware._hits) == 1

    def test_own_stale_entry_is_replaced(self) -> None:
        middleware = IssuanceThrottleMiddleware(FastAPI(), max_requests=1, window_seconds=10)
        assert middleware._record_hit("a", now=0.0)
        assert not middleware._record_hit("a", now=5.0)
        assert middleware._record_hit("a", now=11.0)
        assert list(middleware._hits["a"]) == [11.0]

    def test_active_clients_survive_pruning(self) -> None:
        middleware = IssuanceThrottleMiddleware(FastAPI(), max_requests=2, window_seconds=10)
        middleware._record_hit("idle", now=0.0)
        middleware._record_hit("busy", now=8.0)
        middleware._record_hit("busy", now=9.0)
        middleware._record_hit("other", now=12.0)
        assert set(middleware._hits) == {"busy", "other"}
        assert not middleware._record_hit("busy", now=12.5)


@pytest.mark.unit
class TestRequestContext:
    async def test_request_id_and_path_bound_for_logging(self) -> None:
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)
        seen: dict[str, object] = {}

        @app.get("/api/users")
        async def users() -> dict[str, str]:
            seen.update(structlog.contextvars.get_contextvars())
            return {}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/api/users", headers={"X-Request-ID": "req-7"})

        assert seen["request_id"] == "req-7"
        assert seen["path"] == "/api/users"
