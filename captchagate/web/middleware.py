"""FastAPI middleware: request ID injection and challenge issuance throttling."""

from __future__ import annotations

import time
import uuid
from collections import deque
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import PlainTextResponse

if TYPE_CHECKING:
    from collections.abc import Iterable

    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID for challenge log correlation.

    Context from the previous request on this task is cleared first, so a
    ``challenge_rejected`` event is never attributed to the wrong request.
    The ID and path are bound for every structlog event emitted while the
    request runs and echoed back in ``X-Request-ID``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class IssuanceThrottleMiddleware(BaseHTTPMiddleware):
    """Caps how many challenges one client IP may request per window.

    Only the listed paths count. Every other route, image fetches and
    submissions included, passes straight through. ``max_requests=0``
    disables the throttle.

    Clients whose hits have all aged out are forgotten: the caller's own
    entry on every request, everyone else's in a sweep run at most once per
    window. Tracked state is bounded by the clients seen in the last two
    windows.
    """

    def __init__(
        self,
        app: object,
        max_requests: int = 30,
        window_seconds: int = 60,
        paths: Iterable[str] = ("/api/new-qid",),
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._max_requests = max_requests
        self._window = window_seconds
        self._paths = frozenset(paths)
        self._hits: dict[str, deque[float]] = {}
        self._last_prune: float | None = None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self._max_requests <= 0 or request.url.path not in self._paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        if not self._record_hit(client_ip, time.monotonic()):
            logger.warning("issuance_throttled", ip=client_ip, path=request.url.path)
            return PlainTextResponse(
                "Too many challenges requested. Try again later.",
                status_code=429,
                headers={"Retry-After": str(self._window)},
            )
        return await call_next(request)

    def _record_hit(self, client_ip: str, now: float) -> bool:
        """Count one issuance for ``client_ip``; False when over the limit."""
        self._prune_idle(now)

        hits = self._hits.get(client_ip)
        if hits is not None:
            while hits and now - hits[0] >= self._window:
                hits.popleft()
            if not hits:
                del self._hits[client_ip]
                hits = None

        if hits is not None and len(hits) >= self._max_requests:
            return False

        self._hits.setdefault(client_ip, deque()).append(now)
        return True

    def _prune_idle(self, now: float) -> None:
        if self._last_prune is None:
            self._last_prune = now
        if now - self._last_prune < self._window:
            return
        self._last_prune = now
        idle = [ip for ip, hits in self._hits.items() if now - hits[-1] >= self._window]
        for ip in idle:
            del self._hits[ip]
        if idle:
            logger.debug("issuance_clients_pruned", count=len(idle), tracked=len(self._hits))
