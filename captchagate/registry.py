"""In-memory registry of names that passed verification."""

from __future__ import annotations

import threading

import structlog

logger = structlog.get_logger(__name__)


class UserRegistry:
    """Unordered set of accepted usernames, safe to share across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._names: set[str] = set()

    def register(self, name: str) -> bool:
        """Add ``name``; returns False if it was already registered."""
        with self._lock:
            if name in self._names:
                return False
            self._names.add(name)
        logger.info("identity_registered", identity=name)
        return True

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._names)

    def render_list(self) -> str:
        """Newline-separated names, as served by ``GET /api/users``."""
        return "\n".join(self.names())

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)
