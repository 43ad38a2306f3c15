"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from captchagate import __version__

if TYPE_CHECKING:
    from captchagate.web.dependencies import AppState


def check_health(state: AppState) -> dict[str, object]:
    """Return service status with live challenge and registry counts."""
    return {
        "status": "healthy",
        "version": __version__,
        "id_encoding": str(state.settings.id_encoding),
        "live_challenges": state.engine.live_count(),
        "registered_users": len(state.registry),
        "sweeper": "running" if state.sweeper.running else "stopped",
    }
