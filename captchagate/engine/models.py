"""Challenge record model."""

from __future__ import annotations

from dataclasses import dataclass, replace

from captchagate.engine.identifiers import format_answer
from captchagate.types import ChallengeState


@dataclass(frozen=True)
class ChallengeRecord:
    """One outstanding challenge.

    Records are immutable; a state change produces a new record with the
    same ``id``, ``answer`` and ``created_at``.
    """

    id: str
    answer: int
    created_at: float
    state: ChallengeState = ChallengeState.NEWLY_GENERATED

    @property
    def answer_text(self) -> str:
        return format_answer(self.answer)

    @property
    def index_key(self) -> tuple[float, str]:
        """Position of this record in the expiry index."""
        return (self.created_at, self.id)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        # Same cutoff arithmetic as the store's expiry index
        return self.created_at < now - ttl_seconds

    def with_state(self, state: ChallengeState) -> ChallengeRecord:
        return replace(self, state=state)

    def __repr__(self) -> str:
        # Keep the answer out of logs and tracebacks
        return (
            f"ChallengeRecord(id={self.id!r}, state={self.state.value!r}, "
            f"created_at={self.created_at!r})"
        )
