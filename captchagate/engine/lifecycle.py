"""Challenge lifecycle: create, display once, verify once, expire."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, NoReturn

import structlog

from captchagate.engine.models import ChallengeRecord
from captchagate.exceptions import (
    ChallengeNotReadyError,
    StoreInvariantError,
    VerificationRejectedError,
)
from captchagate.types import ChallengeState

if TYPE_CHECKING:
    from collections.abc import Callable

    from captchagate.engine.identifiers import IdentifierAllocator
    from captchagate.engine.store import ChallengeStore

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class ChallengeLifecycleEngine:
    """Drives challenges through ``NEWLY_GENERATED -> WAITING_ANSWER -> removed``.

    A challenge can be displayed once and submitted once. Any submission,
    right or wrong, consumes it. Every operation re-checks the record's age
    against the clock, so an expired record that the sweeper has not reached
    yet is treated as absent.

    With ``require_display=False`` a challenge may be submitted straight
    from ``NEWLY_GENERATED``; displaying it is still single-shot.
    """

    def __init__(
        self,
        store: ChallengeStore,
        allocator: IdentifierAllocator,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        require_display: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._allocator = allocator
        self._ttl = ttl_seconds
        self._require_display = require_display
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def store(self) -> ChallengeStore:
        return self._store

    def create(self) -> str:
        """Issue a new challenge and return its identifier."""
        answer = self._allocator.draw_answer()
        with self._store.locked() as store:
            challenge_id = self._allocator.allocate(store)
            store.insert(
                ChallengeRecord(id=challenge_id, answer=answer, created_at=self._clock())
            )
        logger.info("challenge_created", challenge_id=challenge_id)
        return challenge_id

    def fetch_display(self, challenge_id: str) -> int:
        """Mark the challenge as shown and return the answer for rendering.

        Raises ChallengeNotReadyError if the challenge is unknown, expired
        or was already displayed. The record is left untouched in that case,
        except that an expired record is evicted.
        """
        with self._store.locked() as store:
            record = store.get(challenge_id)
            if record is None:
                raise ChallengeNotReadyError(challenge_id)
            if record.is_expired(self._ttl, self._clock()):
                self._consume(store, challenge_id)
                logger.info("challenge_expired", challenge_id=challenge_id, stage="display")
                raise ChallengeNotReadyError(challenge_id)
            if record.state is not ChallengeState.NEWLY_GENERATED:
                logger.warning("challenge_redisplay_refused", challenge_id=challenge_id)
                raise ChallengeNotReadyError(challenge_id)
            store.update_state(challenge_id, ChallengeState.WAITING_ANSWER)
        logger.info("challenge_displayed", challenge_id=challenge_id)
        return record.answer

    def submit(self, challenge_id: str, candidate: int) -> None:
        """Verify ``candidate`` and consume the challenge.

        Returns normally on a correct answer. Every failure raises
        VerificationRejectedError with the same message.
        """
        with self._store.locked() as store:
            record = store.get(challenge_id)
            if record is None:
                self._reject(challenge_id, "unknown")
            if self._require_display and record.state is not ChallengeState.WAITING_ANSWER:
                self._reject(challenge_id, "not_displayed")
            self._consume(store, challenge_id)
            if record.is_expired(self._ttl, self._clock()):
                self._reject(challenge_id, "expired")
        if candidate != record.answer:
            self._reject(challenge_id, "wrong_answer")
        logger.info("challenge_verified", challenge_id=challenge_id)

    def sweep_expired(self, now: float | None = None) -> int:
        """Evict every expired challenge; returns how many were removed."""
        evicted = self._store.evict_older_than(
            self._ttl, self._clock() if now is None else now
        )
        if evicted:
            logger.info("challenges_swept", count=len(evicted), remaining=len(self._store))
        return len(evicted)

    def live_count(self) -> int:
        return len(self._store)

    @staticmethod
    def _consume(store: ChallengeStore, challenge_id: str) -> None:
        # Caller holds the lock and has just read the record
        if store.remove(challenge_id) is None:
            msg = f"Challenge {challenge_id} vanished while locked"
            raise StoreInvariantError(msg)

    @staticmethod
    def _reject(challenge_id: str, reason: str) -> NoReturn:
        logger.info("challenge_rejected", challenge_id=challenge_id, reason=reason)
        msg = "Verification failed"
        raise VerificationRejectedError(msg)
