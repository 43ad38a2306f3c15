"""In-memory challenge storage with a time-ordered expiry index."""

from __future__ import annotations

import bisect
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from captchagate.exceptions import StoreInvariantError

if TYPE_CHECKING:
    from collections.abc import Generator

    from captchagate.engine.models import ChallengeRecord
    from captchagate.types import ChallengeState

logger = structlog.get_logger(__name__)


class ChallengeStore:
    """Maps challenge id to record, plus an index ordered by ``(created_at, id)``.

    Every operation takes the same re-entrant lock, so single calls are
    atomic. Callers that need a read-then-write sequence to be atomic wrap
    it in ``with store.locked():``. Nothing slow may run inside that block.

    Index upkeep uses ``bisect`` on a plain list: finding a position is
    O(log n), but ``insort`` and deleting an entry shift the tail, so insert
    and remove are O(n) memmoves. That stays cheap for the few thousand
    live challenges one process holds. Eviction drops a prefix in one slice.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, ChallengeRecord] = {}
        self._expiry_index: list[tuple[float, str]] = []

    @contextmanager
    def locked(self) -> Generator[ChallengeStore, None, None]:
        """Hold the store lock for a compound operation."""
        with self._lock:
            yield self

    def insert(self, record: ChallengeRecord) -> None:
        with self._lock:
            if record.id in self._records:
                msg = f"Challenge {record.id} already stored"
                raise StoreInvariantError(msg)
            self._records[record.id] = record
            bisect.insort(self._expiry_index, record.index_key)

    def get(self, challenge_id: str) -> ChallengeRecord | None:
        with self._lock:
            return self._records.get(challenge_id)

    def update_state(self, challenge_id: str, state: ChallengeState) -> ChallengeRecord:
        """Swap in a copy of the record with ``state``; the index is unaffected."""
        with self._lock:
            current = self._records.get(challenge_id)
            if current is None:
                msg = f"Cannot update missing challenge {challenge_id}"
                raise StoreInvariantError(msg)
            updated = current.with_state(state)
            self._records[challenge_id] = updated
            return updated

    def remove(self, challenge_id: str) -> ChallengeRecord | None:
        """Remove and return the record, or ``None`` if it is not stored."""
        with self._lock:
            record = self._records.pop(challenge_id, None)
            if record is None:
                return None
            self._unindex(record)
            return record

    def oldest_older_than(self, ttl_seconds: float, now: float) -> list[str]:
        """Ids created before ``now - ttl_seconds``, oldest first."""
        with self._lock:
            end = self._expired_prefix_end(ttl_seconds, now)
            return [challenge_id for _, challenge_id in self._expiry_index[:end]]

    def evict_older_than(self, ttl_seconds: float, now: float) -> list[ChallengeRecord]:
        """Remove every record created before ``now - ttl_seconds``."""
        with self._lock:
            end = self._expired_prefix_end(ttl_seconds, now)
            expired = self._expiry_index[:end]
            del self._expiry_index[:end]
            evicted = []
            for _, challenge_id in expired:
                record = self._records.pop(challenge_id, None)
                if record is None:
                    msg = f"Expiry index references missing challenge {challenge_id}"
                    raise StoreInvariantError(msg)
                evicted.append(record)
            return evicted

    def ids(self) -> set[str]:
        with self._lock:
            return set(self._records)

    def __contains__(self, challenge_id: object) -> bool:
        with self._lock:
            return challenge_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _expired_prefix_end(self, ttl_seconds: float, now: float) -> int:
        # Entries with created_at < cutoff sort before (cutoff, "")
        cutoff = now - ttl_seconds
        return bisect.bisect_left(self._expiry_index, (cutoff, ""))

    def _unindex(self, record: ChallengeRecord) -> None:
        key = record.index_key
        pos = bisect.bisect_left(self._expiry_index, key)
        if pos == len(self._expiry_index) or self._expiry_index[pos] != key:
            msg = f"Challenge {record.id} missing from expiry index"
            raise StoreInvariantError(msg)
        del self._expiry_index[pos]
