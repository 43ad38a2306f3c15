"""Boundary operations consumed by the HTTP layer."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from captchagate.exceptions import MalformedInputError

if TYPE_CHECKING:
    from captchagate.engine.identifiers import IdentifierAllocator
    from captchagate.engine.lifecycle import ChallengeLifecycleEngine
    from captchagate.registry import UserRegistry
    from captchagate.rendering import DigitRenderer

logger = structlog.get_logger(__name__)

_ANSWER_REGEX = re.compile(r"^[0-9]{1,5}$")
# One token of visible characters, no whitespace
_IDENTITY_REGEX = re.compile(r"^\S+$")


class VerificationGateway:
    """Validates raw request values and forwards them to the engine.

    No business rules live here beyond input shape checks. Malformed input
    is refused before the engine sees it, so it never changes state.
    """

    def __init__(
        self,
        engine: ChallengeLifecycleEngine,
        allocator: IdentifierAllocator,
        registry: UserRegistry,
        renderer: DigitRenderer,
        max_identity_length: int = 64,
    ) -> None:
        self._engine = engine
        self._allocator = allocator
        self._registry = registry
        self._renderer = renderer
        self._max_identity_length = max_identity_length

    def create_challenge(self) -> str:
        return self._engine.create()

    def fetch_display(self, raw_id: str | int) -> bytes:
        """Consume the display step and return the PNG for the challenge."""
        challenge_id = self._allocator.normalize(raw_id)
        answer = self._engine.fetch_display(challenge_id)
        # Rendering happens outside the store lock
        return self._renderer.render(answer)

    def submit_answer(
        self, raw_id: str | int, raw_answer: str, identity: str | None = None
    ) -> str | None:
        """Verify an answer and register ``identity`` on success.

        Returns the registered identity, or None when none was supplied.
        """
        challenge_id = self._allocator.normalize(raw_id)
        candidate = parse_answer(raw_answer)
        name = self.parse_identity(identity) if identity is not None else None

        self._engine.submit(challenge_id, candidate)

        if name is not None and not self._registry.register(name):
            logger.info("identity_already_registered", identity=name)
        return name

    def list_identities(self) -> str:
        return self._registry.render_list()

    def parse_identity(self, raw: str) -> str:
        name = raw.strip()
        if not name or len(name) > self._max_identity_length:
            msg = f"Identity must be 1-{self._max_identity_length} characters"
            raise MalformedInputError(msg)
        if not _IDENTITY_REGEX.fullmatch(name) or not name.isprintable():
            msg = "Identity must be a single token"
            raise MalformedInputError(msg)
        return name


def parse_answer(raw: str) -> int:
    """Parse a submitted answer of up to five ASCII digits."""
    text = raw.strip()
    if not _ANSWER_REGEX.fullmatch(text):
        msg = "Answer must be 1-5 digits"
        raise MalformedInputError(msg)
    return int(text)
