"""Challenge identifier and answer allocation."""

from __future__ import annotations

import re
import secrets
from typing import TYPE_CHECKING, Protocol

import structlog

from captchagate.exceptions import AllocationCollisionError, MalformedInputError
from captchagate.types import IdentifierEncoding

if TYPE_CHECKING:
    from collections.abc import Container

logger = structlog.get_logger(__name__)

ANSWER_DIGITS = 5
ANSWER_SPACE = 10**ANSWER_DIGITS

DECIMAL_WIDTH = 10
HEX_WIDTH = 16

_PATTERNS: dict[IdentifierEncoding, re.Pattern[str]] = {
    IdentifierEncoding.DECIMAL: re.compile(rf"^[0-9]{{{DECIMAL_WIDTH}}}$"),
    IdentifierEncoding.HEX: re.compile(rf"^[0-9a-fA-F]{{{HEX_WIDTH}}}$"),
}


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


class IdentifierAllocator:
    """Draws unique challenge identifiers and five-digit answers.

    Identifiers come uniformly from a fixed space: ten zero-padded decimal
    digits, or sixteen lowercase hex digits (64 bits). A candidate that is
    already live is discarded and redrawn; the space is large enough that
    one draw almost always suffices.
    """

    def __init__(
        self,
        encoding: IdentifierEncoding = IdentifierEncoding.DECIMAL,
        rng: RandomSource | None = None,
    ) -> None:
        self._encoding = IdentifierEncoding(encoding)
        self._rng: RandomSource = rng or secrets.SystemRandom()

    @property
    def encoding(self) -> IdentifierEncoding:
        return self._encoding

    @property
    def space_size(self) -> int:
        if self._encoding is IdentifierEncoding.HEX:
            return 16**HEX_WIDTH
        return 10**DECIMAL_WIDTH

    def format(self, value: int) -> str:
        """Render a numeric identifier in canonical text form."""
        if self._encoding is IdentifierEncoding.HEX:
            return f"{value:0{HEX_WIDTH}x}"
        return f"{value:0{DECIMAL_WIDTH}d}"

    def is_well_formed(self, text: str) -> bool:
        return bool(_PATTERNS[self._encoding].fullmatch(text))

    def normalize(self, text: str | int) -> str:
        """Validate identifier syntax and return its canonical form.

        Integers are accepted for the decimal encoding, since browser
        clients send the identifier back as a JSON number and drop the
        leading zeros.
        """
        if isinstance(text, int) and not isinstance(text, bool):
            if self._encoding is not IdentifierEncoding.DECIMAL or not (
                0 <= text < self.space_size
            ):
                msg = "Numeric challenge identifier out of range"
                raise MalformedInputError(msg)
            return self.format(text)
        if not isinstance(text, str):
            msg = "Challenge identifier must be text"
            raise MalformedInputError(msg)
        candidate = text.strip()
        if not self.is_well_formed(candidate):
            msg = f"Malformed challenge identifier for {self._encoding} encoding"
            raise MalformedInputError(msg)
        return candidate.lower()

    def draw(self, existing_ids: Container[str]) -> str:
        """Draw one candidate; raise if it is already live."""
        candidate = self.format(self._rng.randrange(self.space_size))
        if candidate in existing_ids:
            raise AllocationCollisionError(candidate)
        return candidate

    def allocate(self, existing_ids: Container[str]) -> str:
        """Return an identifier not present in ``existing_ids``."""
        while True:
            try:
                return self.draw(existing_ids)
            except AllocationCollisionError:
                logger.debug("identifier_collision", encoding=str(self._encoding))

    def draw_answer(self) -> int:
        """Draw the expected answer uniformly over 00000-99999."""
        return self._rng.randrange(ANSWER_SPACE)


def format_answer(answer: int) -> str:
    """Zero-pad an answer to its five displayed digits."""
    return f"{answer:0{ANSWER_DIGITS}d}"
