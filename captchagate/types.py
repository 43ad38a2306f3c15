"""Enums and type aliases for captchagate."""

from enum import StrEnum


class ChallengeState(StrEnum):
    NEWLY_GENERATED = "newly_generated"
    WAITING_ANSWER = "waiting_answer"


class IdentifierEncoding(StrEnum):
    DECIMAL = "decimal"
    HEX = "hex"
