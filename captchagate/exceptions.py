"""Exception hierarchy for captchagate."""


class CaptchaGateError(Exception):
    """Base exception for all captchagate errors."""


class MalformedInputError(CaptchaGateError):
    """Raised when an identifier, answer or identity cannot be parsed."""


class ChallengeNotReadyError(CaptchaGateError):
    """Raised when a challenge cannot be displayed (unknown, expired or already shown)."""


class VerificationRejectedError(CaptchaGateError):
    """Raised for every failed submission.

    Wrong answer, expired challenge, replay and unknown identifier all map
    to this one error so callers cannot tell the cases apart.
    """


class AllocationCollisionError(CaptchaGateError):
    """Raised when a drawn identifier is already live. Retried internally."""


class StoreInvariantError(CaptchaGateError):
    """Raised when the challenge store is used in a way that signals corruption."""


class ConfigError(CaptchaGateError):
    """Raised when configuration is invalid."""
