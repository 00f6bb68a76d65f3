"""Error taxonomy of the categorization and insight engine.

Only ``ValidationError`` and, at the HTTP layer, ``RateLimitExceededError``
are meant to reach callers. The service errors are
raised by the AI client and recovered by the categorization orchestrator;
``EmptyInputError`` guards the statistics helpers and is checked for before
they are called.
"""

from typing import Any


class LedgerLensError(Exception):
    """Base class for all engine errors."""


class ValidationError(LedgerLensError):
    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {"error": "validation_error", "field": self.field, "reason": self.reason}


class ServiceUnavailableError(LedgerLensError):
    """The categorization provider failed, timed out or ran out of retries."""


class MalformedResponseError(LedgerLensError):
    """The categorization provider answered with an unusable payload."""

    def __init__(self, message: str, payload: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class EmptyInputError(LedgerLensError):
    """A statistic was requested over an empty sample."""


class RateLimitExceededError(LedgerLensError):
    def __init__(self, message: str, reset_after_s: float) -> None:
        super().__init__(message)
        self.reset_after_s = reset_after_s

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "rate_limit_exceeded",
            "message": str(self),
            "reset_after_s": round(self.reset_after_s, 3),
        }
