"""
Error taxonomy for the candle wall.

- ValidationError: submitted text is missing, empty or too long
- ModerationUnavailable: the external classifier failed or gave unusable output
- StoreUnavailable: the key-value service could not be read or written

None of these cross the service boundary; CandleWall converts them into
a SubmissionOutcome.
"""


class CandleWallError(Exception):
    """Base class for candle wall errors."""


class ValidationError(CandleWallError):
    """Raised when a message fails input validation."""


class ModerationUnavailable(CandleWallError):
    """Raised when the classifier call fails or returns nothing usable."""

    def __init__(self, message: str, kind: str = "unknown"):
        super().__init__(message)
        self.kind = kind


class StoreUnavailable(CandleWallError):
    """Raised when the key-value service fails."""
