"""Error taxonomy for trade execution and position management.

Collaborator clients translate transport failures into these so callers
only ever branch on engine errors.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(EngineError):
    """Out-of-range or missing caller input. Never retried."""


class NotFound(EngineError):
    """Position, trade or wallet is absent or not owned by the caller."""


class SwapUnavailable(EngineError):
    """The quote/swap provider could not produce a route or instruction."""


class SubmissionFailure(EngineError):
    """Network submission or confirmation failed after all retries."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class OracleUnavailable(EngineError):
    """The price oracle returned no usable price."""
