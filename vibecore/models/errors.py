"""Exceptions raised by the inference and publish paths.

Collector unavailability, rate limiting and gate denials are ordinary
return values, not exceptions.
"""


class InsufficientSignal(Exception):
    """Every signal source was excluded; no vector can be produced."""


class PayloadValidationError(ValueError):
    """Presence payload rejected before any network call."""


class NetworkFailure(Exception):
    """Transient transport or server failure at the publish boundary."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
