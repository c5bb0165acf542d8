"""Exceptions raised to callers of the recommendation pipeline."""


class InvalidUserIdError(ValueError):
    """Raised when a recommendation request has a missing or malformed user id."""
