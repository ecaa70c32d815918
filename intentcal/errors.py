from __future__ import annotations

from typing import Optional


class IntentCalError(Exception):
    """Base class for every failure the pipeline reports to its caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class TransportError(IntentCalError):
    """Network or HTTP failure talking to the model backend or the store."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(IntentCalError):
    """A response body did not have the expected shape."""


class NotFoundError(IntentCalError):
    """Fuzzy resolution found no candidate for a modify/delete intent."""


class NoDestinationError(IntentCalError):
    """No calendar or reminder list is available to create into."""


class AuthorizationError(IntentCalError):
    """Access to the calendar/reminder store has not been granted."""
