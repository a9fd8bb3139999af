"""Exception types raised by wiretalk conversations."""

from __future__ import annotations

from typing import Any


class WiretalkError(Exception):
    """Base exception for wiretalk."""


class ConfigurationError(WiretalkError):
    """Raised when a conversation or connection is set up in an unusable way."""


class PlanError(ConfigurationError):
    """Raised when a declarative plan document is invalid."""


class ConnectionLookupError(WiretalkError, LookupError):
    """Raised when an operation names an unknown or already closed connection."""

    def __init__(self, name: str | None, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"couldn't find a registered connection named {name!r}")


class TransportError(WiretalkError):
    """Raised when the underlying transport fails."""


class ConnectionClosedError(TransportError):
    """Raised when a connection closes while a receive is waiting on it."""


class ExpectationMismatch(WiretalkError, AssertionError):
    """Raised when a received chunk does not satisfy its expectation."""

    def __init__(self, expected: Any, actual: Any, message: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"expected {expected!r}, received {actual!r}")


class ConversationStateError(WiretalkError):
    """Raised when a conversation is run more than once."""


class BarrierError(WiretalkError):
    """Raised when a completion barrier is released with nothing to resume."""
