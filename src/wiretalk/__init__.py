"""wiretalk - scripted conversations for testing TCP protocols."""

from .connection import Connection, ConnectionConfig, ConnectionState
from .conversation import Conversation, ConnectionView
from .errors import (
    ConfigurationError,
    ConnectionClosedError,
    ConnectionLookupError,
    ExpectationMismatch,
    TransportError,
    WiretalkError,
)
from .operations import Call, Disconnect, Drop, Receive, Send, Wait, matches

__version__ = "0.1.0"

__all__ = [
    "Call",
    "ConfigurationError",
    "Connection",
    "ConnectionClosedError",
    "ConnectionConfig",
    "ConnectionLookupError",
    "ConnectionState",
    "ConnectionView",
    "Conversation",
    "Disconnect",
    "Drop",
    "ExpectationMismatch",
    "Receive",
    "Send",
    "TransportError",
    "Wait",
    "WiretalkError",
    "matches",
]
