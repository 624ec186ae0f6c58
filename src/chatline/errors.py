"""Application-level exception types for chatline."""

from __future__ import annotations


class ChatlineError(Exception):
    """Base exception for chatline."""


class ConfigurationError(ChatlineError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class TransportError(ChatlineError):
    """Raised when a stream fails to open or reports an error event."""


class StreamAbortedError(TransportError):
    """Delivered as the terminal cause of a stream whose abort was honored."""


class MalformedResponseError(ChatlineError):
    """Raised when a final message does not carry plain text."""


class CorruptPersistedStateError(ChatlineError):
    """Raised when stored conversation data cannot be parsed."""
