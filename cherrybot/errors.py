"""
Exception taxonomy shared by all components.

Authentication and parsing errors are raised at the webhook boundary and
mapped to generic HTTP responses. Git and network errors are raised inside a
single propagation or notification invocation and never escape it.
"""

from typing import Optional


class CherryBotError(Exception):
    """Base exception for cherry-bot errors."""
    pass


class MissingHeader(CherryBotError):
    """Raised when a required webhook header is absent."""
    pass


class MalformedSignature(CherryBotError):
    """Raised when the signature header lacks the sha256= prefix."""
    pass


class Unauthorized(CherryBotError):
    """Raised when the computed signature does not match the header."""
    pass


class MalformedPayload(CherryBotError):
    """Raised when a webhook body is not valid JSON or lacks required fields."""
    pass


class UnsupportedPlatform(CherryBotError):
    """Raised for a platform/event combination the bot does not handle."""
    pass


class ConfigError(CherryBotError):
    """Raised when configuration is missing or invalid."""
    pass


class GitOperationError(CherryBotError):
    """Raised when a clone, fetch, checkout, cherry-pick or push fails."""
    pass


class NetworkError(CherryBotError):
    """Raised when a REST call fails or returns a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
