"""
Exception classes for MCP Merger.

Defines the error taxonomy for configuration merging, extension conversion
and the OAuth credential lifecycle. Every error carries a human-readable
message and can be rendered as a dictionary for API responses.
"""

from typing import Any, Dict, Optional


class MCPMergerError(Exception):
    """Base exception for all MCP Merger errors."""

    default_error_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize MCPMergerError.

        Args:
            message: Error message
            error_code: Optional error code for categorization
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def __str__(self) -> str:
        """String representation of the error."""
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class InvalidInput(MCPMergerError):
    """Caller-supplied structure is malformed."""

    default_error_code = "INVALID_INPUT"


class MissingServerSpec(MCPMergerError):
    """Extension manifest has no runnable server definition."""

    default_error_code = "MISSING_SERVER_SPEC"


class ClientSecretMissing(MCPMergerError):
    """No OAuth client secret has been installed."""

    default_error_code = "CLIENT_SECRET_MISSING"


class ClientSecretInvalid(MCPMergerError):
    """Client secret file lacks required fields."""

    default_error_code = "CLIENT_SECRET_INVALID"


class TokenCorrupt(MCPMergerError):
    """Stored token file exists but is not well-formed."""

    default_error_code = "TOKEN_CORRUPT"


class TokenExchangeFailed(MCPMergerError):
    """Token endpoint rejected the authorization code."""

    default_error_code = "TOKEN_EXCHANGE_FAILED"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize TokenExchangeFailed.

        Args:
            message: Error message
            status_code: HTTP status returned by the provider, if any
            body: Raw provider response body
            error_code: Optional error code
            details: Optional additional details
        """
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        if body is not None:
            details.setdefault("body", body)
        super().__init__(message, error_code, details)
        self.status_code = status_code
        self.body = body


class TokenExchangeTimeout(MCPMergerError):
    """Token endpoint did not answer within the configured timeout."""

    default_error_code = "TOKEN_EXCHANGE_TIMEOUT"
