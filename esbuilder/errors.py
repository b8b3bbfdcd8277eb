"""Builder error taxonomy.

Every error raised by the builder carries an ``ErrorCode`` so callers can
branch on a stable value instead of the message text. Errors coming back
from the search engine are never wrapped; ``GatewayError`` only names them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from elasticsearch import ApiError, TransportError


class ErrorCode(str, Enum):
    CONFIG_INVALID = "CONFIG_INVALID"
    INPUT_ERROR = "INPUT_ERROR"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    UNSUPPORTED_OPERATOR = "UNSUPPORTED_OPERATOR"
    INVALID_STATE = "INVALID_STATE"


class BuilderError(Exception):
    """Base class for builder errors."""

    code: ErrorCode = ErrorCode.INPUT_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BuilderError):
    """Malformed connection parameters or authentication setup."""

    code = ErrorCode.CONFIG_INVALID


class InvalidArgumentError(BuilderError):
    """Caller-supplied value or structure the builder cannot accept."""

    code = ErrorCode.INPUT_ERROR


class UnsupportedOperatorError(InvalidArgumentError):
    """Operator or logic string outside the dispatch tables."""

    code = ErrorCode.UNSUPPORTED_OPERATOR


class BuilderStateError(InvalidArgumentError):
    """Call not allowed in the builder's current state."""

    code = ErrorCode.INVALID_STATE


# Client-side and server-side errors raised by the elasticsearch client.
# They reach the caller unchanged.
GatewayError = (ApiError, TransportError)


__all__ = [
    "ErrorCode",
    "BuilderError",
    "ConfigurationError",
    "InvalidArgumentError",
    "UnsupportedOperatorError",
    "BuilderStateError",
    "GatewayError",
]
