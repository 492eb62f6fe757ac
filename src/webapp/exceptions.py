"""
Custom exceptions for the quoting web API.

Provides a hierarchy of exceptions for clean error handling in routes.
"""

from typing import Optional, Dict, Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppException):
    """Raised when input validation fails."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class UnsupportedCurrencyInputError(ValidationError):
    """Raised when a request uses a currency with no known rate."""

    def __init__(self, currency: str):
        super().__init__(
            f"Unsupported currency: {currency}",
            details={"currency": currency},
        )


class InvalidRecordError(ValidationError):
    """Raised when a proposal or customer record cannot be read."""

    def __init__(self, message: str, index: int, kind: str = "proposal"):
        super().__init__(message, details={"kind": kind, "index": index})


class ConfigurationError(AppException):
    """Raised when configuration is missing or invalid."""

    status_code = 500
    error_code = "CONFIGURATION_ERROR"
