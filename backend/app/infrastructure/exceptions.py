"""
Custom Exceptions for the Pet Gourmet store backend

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class PetStoreError(Exception):
    """Base exception for all store errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(PetStoreError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        errors: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if errors:
            details["errors"] = errors
        super().__init__(message, details, original_error)
        self.errors = errors or []


class DatabaseError(PetStoreError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class DuplicateError(DatabaseError):
    """Raised when attempting to create a duplicate resource."""
    pass


class PaymentGatewayError(PetStoreError):
    """Raised when a payment gateway call fails."""

    def __init__(
        self,
        message: str,
        gateway: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if gateway:
            details["gateway"] = gateway
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details, original_error)
        self.gateway = gateway
        self.status_code = status_code


class RateLimitError(PaymentGatewayError):
    """Raised when request rate limits are exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error=original_error)
        self.retry_after = retry_after
        if retry_after:
            self.details["retry_after_seconds"] = retry_after


class MediaServiceError(PetStoreError):
    """Raised when media CDN operations fail."""
    pass


class ConfigurationError(PetStoreError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
