"""
Custom Exceptions for WalletWise

Hierarchical exception classes for proper error handling across layers.
The HTTP boundary maps each class to a status code (see main.py).
"""

from typing import Optional, Dict, Any


class WalletWiseError(Exception):
    """Base exception for all WalletWise errors."""

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


class ValidationError(WalletWiseError):
    """Raised when input validation fails or a tier transition is illegal."""
    pass


class UnsupportedOperationError(WalletWiseError):
    """Raised when an operation is not supported by the component it was sent to."""
    pass


class AuthorizationError(WalletWiseError):
    """Raised when the user's tier does not grant the requested feature."""
    pass


class WalletLimitError(AuthorizationError):
    """Raised when the wallet limit for the user's tier is reached."""

    def __init__(self, limit: int, message: Optional[str] = None):
        super().__init__(
            message or f"Wallet limit reached ({limit}). Upgrade to Pro for unlimited wallets.",
            details={"limit": limit},
        )


class TrialExpiredError(AuthorizationError):
    """Raised when an expired Pro trial blocks an action (distinct from a plain limit)."""

    def __init__(
        self,
        message: str = "Your Pro trial has ended. Please upgrade to Pro for unlimited wallets.",
    ):
        super().__init__(message, details={"code": "PRO_TRIAL_EXPIRED"})


class DatabaseError(WalletWiseError):
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


class ConflictError(DatabaseError):
    """Raised on duplicates or when a row changed underneath a conditional write."""
    pass


class GatewayError(WalletWiseError):
    """Raised when a payment provider call fails or returns an unexpected shape."""

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


class SignatureInvalidError(WalletWiseError):
    """Raised when a webhook signature is missing or does not verify."""

    def __init__(
        self,
        message: str = "Invalid webhook signature",
        gateway: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {"gateway": gateway} if gateway else {}
        super().__init__(message, details, original_error)


class TokenInvalidError(SignatureInvalidError):
    """Raised when a webhook callback token does not match."""
    pass


class WebhookNotConfiguredError(SignatureInvalidError):
    """Raised when a webhook cannot be verified because its secret is not configured."""
    pass


class ConfigurationError(WalletWiseError):
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
