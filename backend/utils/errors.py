"""
Application error taxonomy

Every error carries a human-readable message and the HTTP status it maps to.
server.py registers a single handler that renders them as {"error": message}.
"""
from enum import Enum
from typing import Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {"error": self.message}


class ValidationError(AppError):
    """Missing or malformed user input. Rejected before any ledger access."""

    status_code = 400


class InsufficientTokens(AppError):
    """Balance exhausted. The client should offer a purchase flow."""

    status_code = 402

    def __init__(self, message: str, balance: int = 0):
        super().__init__(message)
        self.balance = balance

    def to_dict(self) -> dict:
        return {"error": self.message, "tokensNeeded": True}


class ExternalServiceError(AppError):
    """Image generation, payment or email provider failure."""

    status_code = 500


class AuthError(AppError):
    """Webhook signature could not be verified."""

    status_code = 400


class StorageErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    CONSTRAINT = "constraint"
    UNKNOWN = "unknown"


class StorageError(AppError):
    """Ledger storage failure. No partial mutation is observable."""

    status_code = 500

    def __init__(self, message: str, kind: StorageErrorKind = StorageErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

    def to_dict(self) -> dict:
        return {"error": f"Token ledger unavailable: {self.message}"}
