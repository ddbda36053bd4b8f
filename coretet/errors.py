"""Exceptions raised by CoreTet handlers and mapped onto HTTP responses."""

from typing import Optional


class CoreTetError(Exception):
    """Base exception for all CoreTet errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class Unauthorized(CoreTetError):
    """Raised when the bearer credential is missing or invalid."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[str] = None):
        super().__init__(message, details)


class Forbidden(CoreTetError):
    """Raised when an authenticated caller is not allowed to act."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[str] = None):
        super().__init__(message, details)


class NotFound(CoreTetError):
    """Raised when a requested record does not exist."""

    status_code = 404


class ValidationError(CoreTetError):
    """Raised for malformed or missing request fields."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.field = field


class UnsupportedType(ValidationError):
    """Raised when an upload's file extension is not allowed."""

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message, field="fileName")
        self.file_name = file_name


class TooLarge(ValidationError):
    """Raised when an upload exceeds the per-file size limit."""

    status_code = 413

    def __init__(self, message: str, file_size: Optional[int] = None):
        super().__init__(message, field="fileSize")
        self.file_size = file_size


class QuotaExceeded(CoreTetError):
    """Raised when an upload would take the user over their storage limit."""

    status_code = 413

    def __init__(self, message: str, used: int = 0, limit: int = 0):
        super().__init__(message)
        self.used = used
        self.limit = limit


class UpstreamError(CoreTetError):
    """
    Raised when the relational store or the object store fails.

    `message` is safe to return to callers; `details` is only logged.
    """

    status_code = 500


class StoreError(UpstreamError):
    """Raised when a database operation fails."""

    def __init__(self, message: str = "Database operation failed",
                 operation: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.operation = operation


class ProviderError(CoreTetError):
    """Raised when an external storage provider call fails."""

    status_code = 502

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.provider = provider


class InviteCodeExhausted(CoreTetError):
    """Raised when no unused invite code could be generated."""

    status_code = 500

    def __init__(self, message: str = "Failed to generate unique invite code", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
