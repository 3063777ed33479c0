"""Custom exceptions for the knawledge catalog.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Document errors (1xxx)
    DOCUMENT_NOT_FOUND = 1001
    DOCUMENT_READ_FAILED = 1002
    DOCUMENT_PARSE_FAILED = 1003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_CONNECTION_FAILED = 4004
    STORAGE_UNIQUE_VIOLATION = 4010
    STORAGE_INTEGRITY_VIOLATION = 4011

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class KnawledgeError(Exception):
    """Base exception for all knawledge errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class DocumentNotFoundError(KnawledgeError):
    """Raised when no catalog row matches a lookup key.

    ``identifier`` is always the caller's original input, never a parsed
    or normalised form of it.
    """

    def __init__(self, identifier: str, message: Optional[str] = None):
        super().__init__(
            message or f"Document '{identifier}' not found",
            code=ErrorCode.DOCUMENT_NOT_FOUND,
            details={"identifier": identifier}
        )
        self.identifier = identifier


class StorageError(KnawledgeError):
    """Raised for catalog storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ConstraintViolationError(StorageError):
    """Raised when a write violates a unique or referential constraint."""

    @property
    def is_unique_violation(self) -> bool:
        return self.code == ErrorCode.STORAGE_UNIQUE_VIOLATION


class DocumentReadError(KnawledgeError):
    """Raised when a document file cannot be read from disk."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.DOCUMENT_READ_FAILED, details=details)
        self.path = path
        self.original_error = original_error


class DocumentParseError(KnawledgeError):
    """Raised when a document's front matter is malformed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if path:
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.DOCUMENT_PARSE_FAILED, details=details)
        self.path = path
        self.original_error = original_error


class ConfigurationError(KnawledgeError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(KnawledgeError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
