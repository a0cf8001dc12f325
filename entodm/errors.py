"""
Error types for entodm.

This module defines the exception types raised by the mapping layer:
- OdmError: Base exception
- ConfigurationError: Bad type or relation setup, detected at startup
- NotInitializedError: Operation issued before init()
- ValidationError: Locally detected bad input
- InvalidIdentifierError: Value cannot be coerced to a document identifier

Store failures (timeouts, connection loss, duplicate keys) are not wrapped:
the driver's own exceptions reach the caller unchanged.

Invariants:
    - All errors inherit from OdmError
    - Errors include context for debugging
    - A missing document is never an error (operations return None)
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OdmError(Exception):
    """Base exception for all entodm errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ODM_ERROR"
        self.details = details or {}


class ConfigurationError(OdmError):
    """Entity type or relation is misconfigured.

    Raised when:
    - A relation targets a class that is not a registered entity type
    - A relation names a property the owner does not declare
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "CONFIGURATION_ERROR", details=details)


class NotInitializedError(ConfigurationError):
    """No store is active: init() has not been called (or close() was)."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message or "Document store is not initialized, did you call init()?",
            code="NOT_INITIALIZED",
        )


class RegistryFrozenError(ConfigurationError):
    """Registry is frozen and cannot be modified."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REGISTRY_FROZEN")


class DuplicateRegistrationError(ConfigurationError):
    """Entity type or relation is already registered."""

    def __init__(self, message: str, type_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DUPLICATE_REGISTRATION",
            details={"type_name": type_name},
        )
        self.type_name = type_name


class ValidationError(OdmError):
    """Input validation failed.

    Raised when:
    - An identifier is malformed
    - An entity is written without the state the write needs
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class InvalidIdentifierError(ValidationError):
    """Value cannot be coerced to a store-native identifier.

    Attributes:
        value: The offending value
    """

    def __init__(self, value: Any, field_name: str = "_id") -> None:
        super().__init__(
            f"Invalid identifier {value!r}: expected a 24-character hex string or ObjectId",
            field_name=field_name,
            code="INVALID_IDENTIFIER",
        )
        self.value = value
