"""
Custom exceptions for the resourcegraph engine.
"""

from __future__ import annotations

from typing import Any, Optional


class ResourceGraphError(Exception):
    """Base exception for all resourcegraph errors."""
    pass


class ValidationError(ResourceGraphError):
    """
    Raised when a request body or (in strict mode) request parameters fail validation.

    `errors` maps a field (or parameter) name to its list of messages.
    """

    def __init__(self, errors: dict[str, list[str]], message: Optional[str] = None):
        self.errors = errors
        if message is None:
            first = next(iter(errors.values()), [])
            message = first[0] if first else "Validation failed"
        self.message = message
        super().__init__(f"Validation failed: {errors}")


class NotFoundError(ResourceGraphError):
    """Raised when a resource or an identifier does not resolve."""

    def __init__(self, resource: str, identifier: Any = None):
        self.resource = resource
        self.identifier = identifier
        if identifier is None:
            message = f"Resource '{resource}' not found"
        else:
            message = f"Resource with ID {identifier} not found"
        self.message = message
        super().__init__(message)


class IAMError(ResourceGraphError):
    """Raised when the principal lacks the scope an operation requires."""

    def __init__(self, message: str = "Access denied", status_code: int = 403):
        self.status_code = status_code
        super().__init__(message)


class GraphConfigError(ResourceGraphError):
    """Raised when a viewset / capability declaration is invalid."""
    pass


class StoreFault(ResourceGraphError):
    """Raised when the backing store fails unexpectedly."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(f"Store failed{f' during {operation}' if operation else ''}: {message}")


class CacheBackendError(ResourceGraphError):
    """Raised by the cache client; always recovered by the response cache."""
    pass


class TransactionAborted(ResourceGraphError):
    """Raised when an atomic batch was rolled back."""

    def __init__(self, message: str, failed_index: Optional[int] = None):
        self.failed_index = failed_index
        super().__init__(message)

