"""
Error types for the Datastore SDK.

This module defines all exception types raised by the SDK:
- DatastoreError: Base exception
- ApiError: Non-success HTTP status from the API
- ResponseDecodeError: Response body could not be decoded
- InvalidKeyError: Key misuse detected before any request
- UnsupportedValueError: Property value has no wire representation
- InvalidQueryError: Query cannot be expressed on the wire
- TransactionError: Transaction used outside its lifecycle

Invariants:
    - All SDK errors inherit from DatastoreError
    - Transport errors (httpx) are never wrapped, they propagate as raised
    - Caller misuse is raised before any network activity
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DatastoreError(Exception):
    """Base exception for all Datastore SDK errors.

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
        self.code = code or "DATASTORE_ERROR"
        self.details = details or {}


class ApiError(DatastoreError):
    """The API answered with a non-success status.

    Raised before the response body is decoded.

    Attributes:
        status_code: HTTP status code
        body: Raw response body
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        body: bytes = b"",
    ) -> None:
        super().__init__(
            message,
            code="API_ERROR",
            details={"status_code": status_code},
        )
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(DatastoreError):
    """Response body is not a valid message of the expected type."""

    def __init__(self, message: str, action: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"action": action},
        )
        self.action = action


class InvalidKeyError(DatastoreError):
    """Key cannot be used for the requested operation.

    Raised when:
    - allocate_ids receives a complete key
    - An ancestor path element has no id or name
    - A key path is empty
    """

    def __init__(self, message: str, path: Optional[list] = None) -> None:
        super().__init__(
            message,
            code="INVALID_KEY",
            details={"path": path},
        )
        self.path = path


class UnsupportedValueError(DatastoreError):
    """Property value has no wire representation."""

    def __init__(self, value: Any) -> None:
        super().__init__(
            f"Unsupported field value, {value!r}, of type {type(value).__name__}",
            code="UNSUPPORTED_VALUE",
            details={"type": type(value).__name__},
        )
        self.value = value


class InvalidQueryError(DatastoreError):
    """Query contains something the API cannot express."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_QUERY")


class TransactionError(DatastoreError):
    """Transaction used outside of its lifecycle.

    Raised when:
    - An operation is issued before begin()
    - begin() is called twice
    - The transaction was already committed or rolled back
    """

    def __init__(
        self,
        message: str,
        transaction: Optional[bytes] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSACTION_ERROR",
            details={"transaction": transaction},
        )
        self.transaction = transaction
