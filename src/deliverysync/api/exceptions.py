#!/usr/bin/env python3
"""Errors raised by the order sync engine.

Every error carries a machine-readable code, a details dict, the wrapped
cause and a recoverable flag. "Recoverable" means the next scheduled cycle
may succeed without anyone touching configuration or credentials.

Only ConfigurationError is fatal. Everything else is contained at the event
or tenant level and reported in the cycle result.

Hierarchy:
    SyncEngineError
    ├── ConfigurationError
    ├── AuthenticationError
    │   ├── AuthFailure            tenant skipped for the cycle
    │   │   └── InvalidCredentialsError
    │   └── TokenExpiredError      401 mid-cycle
    ├── APIError                   non-2xx from the marketplace
    │   ├── RateLimitError
    │   ├── NotFoundError
    │   ├── ValidationError
    │   └── ServerError
    ├── NetworkError
    │   ├── ConnectionError
    │   └── TimeoutError
    ├── DatabaseError
    │   ├── ConnectionPoolError
    │   ├── TransactionError
    │   └── IntegrityError
    └── SyncError
        ├── PollFailure
        ├── DetailFetchFailure
        ├── PersistenceFailure
        └── AcknowledgmentFailure
"""
from datetime import datetime, timezone
from typing import Any, Optional


def _merge_details(kwargs: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """Pop caller-supplied details from kwargs and add the non-empty extras."""
    details = dict(kwargs.pop("details", None) or {})
    details.update({k: v for k, v in extra.items() if v is not None})
    return details


class SyncEngineError(Exception):
    """Root of every error the engine raises.

    Attributes:
        message: Human-readable description
        code: Stable identifier, e.g. "AUTH_FAILURE"
        details: Structured context for logs and cycle results
        timestamp: When the error was created (UTC)
        cause: Wrapped lower-level exception, if any
        recoverable: Whether a later cycle can succeed unaided
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, code={self.code!r}, "
            f"details={self.details!r}, recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for JSON logs and CLI output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration
# ============================================

class ConfigurationError(SyncEngineError):
    """A required setting is missing or malformed; the process exits."""

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, **kwargs):
        details = _merge_details(kwargs, missing_keys=missing_keys or None)
        super().__init__(
            message, code="CONFIGURATION_ERROR", details=details, recoverable=False, **kwargs
        )
        self.missing_keys = missing_keys or []


# ============================================
# Authentication
# ============================================

class AuthenticationError(SyncEngineError):
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class AuthFailure(AuthenticationError):
    """The token exchange for one tenant failed.

    Raised for rejected credentials, other non-2xx statuses, unreadable
    bodies and transport errors alike. The tenant sits out this cycle.
    """

    def __init__(
        self,
        message: str,
        tenant_id: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, tenant_id=tenant_id, status_code=status_code)
        kwargs.setdefault("code", "AUTH_FAILURE")
        super().__init__(message, details=details, **kwargs)
        self.tenant_id = tenant_id
        self.status_code = status_code


class InvalidCredentialsError(AuthFailure):
    """The auth endpoint answered 401/403; retrying will not help."""

    def __init__(self, message: str = "Invalid client credentials", **kwargs):
        super().__init__(message, code="INVALID_CREDENTIALS", recoverable=False, **kwargs)


class TokenExpiredError(AuthenticationError):
    """The marketplace rejected the cycle's bearer token."""

    def __init__(self, message: str = "Access token has expired", **kwargs):
        super().__init__(message, code="TOKEN_EXPIRED", **kwargs)


# ============================================
# Marketplace API
# ============================================

class APIError(SyncEngineError):
    """Non-2xx (or unparseable) response from the marketplace.

    Attributes:
        status_code: HTTP status
        endpoint: Path that was called
        method: HTTP method
        response_body: Raw body, kept whole here and truncated in details
    """

    RETRYABLE_STATUSES = (429, 500, 502, 503, 504)

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        **kwargs,
    ):
        details = _merge_details(
            kwargs,
            status_code=status_code,
            endpoint=endpoint or None,
            method=method or None,
            response_body=response_body[:500] if response_body else None,
        )
        kwargs.setdefault("recoverable", status_code in self.RETRYABLE_STATUSES)
        kwargs.setdefault("code", f"API_ERROR_{status_code}")
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.method = method
        self.response_body = response_body


class RateLimitError(APIError):
    """HTTP 429. retry_after comes from the Retry-After header (default 60s)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        details = _merge_details(kwargs, retry_after_seconds=retry_after or None)
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", details=details, **kwargs)
        self.retry_after = retry_after or 60


class NotFoundError(APIError):
    """HTTP 404."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None, **kwargs):
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"
        else:
            message = f"{resource_type} not found"
        kwargs.setdefault("status_code", 404)
        details = _merge_details(kwargs, resource_type=resource_type, resource_id=resource_id)
        super().__init__(
            message, code="NOT_FOUND", details=details, recoverable=False, **kwargs
        )


class ValidationError(APIError):
    """HTTP 400/422."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        kwargs.setdefault("status_code", 400)
        details = _merge_details(kwargs, field=field)
        super().__init__(
            message, code="VALIDATION_ERROR", details=details, recoverable=False, **kwargs
        )


class ServerError(APIError):
    """HTTP 5xx. The client retries these before giving up."""

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, code="SERVER_ERROR", recoverable=True, **kwargs)


# ============================================
# Network
# ============================================

class NetworkError(SyncEngineError):
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "NETWORK_ERROR")
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionError(NetworkError):
    def __init__(self, message: str = "Failed to connect to server", host: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, host=host)
        super().__init__(message, code="CONNECTION_ERROR", details=details, **kwargs)


class TimeoutError(NetworkError):
    def __init__(
        self,
        message: str = "Request timed out",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, timeout_seconds=timeout_seconds or None)
        super().__init__(message, code="TIMEOUT_ERROR", details=details, **kwargs)


# ============================================
# Database
# ============================================

class DatabaseError(SyncEngineError):
    """A driver-level failure, converted by api.database."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "DATABASE_ERROR")
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionPoolError(DatabaseError):
    """Pool missing, exhausted or unreachable."""

    def __init__(self, message: str = "Database connection pool error", **kwargs):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class TransactionError(DatabaseError):
    """Deadlock, timeout or failure to start/commit a transaction."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, operation=operation)
        super().__init__(message, code="TRANSACTION_ERROR", details=details, **kwargs)


class IntegrityError(DatabaseError):
    """A constraint was violated; the same write will fail again."""

    def __init__(
        self,
        message: str = "Database integrity error",
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, constraint=constraint)
        super().__init__(
            message, code="INTEGRITY_ERROR", details=details, recoverable=False, **kwargs
        )


# ============================================
# Sync
# ============================================

class SyncError(SyncEngineError):
    """Failures of one step of a tenant's cycle."""


class PollFailure(SyncError):
    """Polling failed; the cycle continues with zero events."""

    def __init__(self, message: str = "Event polling failed", **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="POLL_FAILURE", **kwargs)


class DetailFetchFailure(SyncError):
    """Order detail was unavailable while creating a new order."""

    def __init__(
        self,
        message: str = "Order detail unavailable",
        order_id: Optional[str] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, order_id=order_id)
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="DETAIL_FETCH_FAILURE", details=details, **kwargs)
        self.order_id = order_id


class PersistenceFailure(SyncError):
    """Reading or writing an order failed; the event's outcome is 'failed'."""

    def __init__(
        self,
        message: str = "Order persistence failed",
        order_id: Optional[str] = None,
        **kwargs,
    ):
        details = _merge_details(kwargs, order_id=order_id)
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="PERSISTENCE_FAILURE", details=details, **kwargs)
        self.order_id = order_id


class AcknowledgmentFailure(SyncError):
    """The ack batch was rejected; the marketplace will redeliver."""

    def __init__(
        self,
        message: str = "Event acknowledgment failed",
        event_count: int = 0,
        **kwargs,
    ):
        details = _merge_details(kwargs, event_count=event_count)
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="ACKNOWLEDGMENT_FAILURE", details=details, **kwargs)
        self.event_count = event_count


# ============================================
# Aggregation
# ============================================

class ErrorCollector:
    """Per-tenant accumulator for errors that were contained, not raised.

    Example:
        errors = ErrorCollector()
        for event in events:
            try:
                ...
            except Exception as e:
                errors.add(e, context={"order_id": event.order_id})
        logger.debug(errors.messages())
    """

    def __init__(self, max_errors: int = 100):
        self.max_errors = max_errors
        self._entries: list[tuple[Exception, dict[str, Any]]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, error: Exception, context: Optional[dict[str, Any]] = None) -> None:
        # Beyond max_errors further errors are dropped
        if len(self._entries) < self.max_errors:
            self._entries.append((error, context or {}))

    def has_errors(self) -> bool:
        return bool(self._entries)

    def messages(self) -> list[str]:
        """One line per error, prefixed with its context when there is one."""
        lines = []
        for error, context in self._entries:
            prefix = ", ".join(f"{k}={v}" for k, v in context.items())
            lines.append(f"{prefix}: {error}" if prefix else str(error))
        return lines
