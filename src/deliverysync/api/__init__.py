"""Delivery marketplace API modules.

This package provides the HTTP client and endpoint wrappers for the
marketplace Merchant API, plus the database helpers shared by the sync
adapters.

Classes:
    MarketplaceClient: Token-scoped HTTP client with typed errors and retry
    TokenManager: OAuth2 client-credentials exchange (one token per cycle)
    EventPoller: Event polling with throttled recent-orders fallback
    FallbackThrottle: Per-tenant minimum interval between fallback listings
    MarketplaceOrdersAPI: Order detail and recent-orders listing
    AcknowledgmentManager: Best-effort batch event acknowledgment

Exceptions:
    SyncEngineError: Base exception for all sync engine errors
    ConfigurationError: Missing or invalid configuration
    AuthFailure: Token exchange failures (tenant skipped for the cycle)
    APIError: API request failures
    NetworkError: Network connectivity issues
    DatabaseError: Database operation failures
    SyncError: Poll/detail/persistence/acknowledgment failures
"""
from .acknowledgment import AcknowledgmentManager
from .auth import TokenManager
from .client import MarketplaceClient
from .database import (
    check_database_health,
    close_pool,
    create_pool,
    database_connection,
)
from .events import EventPoller, FallbackThrottle
from .exceptions import (
    AcknowledgmentFailure,
    APIError,
    AuthenticationError,
    AuthFailure,
    ConfigurationError,
    ConnectionError,
    ConnectionPoolError,
    DatabaseError,
    DetailFetchFailure,
    ErrorCollector,
    IntegrityError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    PersistenceFailure,
    PollFailure,
    RateLimitError,
    ServerError,
    SyncEngineError,
    SyncError,
    TimeoutError,
    TokenExpiredError,
    TransactionError,
    ValidationError,
)
from .orders import MarketplaceOrdersAPI

__all__ = [
    # Clients
    "MarketplaceClient",
    "TokenManager",
    "EventPoller",
    "FallbackThrottle",
    "MarketplaceOrdersAPI",
    "AcknowledgmentManager",
    # Database
    "database_connection",
    "create_pool",
    "close_pool",
    "check_database_health",
    # Exceptions
    "SyncEngineError",
    "ConfigurationError",
    "AuthenticationError",
    "AuthFailure",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
    "SyncError",
    "PollFailure",
    "DetailFetchFailure",
    "PersistenceFailure",
    "AcknowledgmentFailure",
    "ErrorCollector",
]
