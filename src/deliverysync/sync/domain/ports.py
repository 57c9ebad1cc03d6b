"""Port interfaces for order sync operations.

Ports define the contracts between the use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from typing import Any

from .entities import (
    AccessToken,
    AckResult,
    MarketplaceCredentials,
    Order,
    SyncEvent,
    TenantIntegration,
)
from .status import OrderStatus


# ============================================
# Persistence Ports
# ============================================


class IIntegrationRepository(ABC):
    """Port for reading tenant integrations (the credential store)."""

    @abstractmethod
    async def list_enabled(self, provider: str) -> list[TenantIntegration]:
        """List enabled integrations for a marketplace provider."""
        ...

    @abstractmethod
    async def get(self, tenant_id: str, provider: str) -> TenantIntegration | None:
        """Get one tenant's integration, enabled or not."""
        ...


class IOrderRepository(ABC):
    """Port for order persistence operations.

    Implementations must keep (tenant_id, provider, external_id) unique
    under concurrent writers.
    """

    @abstractmethod
    async def find_by_external_id(
        self,
        tenant_id: str,
        provider: str,
        external_id: str,
    ) -> Order | None:
        """Find an order by its marketplace id."""
        ...

    @abstractmethod
    async def insert_if_absent(self, order: Order) -> bool:
        """Insert an order unless one with the same key already exists.

        Returns:
            True if this call created the row, False if it already existed
        """
        ...

    @abstractmethod
    async def update_status(
        self,
        order: Order,
        expected: OrderStatus,
        new_status: OrderStatus,
    ) -> bool:
        """Compare-and-set the status of an existing order.

        Returns:
            True if the row was changed, False if its status was no longer
            ``expected``
        """
        ...


# ============================================
# Marketplace Ports
# ============================================


class ITokenProvider(ABC):
    """Port for exchanging tenant credentials for a bearer token."""

    @abstractmethod
    async def obtain_token(
        self,
        tenant_id: str,
        credentials: MarketplaceCredentials,
    ) -> AccessToken:
        """Obtain a fresh token.

        Raises:
            AuthFailure: If the exchange fails for any reason
        """
        ...


class IMarketplaceSession(ABC):
    """Token-scoped marketplace operations for one tenant's cycle."""

    @abstractmethod
    async def poll_events(self) -> list[SyncEvent]:
        """Poll pending events, with the recent-orders fallback applied."""
        ...

    @abstractmethod
    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        """Fetch full order detail.

        Raises:
            DetailFetchFailure: If the detail is unavailable
        """
        ...

    @abstractmethod
    async def acknowledge(self, events: list[SyncEvent]) -> AckResult:
        """Acknowledge consumed events in one call; never raises.

        Polled entries that carried no order id were never turned into events,
        but their ids are acknowledged in the same call.
        """
        ...

    @property
    @abstractmethod
    def used_fallback(self) -> bool:
        """Whether the last poll_events() call used the fallback listing."""
        ...


class IMarketplaceGateway(ABC):
    """Factory for token-scoped sessions.

    ``open_session`` is an async context manager so the HTTP session lives
    exactly as long as one tenant's cycle.
    """

    @abstractmethod
    def open_session(self, token: AccessToken, integration: TenantIntegration):
        """Return an async context manager yielding an IMarketplaceSession."""
        ...


class IOrderMapper(ABC):
    """Port for mapping marketplace order payloads to Order entities."""

    @abstractmethod
    def map_to_entity(
        self,
        raw: dict[str, Any],
        *,
        tenant_id: str,
        provider: str,
        external_id: str,
        status: OrderStatus,
    ) -> Order:
        ...

    @abstractmethod
    def map_to_record(self, order: Order) -> tuple[Any, ...]:
        """Transform Order entity to a database record tuple.

        The tuple ordering must match the database INSERT statement.
        """
        ...
