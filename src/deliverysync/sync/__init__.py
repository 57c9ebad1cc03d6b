"""Sync module - Clean Architecture implementation of marketplace order sync.

Architecture:
    domain/     - Pure domain entities, status state machine and port interfaces
    use_cases/  - Reconciliation, per-tenant cycle and multi-tenant coordinator
    adapters/   - Infrastructure implementations (PostgreSQL, marketplace API)
"""

from .domain.entities import (
    AccessToken,
    AckResult,
    CycleResult,
    MarketplaceCredentials,
    Order,
    ReconcileAction,
    ReconcileOutcome,
    SyncEvent,
    TenantIntegration,
    TenantSyncResult,
)
from .domain.ports import (
    IIntegrationRepository,
    IMarketplaceGateway,
    IMarketplaceSession,
    IOrderMapper,
    IOrderRepository,
    ITokenProvider,
)
from .domain.status import EventCode, OrderStatus, initial_status, resolve_transition

__all__ = [
    # Tenant Entities
    "MarketplaceCredentials",
    "TenantIntegration",
    "AccessToken",
    # Event and Order Entities
    "SyncEvent",
    "Order",
    # Result Entities
    "ReconcileAction",
    "ReconcileOutcome",
    "AckResult",
    "TenantSyncResult",
    "CycleResult",
    # State machine
    "OrderStatus",
    "EventCode",
    "initial_status",
    "resolve_transition",
    # Ports
    "IIntegrationRepository",
    "IOrderRepository",
    "ITokenProvider",
    "IMarketplaceSession",
    "IMarketplaceGateway",
    "IOrderMapper",
]
