"""Domain layer - Pure domain entities, status rules and port interfaces.

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
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
from .ports import (
    IIntegrationRepository,
    IMarketplaceGateway,
    IMarketplaceSession,
    IOrderMapper,
    IOrderRepository,
    ITokenProvider,
)
from .status import EventCode, OrderStatus, initial_status, resolve_transition

__all__ = [
    "AccessToken",
    "AckResult",
    "CycleResult",
    "MarketplaceCredentials",
    "Order",
    "ReconcileAction",
    "ReconcileOutcome",
    "SyncEvent",
    "TenantIntegration",
    "TenantSyncResult",
    "IIntegrationRepository",
    "IMarketplaceGateway",
    "IMarketplaceSession",
    "IOrderMapper",
    "IOrderRepository",
    "ITokenProvider",
    "EventCode",
    "OrderStatus",
    "initial_status",
    "resolve_transition",
]
