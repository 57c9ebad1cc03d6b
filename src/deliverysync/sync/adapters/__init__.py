"""Adapters layer - Infrastructure implementations for order sync.

- PostgresOrderRepository: PostgreSQL implementation of IOrderRepository
- PostgresIntegrationRepository: PostgreSQL implementation of IIntegrationRepository
- MarketplaceGateway: marketplace API implementation of IMarketplaceGateway
- OrderMapper: field mapping implementation of IOrderMapper
"""

from .marketplace_adapter import MarketplaceGateway, MarketplaceSession
from .order_mapper import OrderMapper
from .postgres_integration_repo import PostgresIntegrationRepository
from .postgres_order_repo import PostgresOrderRepository

__all__ = [
    "MarketplaceGateway",
    "MarketplaceSession",
    "OrderMapper",
    "PostgresIntegrationRepository",
    "PostgresOrderRepository",
]
