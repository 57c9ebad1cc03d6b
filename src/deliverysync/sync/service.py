"""Wiring of the order sync engine.

Builds a SyncCoordinator from configuration and a database pool, composing
the use cases with their PostgreSQL and marketplace adapters. The scheduler
and the CLI both go through here so they run the exact same engine.
"""

from typing import TYPE_CHECKING

from ..api.auth import TokenManager
from ..api.events import FallbackThrottle
from .adapters.marketplace_adapter import MarketplaceGateway
from .adapters.order_mapper import OrderMapper
from .adapters.postgres_integration_repo import PostgresIntegrationRepository
from .adapters.postgres_order_repo import PostgresOrderRepository
from .use_cases.run_cycle import SyncCoordinator
from .use_cases.sync_tenant import SyncTenantUseCase

if TYPE_CHECKING:
    import asyncpg

    from ..config import SyncConfig


def create_sync_coordinator(
    config: "SyncConfig",
    db_pool: "asyncpg.Pool",
    token_manager: TokenManager | None = None,
    throttle: FallbackThrottle | None = None,
) -> SyncCoordinator:
    """Build a coordinator for the configured provider.

    Keep the returned coordinator for the life of the process: its gateway
    holds the per-tenant fallback throttle.
    """
    mapper = OrderMapper()
    tenant_sync = SyncTenantUseCase(
        token_provider=token_manager
        or TokenManager(token_url=config.auth_url, timeout=config.http_timeout),
        gateway=MarketplaceGateway(config, throttle=throttle),
        order_repo=PostgresOrderRepository(db_pool, mapper=mapper),
        mapper=mapper,
    )
    return SyncCoordinator(
        integration_repo=PostgresIntegrationRepository(db_pool),
        tenant_sync=tenant_sync,
        provider=config.provider,
        max_concurrency=config.max_concurrent_tenants,
    )
