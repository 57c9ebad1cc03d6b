"""Marketplace API adapter.

Implements IMarketplaceGateway/IMarketplaceSession on top of the api
package. A session owns one MarketplaceClient bound to one tenant's token
and lives for exactly one tenant cycle.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

from ...api.acknowledgment import AcknowledgmentManager
from ...api.client import MarketplaceClient
from ...api.events import EventPoller, FallbackThrottle
from ...api.orders import MarketplaceOrdersAPI
from ..domain.entities import AccessToken, AckResult, SyncEvent, TenantIntegration
from ..domain.ports import IMarketplaceGateway, IMarketplaceSession

if TYPE_CHECKING:
    from ...config import SyncConfig


class MarketplaceSession(IMarketplaceSession):
    """Token-scoped marketplace operations for one tenant's cycle."""

    def __init__(
        self,
        tenant_id: str,
        poller: EventPoller,
        orders_api: MarketplaceOrdersAPI,
        ack_manager: AcknowledgmentManager,
    ):
        self.tenant_id = tenant_id
        self.poller = poller
        self.orders_api = orders_api
        self.ack_manager = ack_manager

    async def poll_events(self) -> list[SyncEvent]:
        return await self.poller.poll_with_fallback(self.tenant_id)

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        return await self.orders_api.fetch_order(order_id)

    async def acknowledge(self, events: list[SyncEvent]) -> AckResult:
        return await self.ack_manager.acknowledge(events, extra_ids=self.poller.ack_only_ids)

    @property
    def used_fallback(self) -> bool:
        return self.poller.used_fallback


class MarketplaceGateway(IMarketplaceGateway):
    """Builds per-cycle sessions against the marketplace order API.

    The fallback throttle is held here so it survives across cycles.
    """

    def __init__(
        self,
        config: "SyncConfig",
        throttle: FallbackThrottle | None = None,
    ):
        self.config = config
        self.throttle = throttle or FallbackThrottle(config.fallback_min_interval_seconds)

    @asynccontextmanager
    async def open_session(
        self,
        token: AccessToken,
        integration: TenantIntegration,
    ) -> AsyncIterator[MarketplaceSession]:
        merchant_id = integration.credentials.merchant_id

        async with MarketplaceClient(
            token,
            self.config.order_api_url,
            timeout=self.config.http_timeout,
        ) as client:
            orders_api = MarketplaceOrdersAPI(client)
            poller = EventPoller(
                client,
                orders_api=orders_api,
                fallback_enabled=self.config.fallback_enabled,
                throttle=self.throttle,
                fallback_limit=self.config.fallback_order_limit,
                merchant_ids=[merchant_id] if merchant_id else None,
            )
            yield MarketplaceSession(
                tenant_id=integration.tenant_id,
                poller=poller,
                orders_api=orders_api,
                ack_manager=AcknowledgmentManager(client),
            )
