#!/usr/bin/env python3
"""Marketplace order endpoints.

Thin wrapper over MarketplaceClient for the two order resources the sync
needs: a single order's detail and the recent-orders listing used when
polling yields nothing.
"""
import logging
from typing import Any

from .client import MarketplaceClient
from .exceptions import DetailFetchFailure, SyncEngineError

logger = logging.getLogger(__name__)


class MarketplaceOrdersAPI:
    """Order detail and listing endpoints.

    Attributes:
        client: Token-scoped MarketplaceClient (base URL = order API)
    """

    ORDERS_ENDPOINT = "/orders"

    def __init__(self, client: MarketplaceClient):
        self.client = client

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        """Fetch full order detail.

        Raises:
            DetailFetchFailure: On any marketplace error or non-object body
        """
        endpoint = f"{self.ORDERS_ENDPOINT}/{order_id}"
        try:
            data = await self.client.get(endpoint)
        except SyncEngineError as e:
            raise DetailFetchFailure(
                f"Could not fetch order {order_id}: {e.message}",
                order_id=order_id,
                cause=e,
            )

        if not isinstance(data, dict):
            raise DetailFetchFailure(
                f"Order {order_id} detail is not an object",
                order_id=order_id,
            )
        return data

    async def list_recent(self, page: int = 1, limit: int = 5) -> list[dict[str, Any]]:
        """List the most recent orders.

        Returns:
            Order objects; non-object entries are dropped

        Raises:
            SyncEngineError: On marketplace errors (caller decides what to do)
        """
        data = await self.client.get(
            self.ORDERS_ENDPOINT, params={"page": page, "limit": limit}
        )
        if data is None:
            return []

        # Some deployments wrap the listing in {"orders": [...]}
        if isinstance(data, dict):
            data = data.get("orders") or data.get("items") or []

        if not isinstance(data, list):
            logger.warning(f"Unexpected recent-orders payload type: {type(data).__name__}")
            return []

        return [item for item in data if isinstance(item, dict)]
