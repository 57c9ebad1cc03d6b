#!/usr/bin/env python3
"""Marketplace event polling.

The marketplace exposes pending order notifications through a polling
endpoint. Each notification names an order and a status code:

    GET /events:polling
    204 No Content                      -> nothing pending
    200 [{"id": "e1", "orderId": "o1", "code": "PLC", ...}, ...]

When polling yields nothing, the poller can fall back to listing the most
recent orders directly and synthesizing "placed" events for them. The
fallback is throttled per tenant so an idle merchant does not trigger a
listing call every cycle.

Polling never raises. Transport and status errors are logged and treated as
zero events for the cycle.
"""
import logging
import time
from typing import Any, Callable, Optional

from ..sync.domain.entities import SyncEvent
from ..sync.domain.status import EventCode
from .client import MarketplaceClient
from .exceptions import PollFailure, SyncEngineError
from .orders import MarketplaceOrdersAPI

logger = logging.getLogger(__name__)


class FallbackThrottle:
    """Per-tenant minimum interval between fallback listings.

    Shared across cycles (it lives on the gateway, not the session), keyed
    by tenant id. An interval of 0 allows the fallback every cycle.
    """

    def __init__(
        self,
        min_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval_seconds = max(0.0, min_interval_seconds)
        self._clock = clock
        self._last_run: dict[str, float] = {}

    def allow(self, tenant_id: str) -> bool:
        """Return True and record the attempt if the fallback may run now."""
        now = self._clock()
        last = self._last_run.get(tenant_id)
        if last is not None and now - last < self.min_interval_seconds:
            return False
        self._last_run[tenant_id] = now
        return True

    def reset(self, tenant_id: Optional[str] = None) -> None:
        if tenant_id is None:
            self._last_run.clear()
        else:
            self._last_run.pop(tenant_id, None)


class EventPoller:
    """Retrieve pending events for one tenant's cycle.

    Attributes:
        client: Token-scoped MarketplaceClient (base URL = order API)
        orders_api: Used for the recent-orders fallback
        used_fallback: Whether the last poll_with_fallback() used the listing
        ack_only_ids: Event ids from the last poll whose entries had no order
            id; they are acknowledged but never reconciled
    """

    POLLING_ENDPOINT = "/events:polling"

    def __init__(
        self,
        client: MarketplaceClient,
        orders_api: Optional[MarketplaceOrdersAPI] = None,
        fallback_enabled: bool = True,
        throttle: Optional[FallbackThrottle] = None,
        fallback_limit: int = 5,
        merchant_ids: Optional[list[str]] = None,
    ):
        self.client = client
        self.orders_api = orders_api or MarketplaceOrdersAPI(client)
        self.fallback_enabled = fallback_enabled
        self.throttle = throttle
        self.fallback_limit = fallback_limit
        self.merchant_ids = [m for m in (merchant_ids or []) if m]
        self.used_fallback = False
        self.ack_only_ids: list[str] = []

    # ----------------------------------------
    # Polling
    # ----------------------------------------

    async def poll(self) -> list[SyncEvent]:
        """Poll pending events.

        Returns:
            Parsed events; [] on 204, malformed payloads and any failure
        """
        self.ack_only_ids = []
        headers = None
        if self.merchant_ids:
            headers = {"x-polling-merchants": ",".join(self.merchant_ids)}

        try:
            data = await self.client.get(self.POLLING_ENDPOINT, headers=headers)
        except SyncEngineError as e:
            failure = PollFailure(f"Event polling failed: {e.message}", cause=e)
            logger.warning(str(failure))
            return []

        if data is None:
            logger.debug("Polling returned no content")
            return []

        if not isinstance(data, list):
            failure = PollFailure(
                "Polling payload is not a list",
                details={"payload_type": type(data).__name__},
            )
            logger.warning(str(failure))
            return []

        events = self.parse_events(data, ack_only_ids=self.ack_only_ids)
        if self.ack_only_ids:
            logger.info(
                f"Polled {len(events)} event(s), {len(self.ack_only_ids)} without order id"
            )
        else:
            logger.info(f"Polled {len(events)} event(s)")
        return events

    @staticmethod
    def parse_events(
        items: list[Any],
        ack_only_ids: Optional[list[str]] = None,
    ) -> list[SyncEvent]:
        """Parse raw polling entries.

        Entries without an order id are left out of the result; when
        ack_only_ids is given their event ids are appended to it.
        """
        events: list[SyncEvent] = []
        for item in items:
            if not isinstance(item, dict):
                logger.debug(f"Dropping non-object event entry: {item!r}")
                continue

            event_id = item.get("id")
            order_id = item.get("orderId") or item.get("order_id")
            if not order_id:
                logger.debug(f"Event {event_id} has no orderId, acknowledging only")
                if ack_only_ids is not None and event_id is not None:
                    ack_only_ids.append(str(event_id))
                continue

            events.append(
                SyncEvent(
                    order_id=str(order_id),
                    code=str(item.get("code") or item.get("fullCode") or ""),
                    event_id=str(event_id) if event_id is not None else None,
                    raw_payload=item,
                )
            )
        return events

    # ----------------------------------------
    # Fallback
    # ----------------------------------------

    async def poll_with_fallback(self, tenant_id: str) -> list[SyncEvent]:
        """Poll, then list recent orders if polling yielded nothing."""
        self.used_fallback = False

        events = await self.poll()
        if events or self.ack_only_ids or not self.fallback_enabled:
            return events

        if self.throttle is not None and not self.throttle.allow(tenant_id):
            logger.debug(f"Fallback listing throttled for tenant {tenant_id}")
            return []

        try:
            orders = await self.orders_api.list_recent(page=1, limit=self.fallback_limit)
        except SyncEngineError as e:
            logger.warning(f"Fallback order listing failed for tenant {tenant_id}: {e}")
            return []

        self.used_fallback = True
        synthesized = self.synthesize_events(orders)
        logger.info(
            f"Fallback listing for tenant {tenant_id} produced "
            f"{len(synthesized)} event(s)"
        )
        return synthesized

    @staticmethod
    def synthesize_events(orders: list[dict[str, Any]]) -> list[SyncEvent]:
        """Build placed events from listed orders; they carry no event id."""
        events: list[SyncEvent] = []
        for order in orders:
            order_id = order.get("id") or order.get("orderId")
            if not order_id:
                continue
            events.append(
                SyncEvent(
                    order_id=str(order_id),
                    code=EventCode.PLACED.value,
                    raw_payload=order,
                    full_order=order,
                )
            )
        return events
