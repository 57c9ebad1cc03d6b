"""Shared fixtures: in-memory port implementations and aiohttp fakes.

The port fakes follow the same contracts as the PostgreSQL and marketplace
adapters (including uniqueness and compare-and-set semantics) so the use
cases can be exercised without infrastructure.
"""
import asyncio
import json
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.deliverysync.api.exceptions import (
    AuthFailure,
    DetailFetchFailure,
    PersistenceFailure,
)
from src.deliverysync.sync.domain.entities import (
    AccessToken,
    AckResult,
    MarketplaceCredentials,
    Order,
    SyncEvent,
    TenantIntegration,
)
from src.deliverysync.sync.domain.ports import (
    IIntegrationRepository,
    IMarketplaceGateway,
    IMarketplaceSession,
    IOrderRepository,
    ITokenProvider,
)
from src.deliverysync.sync.domain.status import OrderStatus


# ============================================
# Port fakes
# ============================================

class InMemoryOrderRepository(IOrderRepository):
    """Order store enforcing the (tenant, provider, external_id) uniqueness.

    Every method yields to the event loop first so concurrent reconcilers
    interleave the way they would against a real database.
    """

    def __init__(self, fail_on: set[str] | None = None):
        self.rows: dict[tuple[str, str, str], Order] = {}
        self.fail_on = fail_on or set()
        self.insert_attempts = 0
        self.status_writes = 0
        self._next_id = 1

    def _maybe_fail(self, operation: str, external_id: str):
        if operation in self.fail_on:
            raise PersistenceFailure(f"{operation} failed", order_id=external_id)

    def seed(self, order: Order) -> Order:
        order.id = order.id or str(self._next_id)
        self._next_id += 1
        self.rows[(order.tenant_id, order.provider, order.external_id)] = replace(order)
        return order

    def get(self, tenant_id: str, provider: str, external_id: str) -> Order | None:
        return self.rows.get((tenant_id, provider, external_id))

    async def find_by_external_id(self, tenant_id, provider, external_id):
        await asyncio.sleep(0)
        self._maybe_fail("find", external_id)
        row = self.rows.get((tenant_id, provider, external_id))
        return replace(row) if row else None

    async def insert_if_absent(self, order):
        await asyncio.sleep(0)
        self._maybe_fail("insert", order.external_id)
        self.insert_attempts += 1
        key = (order.tenant_id, order.provider, order.external_id)
        if key in self.rows:
            return False
        self.seed(order)
        return True

    async def update_status(self, order, expected, new_status):
        await asyncio.sleep(0)
        self._maybe_fail("update", order.external_id)
        key = (order.tenant_id, order.provider, order.external_id)
        row = self.rows.get(key)
        if row is None or row.status is not expected:
            return False
        row.status = new_status
        order.status = new_status
        self.status_writes += 1
        return True


class FakeSession(IMarketplaceSession):
    """Scripted marketplace session for one tenant."""

    def __init__(
        self,
        events: list[SyncEvent] | None = None,
        details: dict[str, dict[str, Any]] | None = None,
        ack_fails: bool = False,
        used_fallback: bool = False,
    ):
        self.events = events or []
        self.details = details or {}
        self.ack_fails = ack_fails
        self._used_fallback = used_fallback
        self.fetch_calls: list[str] = []
        self.ack_batches: list[list[str]] = []

    async def poll_events(self):
        return list(self.events)

    async def fetch_order(self, order_id):
        self.fetch_calls.append(order_id)
        if order_id not in self.details:
            raise DetailFetchFailure(f"Could not fetch order {order_id}", order_id=order_id)
        return self.details[order_id]

    async def acknowledge(self, events):
        ids = [e.event_id for e in events if e.is_acknowledgeable]
        self.ack_batches.append(ids)
        if not ids:
            return AckResult(attempted=0, acknowledged=0, success=True)
        if self.ack_fails:
            return AckResult(
                attempted=len(ids), acknowledged=0, success=False, error="ack down"
            )
        return AckResult(attempted=len(ids), acknowledged=len(ids), success=True)

    @property
    def used_fallback(self):
        return self._used_fallback


class FakeGateway(IMarketplaceGateway):
    """Hands out a FakeSession per tenant and records the tokens used."""

    def __init__(self, sessions: dict[str, FakeSession] | None = None):
        self.sessions = sessions or {}
        self.tokens: list[AccessToken] = []
        self.closed: list[str] = []

    @asynccontextmanager
    async def open_session(self, token, integration):
        self.tokens.append(token)
        session = self.sessions.setdefault(integration.tenant_id, FakeSession())
        try:
            yield session
        finally:
            self.closed.append(integration.tenant_id)


class FakeTokenProvider(ITokenProvider):
    """Issues a distinct token per call; fails for configured tenants."""

    def __init__(self, failing_tenants: set[str] | None = None):
        self.failing_tenants = failing_tenants or set()
        self.calls: list[str] = []

    async def obtain_token(self, tenant_id, credentials):
        self.calls.append(tenant_id)
        if tenant_id in self.failing_tenants:
            raise AuthFailure("Token endpoint returned HTTP 401", tenant_id=tenant_id)
        return AccessToken(
            value=f"token-{tenant_id}-{len(self.calls)}",
            tenant_id=tenant_id,
            obtained_at=datetime.now(timezone.utc),
        )


class FakeIntegrationRepository(IIntegrationRepository):
    def __init__(self, integrations=None, raise_error: Exception | None = None):
        self.integrations = integrations or []
        self.raise_error = raise_error

    async def list_enabled(self, provider):
        if self.raise_error:
            raise self.raise_error
        return [i for i in self.integrations if i.provider == provider and i.enabled]

    async def get(self, tenant_id, provider):
        for integration in self.integrations:
            if integration.tenant_id == tenant_id and integration.provider == provider:
                return integration
        return None


# ============================================
# Builders
# ============================================

def build_integration(tenant_id: str, provider: str = "ifood", **kwargs) -> TenantIntegration:
    credentials = kwargs.pop(
        "credentials",
        MarketplaceCredentials(client_id=f"id-{tenant_id}", client_secret="secret"),
    )
    return TenantIntegration(
        id=f"int-{tenant_id}",
        tenant_id=tenant_id,
        provider=provider,
        credentials=credentials,
        **kwargs,
    )


def build_order_payload(order_id: str, name: str = "Ana", amount: Any = 42.5) -> dict:
    return {
        "id": order_id,
        "customer": {"name": name},
        "total": {"orderAmount": amount},
        "createdAt": "2024-05-01T12:30:00.000Z",
    }


def build_order(
    external_id: str,
    status: OrderStatus,
    tenant_id: str = "t1",
    provider: str = "ifood",
) -> Order:
    return Order(
        external_id=external_id,
        tenant_id=tenant_id,
        provider=provider,
        status=status,
    )


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def make_repo():
    return InMemoryOrderRepository


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_token_provider():
    return FakeTokenProvider


@pytest.fixture
def make_integration_repo():
    return FakeIntegrationRepository


@pytest.fixture
def integration():
    return build_integration


@pytest.fixture
def order_payload():
    return build_order_payload


@pytest.fixture
def existing_order():
    return build_order


@pytest.fixture
def access_token():
    return AccessToken(
        value="secret-token-value",
        tenant_id="t1",
        obtained_at=datetime.now(timezone.utc),
    )


# ============================================
# aiohttp fakes
# ============================================

def build_response(
    status: int = 200,
    body: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
    raw: bytes | None = None,
) -> MagicMock:
    """Fake aiohttp response usable as an async context manager."""
    if text is None:
        text = "" if body is None else json.dumps(body)
    if raw is None:
        raw = text.encode()

    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=text)
    response.read = AsyncMock(return_value=raw)
    if body is not None:
        response.json = AsyncMock(return_value=body)
    else:
        response.json = AsyncMock(side_effect=ValueError("not json"))
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def http_session():
    """Patch aiohttp.ClientSession; queue responses via session.request.side_effect."""
    session = MagicMock()
    session.request = MagicMock()
    session.post = MagicMock()
    session.close = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    with patch("aiohttp.ClientSession", return_value=session), \
            patch("aiohttp.TCPConnector"):
        yield session
