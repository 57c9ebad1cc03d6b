"""Tests for the marketplace gateway and session adapter."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.deliverysync.api.events import FallbackThrottle
from src.deliverysync.sync.adapters.marketplace_adapter import (
    MarketplaceGateway,
    MarketplaceSession,
)
from src.deliverysync.sync.domain.entities import MarketplaceCredentials, SyncEvent


class StubConfig:
    order_api_url = "https://orders.example.test/v1"
    http_timeout = 5.0
    fallback_enabled = True
    fallback_min_interval_seconds = 300.0
    fallback_order_limit = 3


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.post = AsyncMock(return_value=None)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def patched_client(mock_client):
    with patch(
        "src.deliverysync.sync.adapters.marketplace_adapter.MarketplaceClient",
        return_value=mock_client,
    ) as client_cls:
        yield client_cls


class TestMarketplaceGateway:
    @pytest.mark.asyncio
    async def test_session_uses_cycle_token(
        self, patched_client, mock_client, access_token, integration
    ):
        gateway = MarketplaceGateway(StubConfig())

        async with gateway.open_session(access_token, integration("t1")) as session:
            assert isinstance(session, MarketplaceSession)
            assert session.tenant_id == "t1"

        patched_client.assert_called_once_with(
            access_token, StubConfig.order_api_url, timeout=5.0
        )
        mock_client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_poller_configured_from_settings(
        self, patched_client, access_token, integration
    ):
        gateway = MarketplaceGateway(StubConfig())
        tenant = integration(
            "t1",
            credentials=MarketplaceCredentials(
                client_id="a", client_secret="b", merchant_id="m-1"
            ),
        )

        async with gateway.open_session(access_token, tenant) as session:
            assert session.poller.merchant_ids == ["m-1"]
            assert session.poller.fallback_limit == 3
            assert session.poller.throttle is gateway.throttle

    @pytest.mark.asyncio
    async def test_throttle_survives_sessions(
        self, patched_client, mock_client, access_token, integration
    ):
        """Fallback runs in the first cycle and is throttled in the second."""
        mock_client.get = AsyncMock(side_effect=[None, [{"id": "o1"}], None])
        gateway = MarketplaceGateway(StubConfig(), throttle=FallbackThrottle(300))

        async with gateway.open_session(access_token, integration("t1")) as session:
            first = await session.poll_events()
            assert session.used_fallback

        async with gateway.open_session(access_token, integration("t1")) as session:
            second = await session.poll_events()
            assert not session.used_fallback

        assert [e.order_id for e in first] == ["o1"]
        assert second == []
        assert mock_client.get.await_count == 3

    @pytest.mark.asyncio
    async def test_session_delegates(self, patched_client, mock_client, access_token, integration):
        mock_client.get = AsyncMock(return_value={"id": "o1"})
        gateway = MarketplaceGateway(StubConfig())

        async with gateway.open_session(access_token, integration("t1")) as session:
            detail = await session.fetch_order("o1")
            ack = await session.acknowledge([SyncEvent(order_id="o1", code="PLC", event_id="e1")])

        assert detail == {"id": "o1"}
        assert ack.success
        mock_client.post.assert_awaited_once_with("/events/acknowledgment", [{"id": "e1"}])

    @pytest.mark.asyncio
    async def test_entries_without_order_id_are_acknowledged(
        self, patched_client, mock_client, access_token, integration
    ):
        mock_client.get = AsyncMock(
            return_value=[
                {"id": "e1", "code": "KEEPALIVE"},
                {"id": "e2", "orderId": "o2", "code": "PLC"},
            ]
        )
        gateway = MarketplaceGateway(StubConfig())

        async with gateway.open_session(access_token, integration("t1")) as session:
            events = await session.poll_events()
            ack = await session.acknowledge(events)

        assert [e.order_id for e in events] == ["o2"]
        assert ack.acknowledged == 2
        mock_client.post.assert_awaited_once_with(
            "/events/acknowledgment", [{"id": "e2"}, {"id": "e1"}]
        )
