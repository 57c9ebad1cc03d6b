"""Tests for domain entities."""

import hashlib
from datetime import datetime, timedelta, timezone

from src.deliverysync.sync.domain.entities import (
    AccessToken,
    CycleResult,
    MarketplaceCredentials,
    ReconcileAction,
    ReconcileOutcome,
    SyncEvent,
    TenantIntegration,
    TenantSyncResult,
)
from src.deliverysync.sync.domain.status import EventCode, OrderStatus


class TestMarketplaceCredentials:
    def test_from_camel_case_blob(self):
        creds = MarketplaceCredentials.from_dict(
            {"clientId": "abc", "clientSecret": "s3cr3t", "merchantId": "m-1"}
        )
        assert creds.client_id == "abc"
        assert creds.client_secret == "s3cr3t"
        assert creds.merchant_id == "m-1"

    def test_from_snake_case_blob(self):
        creds = MarketplaceCredentials.from_dict({"client_id": "abc", "client_secret": "x"})
        assert creds.client_id == "abc"
        assert creds.merchant_id is None

    def test_from_none(self):
        creds = MarketplaceCredentials.from_dict(None)
        assert creds.client_id is None

    def test_repr_masks_secret(self):
        creds = MarketplaceCredentials(client_id="abc", client_secret="s3cr3t")
        assert "s3cr3t" not in repr(creds)
        assert "***" in repr(creds)


class TestTenantIntegration:
    def test_has_credentials(self):
        integration = TenantIntegration(
            id="1",
            tenant_id="t1",
            provider="ifood",
            credentials=MarketplaceCredentials(client_id="a", client_secret="b"),
        )
        assert integration.has_credentials

    def test_missing_secret(self):
        integration = TenantIntegration(
            id="1",
            tenant_id="t1",
            provider="ifood",
            credentials=MarketplaceCredentials(client_id="a"),
        )
        assert not integration.has_credentials


class TestAccessToken:
    def test_token_id_is_sha256_prefix(self):
        token = AccessToken(
            value="my_secret_token_value",
            tenant_id="t1",
            obtained_at=datetime.now(timezone.utc),
        )
        assert token.token_id == hashlib.sha256(b"my_secret_token_value").hexdigest()[:8]

    def test_repr_hides_value(self):
        token = AccessToken(
            value="my_secret_token_value",
            tenant_id="t1",
            obtained_at=datetime.now(timezone.utc),
        )
        assert "my_secret" not in repr(token)
        assert token.authorization_header == "Bearer my_secret_token_value"


class TestSyncEvent:
    def test_polled_event(self):
        event = SyncEvent(order_id="o1", code="plc", event_id="e1")
        assert event.event_code is EventCode.PLACED
        assert event.is_acknowledgeable
        assert not event.is_synthesized

    def test_synthesized_event(self):
        event = SyncEvent(order_id="o1", code="PLC", full_order={"id": "o1"})
        assert not event.is_acknowledgeable
        assert event.is_synthesized

    def test_unknown_code(self):
        assert SyncEvent(order_id="o1", code="XYZ").event_code is None


class TestTenantSyncResult:
    def test_record_counts_each_action(self):
        result = TenantSyncResult(tenant_id="t1")
        for action in ReconcileAction:
            result.record(ReconcileOutcome(action=action, order_id="o", error="boom"))

        assert result.created == 1
        assert result.updated == 1
        assert result.unchanged == 1
        assert result.ignored == 1
        assert result.dropped_creations == 1
        assert result.failed == 1
        # Only skipped and failed outcomes carry errors into the result
        assert result.error_details == ["boom", "boom"]

    def test_dropped_creation_flag(self):
        assert ReconcileOutcome(action=ReconcileAction.SKIPPED, order_id="o").dropped_creation
        assert not ReconcileOutcome(action=ReconcileAction.FAILED, order_id="o").dropped_creation

    def test_to_dict(self):
        result = TenantSyncResult(tenant_id="t1", created=2)
        result.completed_at = result.started_at + timedelta(seconds=3)
        data = result.to_dict()
        assert data["tenant_id"] == "t1"
        assert data["created"] == 2
        assert data["duration_seconds"] == 3.0


class TestCycleResult:
    def test_aggregates_tenants(self):
        started = datetime.now(timezone.utc)
        cycle = CycleResult(
            started_at=started,
            tenants=[
                TenantSyncResult(tenant_id="t1", created=2, updated=1, dropped_creations=1),
                TenantSyncResult(
                    tenant_id="t2", success=False, skipped=True, skip_reason="auth_failed"
                ),
            ],
            completed_at=started + timedelta(seconds=1),
        )

        assert not cycle.success
        assert cycle.tenants_failed == 1
        assert cycle.tenants_skipped == 1
        assert cycle.orders_created == 2
        assert cycle.orders_updated == 1
        assert cycle.dropped_creations == 1

        data = cycle.to_dict()
        assert data["tenants"] == 2
        assert len(data["results"]) == 2
        assert data["results"][1]["skip_reason"] == "auth_failed"

    def test_listing_error_fails_cycle(self):
        cycle = CycleResult(started_at=datetime.now(timezone.utc), error="db down")
        assert not cycle.success
        assert cycle.duration_seconds is None

    def test_empty_cycle_succeeds(self):
        assert CycleResult(started_at=datetime.now(timezone.utc)).success


def test_order_status_values_match_storage():
    assert [s.value for s in OrderStatus] == [
        "pending", "preparing", "dispatched", "completed", "canceled",
    ]
