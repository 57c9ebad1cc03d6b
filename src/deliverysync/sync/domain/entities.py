"""Domain entities for order sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the core business objects used in a sync cycle.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from .status import EventCode, OrderStatus


# ============================================
# Tenant Entities
# ============================================


@dataclass(frozen=True)
class MarketplaceCredentials:
    """Client-credentials pair for one merchant account."""

    client_id: str | None = None
    client_secret: str | None = None
    merchant_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "MarketplaceCredentials":
        """Build from the stored JSON blob (camelCase keys)."""
        raw = raw or {}
        return cls(
            client_id=raw.get("clientId") or raw.get("client_id"),
            client_secret=raw.get("clientSecret") or raw.get("client_secret"),
            merchant_id=raw.get("merchantId") or raw.get("merchant_id"),
        )

    def __repr__(self) -> str:
        # Never expose the secret in logs
        return (
            f"MarketplaceCredentials(client_id={self.client_id!r}, "
            f"client_secret={'***' if self.client_secret else None}, "
            f"merchant_id={self.merchant_id!r})"
        )


@dataclass
class TenantIntegration:
    """A merchant account connected to the marketplace.

    Owned by the tenant-facing application; the sync engine only reads it.
    """

    id: str
    tenant_id: str
    provider: str
    credentials: MarketplaceCredentials = field(default_factory=MarketplaceCredentials)
    enabled: bool = True
    status: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials.client_id and self.credentials.client_secret)


@dataclass(frozen=True)
class AccessToken:
    """Bearer token valid for a single tenant's sync cycle.

    Never persisted and never reused across cycles.
    """

    value: str
    tenant_id: str
    obtained_at: datetime
    token_type: str = "Bearer"
    expires_in: int | None = None

    @property
    def token_id(self) -> str:
        """Safe identifier for logging (SHA-256 hash, first 8 chars)."""
        return hashlib.sha256(self.value.encode()).hexdigest()[:8]

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.value}"

    def __repr__(self) -> str:
        return (
            f"AccessToken(token_id={self.token_id!r}, tenant_id={self.tenant_id!r}, "
            f"obtained_at={self.obtained_at.isoformat()})"
        )


# ============================================
# Event and Order Entities
# ============================================


@dataclass(frozen=True)
class SyncEvent:
    """One polled marketplace notification.

    Events synthesized from the recent-orders listing have no event_id and
    carry the listed order in full_order.
    """

    order_id: str
    code: str
    event_id: str | None = None
    raw_payload: dict[str, Any] | None = None
    full_order: dict[str, Any] | None = None

    @property
    def event_code(self) -> EventCode | None:
        return EventCode.parse(self.code)

    @property
    def is_acknowledgeable(self) -> bool:
        return self.event_id is not None

    @property
    def is_synthesized(self) -> bool:
        return self.full_order is not None and self.event_id is None


@dataclass
class Order:
    """Local order record mirrored from the marketplace.

    (tenant_id, provider, external_id) is unique in storage.
    """

    external_id: str
    tenant_id: str
    provider: str
    status: OrderStatus
    customer_name: str | None = None
    total_amount: Decimal | None = None
    payment_method: str | None = None
    source_metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    id: str | None = None


# ============================================
# Result Entities
# ============================================


class ReconcileAction(str, Enum):
    """What reconciling one event did to the local store."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ReconcileOutcome:
    """Result of reconciling a single event."""

    action: ReconcileAction
    order_id: str
    previous_status: OrderStatus | None = None
    status: OrderStatus | None = None
    error: str | None = None

    @property
    def dropped_creation(self) -> bool:
        """True when a new order could not be created but the event is consumed."""
        return self.action is ReconcileAction.SKIPPED


@dataclass
class AckResult:
    """Result of one acknowledgment batch."""

    attempted: int
    acknowledged: int
    success: bool
    error: str | None = None


@dataclass
class TenantSyncResult:
    """Result of one tenant's sync cycle."""

    tenant_id: str
    success: bool = True
    skipped: bool = False
    skip_reason: str | None = None
    events_received: int = 0
    used_fallback: bool = False
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    ignored: int = 0
    dropped_creations: int = 0
    failed: int = 0
    acknowledged: int = 0
    ack_failed: bool = False
    error_details: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def record(self, outcome: ReconcileOutcome) -> None:
        """Count a reconcile outcome."""
        if outcome.action is ReconcileAction.CREATED:
            self.created += 1
        elif outcome.action is ReconcileAction.UPDATED:
            self.updated += 1
        elif outcome.action is ReconcileAction.UNCHANGED:
            self.unchanged += 1
        elif outcome.action is ReconcileAction.IGNORED:
            self.ignored += 1
        elif outcome.action is ReconcileAction.SKIPPED:
            self.dropped_creations += 1
            if outcome.error:
                self.error_details.append(outcome.error)
        elif outcome.action is ReconcileAction.FAILED:
            self.failed += 1
            if outcome.error:
                self.error_details.append(outcome.error)

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "success": self.success,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "events_received": self.events_received,
            "used_fallback": self.used_fallback,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "ignored": self.ignored,
            "dropped_creations": self.dropped_creations,
            "failed": self.failed,
            "acknowledged": self.acknowledged,
            "ack_failed": self.ack_failed,
            "errors": list(self.error_details),
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class CycleResult:
    """Aggregate result of one pass over all enabled tenants."""

    started_at: datetime
    tenants: list[TenantSyncResult] = field(default_factory=list)
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and all(t.success for t in self.tenants)

    @property
    def tenants_failed(self) -> int:
        return sum(1 for t in self.tenants if not t.success)

    @property
    def tenants_skipped(self) -> int:
        return sum(1 for t in self.tenants if t.skipped)

    @property
    def orders_created(self) -> int:
        return sum(t.created for t in self.tenants)

    @property
    def orders_updated(self) -> int:
        return sum(t.updated for t in self.tenants)

    @property
    def dropped_creations(self) -> int:
        return sum(t.dropped_creations for t in self.tenants)

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "success": self.success,
            "error": self.error,
            "tenants": len(self.tenants),
            "tenants_failed": self.tenants_failed,
            "tenants_skipped": self.tenants_skipped,
            "orders_created": self.orders_created,
            "orders_updated": self.orders_updated,
            "dropped_creations": self.dropped_creations,
            "results": [t.to_dict() for t in self.tenants],
        }
