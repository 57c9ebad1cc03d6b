"""Sync Tenant Use Case - one tenant's sync cycle.

Workflow:
1. Skip tenants without client credentials
2. Obtain a fresh token (AuthFailure -> tenant skipped for this cycle)
3. Open a marketplace session bound to that token
4. Poll events, with the recent-orders fallback
5. Reconcile each event against the order store
6. Acknowledge the batch once, best-effort
7. Return per-tenant statistics

No step raises to the caller for marketplace or persistence failures; the
coordinator still guards against unexpected exceptions.
"""

import logging
from datetime import datetime, timezone

from ...api.exceptions import AuthFailure, ErrorCollector
from ..domain.entities import (
    ReconcileAction,
    ReconcileOutcome,
    TenantIntegration,
    TenantSyncResult,
)
from ..domain.ports import (
    IMarketplaceGateway,
    IOrderMapper,
    IOrderRepository,
    ITokenProvider,
)
from .reconcile_order import OrderReconciler

logger = logging.getLogger(__name__)


class SyncTenantUseCase:
    """Orchestrates token -> poll -> reconcile -> acknowledge for one tenant.

    Example:
        use_case = SyncTenantUseCase(
            token_provider=TokenManager(config.auth_url),
            gateway=MarketplaceGateway(config),
            order_repo=PostgresOrderRepository(pool),
            mapper=OrderMapper(),
        )
        result = await use_case.execute(integration)
    """

    def __init__(
        self,
        token_provider: ITokenProvider,
        gateway: IMarketplaceGateway,
        order_repo: IOrderRepository,
        mapper: IOrderMapper,
    ):
        self.token_provider = token_provider
        self.gateway = gateway
        self.order_repo = order_repo
        self.mapper = mapper

    async def execute(self, integration: TenantIntegration) -> TenantSyncResult:
        """Run one sync cycle for a tenant integration."""
        tenant_id = integration.tenant_id
        result = TenantSyncResult(tenant_id=tenant_id)

        if not integration.has_credentials:
            logger.warning(f"Tenant {tenant_id} has no client credentials, skipping")
            result.skipped = True
            result.skip_reason = "credentials_missing"
            result.completed_at = datetime.now(timezone.utc)
            return result

        # Step 1: Fresh token for this cycle only
        try:
            token = await self.token_provider.obtain_token(tenant_id, integration.credentials)
        except AuthFailure as e:
            logger.warning(f"Skipping tenant {tenant_id} this cycle: {e}")
            result.success = False
            result.skipped = True
            result.skip_reason = "auth_failed"
            result.error_details.append(str(e))
            result.completed_at = datetime.now(timezone.utc)
            return result

        errors = ErrorCollector()

        async with self.gateway.open_session(token, integration) as session:
            # Step 2: Poll (never raises)
            events = await session.poll_events()
            result.events_received = len(events)
            result.used_fallback = session.used_fallback

            if events:
                logger.info(
                    f"Tenant {tenant_id}: processing {len(events)} event(s)"
                    f"{' from fallback listing' if result.used_fallback else ''}"
                )

            # Step 3: Reconcile each event independently
            reconciler = OrderReconciler(self.order_repo, session, self.mapper)
            for event in events:
                try:
                    outcome = await reconciler.reconcile(tenant_id, integration.provider, event)
                except Exception as e:
                    logger.error(
                        f"Unexpected error reconciling order {event.order_id} "
                        f"for tenant {tenant_id}: {e}",
                        exc_info=True,
                    )
                    errors.add(e, context={"order_id": event.order_id})
                    outcome = ReconcileOutcome(
                        action=ReconcileAction.FAILED,
                        order_id=event.order_id,
                        error=f"{type(e).__name__}: {e}",
                    )
                result.record(outcome)

            # Step 4: Acknowledge everything consumed, including skips
            ack = await session.acknowledge(events)
            result.acknowledged = ack.acknowledged
            if not ack.success:
                result.ack_failed = True
                if ack.error:
                    result.error_details.append(ack.error)

        if result.dropped_creations:
            logger.warning(
                f"Tenant {tenant_id}: {result.dropped_creations} order creation(s) "
                f"dropped after acknowledgment"
            )

        result.success = result.failed == 0
        result.completed_at = datetime.now(timezone.utc)

        logger.info(
            f"Tenant {tenant_id} sync done: created={result.created}, "
            f"updated={result.updated}, unchanged={result.unchanged}, "
            f"ignored={result.ignored}, dropped={result.dropped_creations}, "
            f"failed={result.failed}, acknowledged={result.acknowledged}"
            f"{' (ack failed)' if result.ack_failed else ''}"
        )
        if errors.has_errors():
            logger.debug(
                f"Tenant {tenant_id}: {len(errors)} unexpected error(s): {errors.messages()}"
            )

        return result
