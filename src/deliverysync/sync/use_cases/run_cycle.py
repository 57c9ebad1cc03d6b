"""Run Cycle Use Case - one pass over every enabled tenant.

Tenants run as independent tasks under a semaphore. Each task has its own
error channel: an exception escaping one tenant becomes that tenant's failed
result and never reaches the others or the caller. The persistent scheduler
loop and the one-shot CLI both call run_cycle(), so per-tenant behavior is
identical in both modes.
"""

import asyncio
import logging
from datetime import datetime, timezone

from ...api.exceptions import SyncEngineError
from ..domain.entities import CycleResult, TenantIntegration, TenantSyncResult
from ..domain.ports import IIntegrationRepository
from .sync_tenant import SyncTenantUseCase

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Iterates enabled tenant integrations with bounded concurrency.

    Example:
        coordinator = SyncCoordinator(
            integration_repo=PostgresIntegrationRepository(pool),
            tenant_sync=SyncTenantUseCase(...),
            provider="ifood",
            max_concurrency=4,
        )
        result = await coordinator.run_cycle()
    """

    def __init__(
        self,
        integration_repo: IIntegrationRepository,
        tenant_sync: SyncTenantUseCase,
        provider: str = "ifood",
        max_concurrency: int = 4,
    ):
        self.integration_repo = integration_repo
        self.tenant_sync = tenant_sync
        self.provider = provider
        self.max_concurrency = max(1, max_concurrency)

    async def run_cycle(self) -> CycleResult:
        """Sync every enabled tenant once."""
        cycle = CycleResult(started_at=datetime.now(timezone.utc))

        try:
            integrations = await self.integration_repo.list_enabled(self.provider)
        except SyncEngineError as e:
            logger.error(f"Failed to list {self.provider} integrations: {e}")
            cycle.error = f"Integration listing failed: {e}"
            cycle.completed_at = datetime.now(timezone.utc)
            return cycle

        if not integrations:
            logger.info(f"No enabled {self.provider} integrations")
            cycle.completed_at = datetime.now(timezone.utc)
            return cycle

        logger.info(
            f"Starting sync cycle for {len(integrations)} tenant(s) "
            f"(concurrency={self.max_concurrency})"
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(integration: TenantIntegration) -> TenantSyncResult:
            async with semaphore:
                return await self.tenant_sync.execute(integration)

        outcomes = await asyncio.gather(
            *(run_one(integration) for integration in integrations),
            return_exceptions=True,
        )

        for integration, outcome in zip(integrations, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    # CancelledError and friends belong to the caller
                    raise outcome
                cycle.tenants.append(self._failed_result(integration, outcome))
            else:
                cycle.tenants.append(outcome)

        cycle.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"Sync cycle complete: tenants={len(cycle.tenants)}, "
            f"failed={cycle.tenants_failed}, skipped={cycle.tenants_skipped}, "
            f"created={cycle.orders_created}, updated={cycle.orders_updated}, "
            f"dropped={cycle.dropped_creations}, "
            f"duration={cycle.duration_seconds:.1f}s"
        )
        return cycle

    async def run_tenant(self, tenant_id: str) -> TenantSyncResult:
        """Sync a single tenant once, regardless of concurrency settings.

        Raises:
            SyncEngineError: If the tenant has no integration for the provider
        """
        integration = await self.integration_repo.get(tenant_id, self.provider)
        if integration is None:
            raise SyncEngineError(
                f"No {self.provider} integration for tenant {tenant_id}",
                code="INTEGRATION_NOT_FOUND",
                details={"tenant_id": tenant_id},
            )

        if not integration.enabled:
            logger.warning(f"Integration for tenant {tenant_id} is disabled, syncing anyway")

        try:
            return await self.tenant_sync.execute(integration)
        except Exception as e:
            return self._failed_result(integration, e)

    @staticmethod
    def _failed_result(integration: TenantIntegration, error: Exception) -> TenantSyncResult:
        logger.error(
            f"Tenant {integration.tenant_id} sync failed: {type(error).__name__}: {error}",
            exc_info=error,
        )
        result = TenantSyncResult(tenant_id=integration.tenant_id, success=False)
        result.error_details.append(f"{type(error).__name__}: {error}")
        result.completed_at = datetime.now(timezone.utc)
        return result
