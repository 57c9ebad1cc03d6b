"""Reconcile Order Use Case - applies one marketplace event to the order store.

For every polled event the reconciler decides whether the order must be
created or moved through the status state machine:

1. Ignore codes outside the known vocabulary (still acknowledged).
2. Look the order up by (tenant_id, provider, external_id).
3. Existing order: resolve the transition and compare-and-set the status.
4. New order: fetch the detail (falling back to the payload embedded in
   fallback events), map it and insert it conditionally. If another writer
   created the row first, re-read it and apply the transition instead.

Applying the same event twice leaves the store as applying it once.
"""

import logging
from typing import Any

from ...api.exceptions import DetailFetchFailure, PersistenceFailure, SyncEngineError
from ..domain.entities import (
    Order,
    ReconcileAction,
    ReconcileOutcome,
    SyncEvent,
)
from ..domain.ports import IMarketplaceSession, IOrderMapper, IOrderRepository
from ..domain.status import EventCode, initial_status, resolve_transition

logger = logging.getLogger(__name__)


class OrderReconciler:
    """Create-or-transition logic for a single tenant's events.

    Built once per tenant cycle because detail fetches go through that
    cycle's marketplace session.

    Example:
        reconciler = OrderReconciler(
            order_repo=PostgresOrderRepository(pool),
            details=session,
            mapper=OrderMapper(),
        )
        outcome = await reconciler.reconcile("tenant-1", "ifood", event)
    """

    # Compare-and-set attempts before giving up on a hot row
    MAX_CAS_ATTEMPTS = 3

    def __init__(
        self,
        order_repo: IOrderRepository,
        details: IMarketplaceSession,
        mapper: IOrderMapper,
    ):
        self.repo = order_repo
        self.details = details
        self.mapper = mapper

    async def reconcile(
        self,
        tenant_id: str,
        provider: str,
        event: SyncEvent,
    ) -> ReconcileOutcome:
        """Apply one event to the store.

        Never raises for persistence or marketplace failures; they are
        reported in the returned outcome.
        """
        code = event.event_code
        if code is None:
            logger.debug(
                f"Ignoring event {event.event_id} with unknown code {event.code!r} "
                f"for order {event.order_id}"
            )
            return ReconcileOutcome(action=ReconcileAction.IGNORED, order_id=event.order_id)

        try:
            existing = await self.repo.find_by_external_id(tenant_id, provider, event.order_id)
        except SyncEngineError as e:
            return self._persistence_failed(event, "lookup", e)

        if existing is not None:
            return await self._transition(existing, code)

        return await self._create(tenant_id, provider, event, code)

    # ----------------------------------------
    # Creation
    # ----------------------------------------

    async def _create(
        self,
        tenant_id: str,
        provider: str,
        event: SyncEvent,
        code: EventCode,
    ) -> ReconcileOutcome:
        payload = await self._order_payload(event)
        if payload is None:
            message = (
                f"Dropped creation of order {event.order_id} for tenant {tenant_id}: "
                f"detail unavailable"
            )
            logger.warning(message)
            return ReconcileOutcome(
                action=ReconcileAction.SKIPPED,
                order_id=event.order_id,
                error=message,
            )

        status = initial_status(code)
        order = self.mapper.map_to_entity(
            payload,
            tenant_id=tenant_id,
            provider=provider,
            external_id=event.order_id,
            status=status,
        )

        try:
            created = await self.repo.insert_if_absent(order)
        except SyncEngineError as e:
            return self._persistence_failed(event, "insert", e)

        if created:
            logger.info(
                f"Created order {event.order_id} for tenant {tenant_id} "
                f"with status {status.value}"
            )
            return ReconcileOutcome(
                action=ReconcileAction.CREATED,
                order_id=event.order_id,
                status=status,
            )

        # Lost the race: another writer inserted the same key first
        logger.debug(f"Order {event.order_id} created concurrently, applying transition")
        try:
            existing = await self.repo.find_by_external_id(tenant_id, provider, event.order_id)
        except SyncEngineError as e:
            return self._persistence_failed(event, "lookup", e)

        if existing is None:
            return self._persistence_failed(
                event,
                "lookup",
                PersistenceFailure(
                    "Order missing after conflicting insert",
                    order_id=event.order_id,
                ),
            )
        return await self._transition(existing, code)

    async def _order_payload(self, event: SyncEvent) -> dict[str, Any] | None:
        """Fetch order detail, falling back to the payload embedded in the event."""
        try:
            return await self.details.fetch_order(event.order_id)
        except DetailFetchFailure as e:
            if event.full_order is not None:
                logger.debug(
                    f"Detail fetch failed for {event.order_id}, using embedded order: {e}"
                )
                return event.full_order
            logger.warning(str(e))
            return None

    # ----------------------------------------
    # Transition
    # ----------------------------------------

    async def _transition(self, order: Order, code: EventCode) -> ReconcileOutcome:
        previous = order.status
        current = order

        for _ in range(self.MAX_CAS_ATTEMPTS):
            target = resolve_transition(current.status, code)
            if target is current.status:
                return ReconcileOutcome(
                    action=ReconcileAction.UNCHANGED,
                    order_id=order.external_id,
                    previous_status=previous,
                    status=current.status,
                )

            try:
                changed = await self.repo.update_status(current, current.status, target)
            except SyncEngineError as e:
                return self._persistence_failed_for(order.external_id, "update", e)

            if changed:
                logger.info(
                    f"Order {order.external_id} ({order.tenant_id}): "
                    f"{current.status.value} -> {target.value} via {code.value}"
                )
                return ReconcileOutcome(
                    action=ReconcileAction.UPDATED,
                    order_id=order.external_id,
                    previous_status=current.status,
                    status=target,
                )

            # Status moved under us; re-read and resolve again
            try:
                refreshed = await self.repo.find_by_external_id(
                    order.tenant_id, order.provider, order.external_id
                )
            except SyncEngineError as e:
                return self._persistence_failed_for(order.external_id, "lookup", e)

            if refreshed is None:
                break
            current = refreshed

        return self._persistence_failed_for(
            order.external_id,
            "update",
            PersistenceFailure(
                f"Status update did not converge after {self.MAX_CAS_ATTEMPTS} attempts",
                order_id=order.external_id,
            ),
        )

    # ----------------------------------------
    # Failures
    # ----------------------------------------

    def _persistence_failed(
        self,
        event: SyncEvent,
        operation: str,
        error: SyncEngineError,
    ) -> ReconcileOutcome:
        return self._persistence_failed_for(event.order_id, operation, error)

    def _persistence_failed_for(
        self,
        order_id: str,
        operation: str,
        error: SyncEngineError,
    ) -> ReconcileOutcome:
        failure = error
        if not isinstance(error, PersistenceFailure):
            failure = PersistenceFailure(
                f"Order {operation} failed: {error.message}",
                order_id=order_id,
                cause=error,
            )
        logger.error(str(failure))
        return ReconcileOutcome(
            action=ReconcileAction.FAILED,
            order_id=order_id,
            error=str(failure),
        )
