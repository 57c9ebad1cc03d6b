#!/usr/bin/env python3
"""Event acknowledgment.

Consumed events are confirmed in one batch call per tenant per cycle so the
marketplace stops redelivering them:

    POST /events/acknowledgment
    [{"id": "e1"}, {"id": "e2"}]

Acknowledgment is best-effort. A failure is logged and reported, never
raised; the events come back on the next poll and reconciliation absorbs
the duplicates.
"""
import logging
from typing import Iterable

from ..sync.domain.entities import AckResult, SyncEvent
from .client import MarketplaceClient
from .exceptions import AcknowledgmentFailure, SyncEngineError

logger = logging.getLogger(__name__)


class AcknowledgmentManager:
    """Batch acknowledgment of polled events."""

    ENDPOINT = "/events/acknowledgment"

    def __init__(self, client: MarketplaceClient):
        self.client = client

    async def acknowledge(
        self,
        events: list[SyncEvent],
        extra_ids: Iterable[str] = (),
    ) -> AckResult:
        """Acknowledge every event in the batch that carries an event id.

        extra_ids are polled event ids that never became SyncEvents (entries
        without an order id). Synthesized events (no id) are skipped; if no
        id remains no request is made and the result counts as a success.
        """
        candidates = [e.event_id for e in events if e.is_acknowledgeable]
        candidates.extend(extra_ids)
        ids = list(dict.fromkeys(candidates))

        if not ids:
            return AckResult(attempted=0, acknowledged=0, success=True)

        try:
            await self.client.post(self.ENDPOINT, [{"id": event_id} for event_id in ids])
        except SyncEngineError as e:
            failure = AcknowledgmentFailure(
                f"Failed to acknowledge {len(ids)} event(s): {e.message}",
                event_count=len(ids),
                cause=e,
            )
            logger.warning(str(failure))
            return AckResult(
                attempted=len(ids),
                acknowledged=0,
                success=False,
                error=str(failure),
            )

        logger.info(f"Acknowledged {len(ids)} event(s)")
        return AckResult(attempted=len(ids), acknowledged=len(ids), success=True)
