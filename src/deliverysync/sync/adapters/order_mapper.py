"""Field mapper adapter for marketplace order payloads.

Implements IOrderMapper: turns an order detail (or a listed order from the
fallback path) into an Order entity, and an Order into the record tuple
used by PostgresOrderRepository.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from ..domain.entities import Order
from ..domain.ports import IOrderMapper
from ..domain.status import OrderStatus

logger = logging.getLogger(__name__)


class OrderMapper(IOrderMapper):
    """Maps iFood-shaped order payloads to Order entities and DB records.

    Handles:
    - Nested objects (customer.name, total.orderAmount)
    - Amounts as Decimal (never float)
    - Timestamp parsing (ISO 8601 with Z suffix)
    - Missing or malformed fields (mapped to None, never raised)
    """

    def map_to_entity(
        self,
        raw: dict[str, Any],
        *,
        tenant_id: str,
        provider: str,
        external_id: str,
        status: OrderStatus,
    ) -> Order:
        customer = raw.get("customer") or {}
        total = raw.get("total") or {}

        return Order(
            external_id=external_id,
            tenant_id=tenant_id,
            provider=provider,
            status=status,
            customer_name=customer.get("name") if isinstance(customer, dict) else None,
            total_amount=self._parse_amount(
                total.get("orderAmount") if isinstance(total, dict) else None
            ),
            # Paid through the marketplace; the provider is the payment channel
            payment_method=provider,
            source_metadata=raw,
            created_at=self._parse_timestamp(raw.get("createdAt")),
        )

    def map_to_record(self, order: Order) -> tuple[Any, ...]:
        """Transform Order entity to database record tuple.

        The tuple ordering matches the INSERT statement in PostgresOrderRepository:
        (tenant_id, integration_source, external_id, status, customer_name,
         total_amount, payment_method, external_metadata, date)
        """
        return (
            order.tenant_id,
            order.provider,
            order.external_id,
            order.status.value,
            order.customer_name,
            order.total_amount,
            order.payment_method,
            json.dumps(order.source_metadata, default=str),
            order.created_at,
        )

    @staticmethod
    def _parse_amount(value: Any) -> Decimal | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation:
            logger.debug(f"Unparseable order amount: {value!r}")
            return None

    @staticmethod
    def _parse_timestamp(iso_string: Any) -> datetime | None:
        """Parse ISO 8601 timestamp string to datetime.

        Returns None for missing or malformed values.
        """
        if not iso_string or not isinstance(iso_string, str):
            return None
        try:
            return datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable order timestamp: {iso_string!r}")
            return None
