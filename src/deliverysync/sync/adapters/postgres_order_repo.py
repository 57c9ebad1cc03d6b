"""PostgreSQL repository adapter for order persistence.

Implements IOrderRepository with two conditional-write primitives so
concurrent cycles (or overlapping processes) never corrupt an order:

- INSERT ... ON CONFLICT DO NOTHING RETURNING id against the unique index
  on (tenant_id, integration_source, external_id)
- UPDATE ... WHERE status = $expected (compare-and-set)
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection
from ...api.exceptions import PersistenceFailure
from ..domain.entities import Order
from ..domain.ports import IOrderMapper, IOrderRepository
from ..domain.status import OrderStatus
from .order_mapper import OrderMapper

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class PostgresOrderRepository(IOrderRepository):
    """PostgreSQL implementation of IOrderRepository."""

    def __init__(self, pool: "asyncpg.Pool", mapper: IOrderMapper | None = None):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
            mapper: Produces INSERT record tuples (defaults to OrderMapper)
        """
        self.pool = pool
        self.mapper = mapper or OrderMapper()

    async def find_by_external_id(
        self,
        tenant_id: str,
        provider: str,
        external_id: str,
    ) -> Order | None:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, tenant_id, integration_source, external_id, status,
                       customer_name, total_amount, payment_method,
                       external_metadata, date
                FROM orders
                WHERE tenant_id = $1
                  AND integration_source = $2
                  AND external_id = $3
                """,
                tenant_id,
                provider,
                external_id,
            )

        if row is None:
            return None
        return self._row_to_order(row)

    async def insert_if_absent(self, order: Order) -> bool:
        record = self.mapper.map_to_record(order)

        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO orders (
                    tenant_id, integration_source, external_id, status,
                    customer_name, total_amount, payment_method,
                    external_metadata, date
                ) VALUES (
                    $1, $2, $3, $4, $5, $6, $7, $8::jsonb, COALESCE($9, NOW())
                )
                ON CONFLICT (tenant_id, integration_source, external_id) DO NOTHING
                RETURNING id
                """,
                *record,
            )

        if row is None:
            return False

        order.id = str(row["id"])
        return True

    async def update_status(
        self,
        order: Order,
        expected: OrderStatus,
        new_status: OrderStatus,
    ) -> bool:
        async with database_connection(self.pool) as conn:
            result = await conn.execute(
                """
                UPDATE orders
                SET status = $1, updated_at = NOW()
                WHERE tenant_id = $2
                  AND integration_source = $3
                  AND external_id = $4
                  AND status = $5
                """,
                new_status.value,
                order.tenant_id,
                order.provider,
                order.external_id,
                expected.value,
            )

        # asyncpg returns the command tag, e.g. "UPDATE 1"
        changed = _affected_rows(result) > 0
        if changed:
            order.status = new_status
        return changed

    @staticmethod
    def _row_to_order(row: Any) -> Order:
        try:
            status = OrderStatus(row["status"])
        except ValueError:
            raise PersistenceFailure(
                f"Stored order has unknown status {row['status']!r}",
                order_id=row["external_id"],
            )

        metadata = row["external_metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return Order(
            id=str(row["id"]),
            external_id=row["external_id"],
            tenant_id=row["tenant_id"],
            provider=row["integration_source"],
            status=status,
            customer_name=row["customer_name"],
            total_amount=row["total_amount"],
            payment_method=row["payment_method"],
            source_metadata=metadata or {},
            created_at=row["date"],
        )


def _affected_rows(command_tag: str | None) -> int:
    if not command_tag:
        return 0
    try:
        return int(command_tag.rsplit(" ", 1)[-1])
    except ValueError:
        return 0
