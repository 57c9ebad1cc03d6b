"""PostgreSQL repository adapter for tenant integrations.

The tenant_integrations table is owned by the tenant-facing application;
the sync engine only reads it. Credentials are stored as a JSON object with
camelCase keys (clientId, clientSecret, merchantId).
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection
from ..domain.entities import MarketplaceCredentials, TenantIntegration
from ..domain.ports import IIntegrationRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT id, tenant_id, provider, credentials, is_enabled, status
    FROM tenant_integrations
"""


class PostgresIntegrationRepository(IIntegrationRepository):
    """PostgreSQL implementation of IIntegrationRepository."""

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def list_enabled(self, provider: str) -> list[TenantIntegration]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                _SELECT + " WHERE provider = $1 AND is_enabled ORDER BY tenant_id",
                provider,
            )

        integrations = [self._row_to_integration(row) for row in rows]
        logger.debug(f"Found {len(integrations)} enabled {provider} integration(s)")
        return integrations

    async def get(self, tenant_id: str, provider: str) -> TenantIntegration | None:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                _SELECT + " WHERE tenant_id = $1 AND provider = $2",
                tenant_id,
                provider,
            )

        return self._row_to_integration(row) if row else None

    @staticmethod
    def _row_to_integration(row: Any) -> TenantIntegration:
        credentials = row["credentials"]
        if isinstance(credentials, str):
            try:
                credentials = json.loads(credentials)
            except ValueError:
                logger.warning(f"Unreadable credentials for tenant {row['tenant_id']}")
                credentials = {}

        return TenantIntegration(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            provider=row["provider"],
            credentials=MarketplaceCredentials.from_dict(
                credentials if isinstance(credentials, dict) else {}
            ),
            enabled=bool(row["is_enabled"]),
            status=row["status"],
        )
