"""Use cases layer - Business logic orchestration for order sync.

- OrderReconciler: applies one event to the order store
- SyncTenantUseCase: token -> poll -> reconcile -> acknowledge for one tenant
- SyncCoordinator: runs every enabled tenant with isolated failures

Use cases depend only on ports, not concrete implementations.
"""

from .reconcile_order import OrderReconciler
from .run_cycle import SyncCoordinator
from .sync_tenant import SyncTenantUseCase

__all__ = [
    "OrderReconciler",
    "SyncCoordinator",
    "SyncTenantUseCase",
]
