#!/usr/bin/env python3
"""Automated Scheduler for delivery marketplace order sync.

This module provides a long-running scheduler that syncs every enabled
tenant's marketplace orders at a fixed interval. Designed to run as the main
process in a Docker container.

Architecture:
    - Simple asyncio loop with a fixed inter-cycle delay (no external scheduler)
    - Graceful shutdown on SIGTERM/SIGINT
    - Configurable via environment variables
    - Health check endpoint via optional HTTP server
    - A cycle never raises; tenant failures are reported in the cycle result

Environment Variables:
    SYNC_INTERVAL_SECONDS: Seconds between cycles (default: 30)
    SYNC_ON_STARTUP: Run a cycle immediately on startup (default: true)
    HEALTH_CHECK_PORT: Port for health check endpoint (default: 8080, 0 to disable)
    LOG_LEVEL: Logging level (default: INFO)

    Engine settings (see src/deliverysync/config.py):
        DATABASE_URL, MARKETPLACE_PROVIDER, MARKETPLACE_AUTH_URL,
        MARKETPLACE_ORDER_API_URL, SYNC_MAX_CONCURRENT_TENANTS,
        SYNC_FALLBACK_ENABLED, FALLBACK_MIN_INTERVAL_SECONDS

Example:
    # Default 30 second cycle
    python scheduler.py

    # Every 2 minutes, fallback listing at most every 10 minutes per tenant
    SYNC_INTERVAL_SECONDS=120 FALLBACK_MIN_INTERVAL_SECONDS=600 python scheduler.py

Docker Usage:
    docker run -e DATABASE_URL=... delivery-sync
"""
import asyncio
import json
import logging
import os
import signal
import sys
from datetime import UTC, datetime, timedelta
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.deliverysync.api import (
    ConfigurationError,
    DatabaseError,
    check_database_health,
    close_pool,
    create_pool,
)
from src.deliverysync.config import SyncConfig
from src.deliverysync.sync.domain.entities import CycleResult
from src.deliverysync.sync.service import create_sync_coordinator
from src.deliverysync.sync.use_cases.run_cycle import SyncCoordinator

# Initialize logger
logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

class SchedulerConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.interval_seconds = max(1, int(os.getenv("SYNC_INTERVAL_SECONDS", "30")))
        self.sync_on_startup = os.getenv("SYNC_ON_STARTUP", "true").lower() == "true"
        self.health_check_port = int(os.getenv("HEALTH_CHECK_PORT", "8080"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    def __repr__(self):
        return (
            f"SchedulerConfig("
            f"interval={self.interval_seconds}s, "
            f"startup={self.sync_on_startup}, "
            f"health_port={self.health_check_port})"
        )


# ============================================
# Sync Logic
# ============================================

async def run_sync(coordinator: SyncCoordinator) -> CycleResult:
    """Run a single sync cycle.

    Any exception that escapes the coordinator is turned into a failed cycle
    result so the loop keeps running.
    """
    started_at = datetime.now(UTC)
    try:
        return await coordinator.run_cycle()
    except Exception as e:
        logger.error(f"Sync cycle failed: {type(e).__name__}: {e}", exc_info=True)
        print(f"[Scheduler] ERROR during sync: {type(e).__name__}: {e}")
        return CycleResult(
            started_at=started_at,
            completed_at=datetime.now(UTC),
            error=f"{type(e).__name__}: {e}",
        )


# ============================================
# Health Check Server
# ============================================

class HealthState:
    """Shared state for health checks.

    When a pool is attached, every health request also checks the database.
    """

    def __init__(self, db_pool=None):
        self.db_pool = db_pool
        self.last_sync_at: Optional[datetime] = None
        self.last_sync_success: bool = False
        self.last_cycle_error: Optional[str] = None
        self.last_tenants_failed: int = 0
        self.total_cycles: int = 0
        self.failed_cycles: int = 0
        self.dropped_creations: int = 0
        self.started_at: datetime = datetime.now(UTC)

    def record(self, result: CycleResult) -> None:
        """Fold one cycle result into the counters."""
        self.total_cycles += 1
        self.last_sync_at = datetime.now(UTC)
        self.last_sync_success = result.success
        self.last_cycle_error = result.error
        self.last_tenants_failed = result.tenants_failed
        self.dropped_creations += result.dropped_creations
        if not result.success:
            self.failed_cycles += 1

    @property
    def healthy(self) -> bool:
        # Tenant-level failures are expected; only a broken cycle is unhealthy
        return self.total_cycles == 0 or self.last_cycle_error is None

    def to_dict(self) -> dict:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "uptime_seconds": round((datetime.now(UTC) - self.started_at).total_seconds()),
            "total_cycles": self.total_cycles,
            "failed_cycles": self.failed_cycles,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else "never",
            "last_sync_success": self.last_sync_success,
            "last_tenants_failed": self.last_tenants_failed,
            "last_cycle_error": self.last_cycle_error,
            "dropped_creations": self.dropped_creations,
        }


async def health_check_handler(reader, writer, state: HealthState):
    """Handle HTTP health check requests."""
    # Read request (we don't care about the content)
    await reader.read(1024)

    payload = state.to_dict()
    healthy = state.healthy
    if state.db_pool is not None:
        database = await check_database_health(state.db_pool)
        payload["database"] = database
        healthy = healthy and database["healthy"]
    payload["status"] = "healthy" if healthy else "unhealthy"

    body = json.dumps(payload)
    http_status = 200 if healthy else 503
    response = (
        f"HTTP/1.1 {http_status} {'OK' if http_status == 200 else 'Service Unavailable'}\r\n"
        f"Content-Type: application/json\r\n"
        f"Content-Length: {len(body.encode())}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
        f"{body}"
    )

    writer.write(response.encode())
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(port: int, state: HealthState):
    """Start the health check HTTP server."""
    if port <= 0:
        return None

    async def handler(reader, writer):
        await health_check_handler(reader, writer, state)

    server = await asyncio.start_server(handler, "0.0.0.0", port)
    print(f"[Scheduler] Health check server listening on port {port}")
    return server


# ============================================
# Main Scheduler Loop
# ============================================

def _summarize(result: CycleResult) -> str:
    return (
        f"success={result.success}, tenants={len(result.tenants)}, "
        f"failed={result.tenants_failed}, created={result.orders_created}, "
        f"updated={result.orders_updated}, dropped={result.dropped_creations}, "
        f"duration={result.duration_seconds or 0:.1f}s"
    )


async def scheduler_loop(
    config: SchedulerConfig,
    coordinator: SyncCoordinator,
    health_state: HealthState,
    shutdown_event: asyncio.Event,
):
    """Main scheduling loop.

    Args:
        config: Scheduler configuration
        coordinator: Engine entry point, kept for the life of the process
        health_state: Shared health state
        shutdown_event: Event to signal shutdown
    """
    interval_seconds = config.interval_seconds

    # Initial sync on startup
    if config.sync_on_startup:
        print("[Scheduler] Running initial sync on startup...")
        result = await run_sync(coordinator)
        health_state.record(result)
        print(f"[Scheduler] Initial sync complete: {_summarize(result)}")

    while not shutdown_event.is_set():
        next_run = datetime.now(UTC) + timedelta(seconds=interval_seconds)
        logger.debug(f"Next sync at {next_run.isoformat()} (in {interval_seconds}s)")

        try:
            # Wait for either the interval or shutdown
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=interval_seconds,
            )
            # If we get here, shutdown was requested
            break
        except asyncio.TimeoutError:
            # Timeout means it's time to sync
            pass

        result = await run_sync(coordinator)
        health_state.record(result)

        if result.success:
            logger.info(f"Sync complete: {_summarize(result)}")
        else:
            print(f"[Scheduler] Sync complete with failures: {_summarize(result)}")

    print("[Scheduler] Shutdown requested, exiting loop")


# ============================================
# Main Entry Point
# ============================================

async def main():
    """Main entry point for the scheduler."""
    config = SchedulerConfig()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    print("=" * 60)
    print("Delivery Marketplace Order Sync Scheduler")
    print("=" * 60)
    print(f"[Scheduler] Config: {config}")

    try:
        sync_config = SyncConfig().validate(require_database=True)
    except ConfigurationError as e:
        print(f"[Scheduler] ERROR: {e}")
        sys.exit(1)
    print(f"[Scheduler] Engine: {sync_config}")

    try:
        db_pool = await create_pool(sync_config.database_url)
    except DatabaseError as e:
        print(f"[Scheduler] ERROR: Database connection failed: {e}")
        sys.exit(1)
    print("[Scheduler] Connected to PostgreSQL")

    coordinator = create_sync_coordinator(sync_config, db_pool)

    # Health state
    health_state = HealthState(db_pool=db_pool)

    # Shutdown event
    shutdown_event = asyncio.Event()

    # Signal handlers
    def handle_shutdown(signum, frame):
        print(f"\n[Scheduler] Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    # Start health server
    health_server = await start_health_server(config.health_check_port, health_state)

    try:
        await scheduler_loop(
            config=config,
            coordinator=coordinator,
            health_state=health_state,
            shutdown_event=shutdown_event,
        )
    finally:
        # Cleanup
        print("[Scheduler] Cleaning up...")

        if health_server:
            health_server.close()
            await health_server.wait_closed()

        await close_pool(db_pool)

        print("[Scheduler] Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
