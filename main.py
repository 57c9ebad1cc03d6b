#!/usr/bin/env python3
"""Delivery Marketplace Order Sync CLI.

Command-line entry point for on-demand runs of the order sync engine. It
runs exactly the same SyncCoordinator as the long-running scheduler; only
the repetition wrapper differs.

Architecture:
    - SyncConfig loads settings from the environment (.env supported)
    - create_sync_coordinator() wires the use cases to PostgreSQL and the
      marketplace API
    - Results are printed as a summary, or as JSON with --json

Environment Variables Required:
    - DATABASE_URL: PostgreSQL connection string
    - MARKETPLACE_* settings are optional (iFood defaults)

Example Usage:
    $ python main.py                              # One cycle over all tenants
    $ python main.py --tenant 42                  # One cycle for tenant 42
    $ python main.py --test-connection 42         # Check tenant 42's credentials
    $ python main.py --json --output cycle.json   # Save the cycle result
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import UTC, datetime

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.deliverysync.api import (
    ConfigurationError,
    DatabaseError,
    SyncEngineError,
    TokenManager,
    close_pool,
    create_pool,
)
from src.deliverysync.config import SyncConfig
from src.deliverysync.sync.adapters.postgres_integration_repo import (
    PostgresIntegrationRepository,
)
from src.deliverysync.sync.service import create_sync_coordinator


def print_result(payload: dict, as_json: bool, output: str | None = None) -> None:
    """Print a result dict as a summary or JSON, optionally saving it."""
    if output:
        with open(output, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        print(f"[Main] Result saved to {output}")

    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return

    if "results" in payload:
        print("\n" + "=" * 60)
        print("SYNC COMPLETE")
        print("=" * 60)
        print(
            f"Tenants: {payload['tenants']}  failed: {payload['tenants_failed']}  "
            f"skipped: {payload['tenants_skipped']}"
        )
        print(
            f"Orders created: {payload['orders_created']}  "
            f"updated: {payload['orders_updated']}  "
            f"dropped creations: {payload['dropped_creations']}"
        )
        if payload.get("error"):
            print(f"Error: {payload['error']}")
        for tenant in payload["results"]:
            status = "skipped" if tenant["skipped"] else ("ok" if tenant["success"] else "FAILED")
            print(
                f"  {tenant['tenant_id']:<24} {status:<8} events={tenant['events_received']} "
                f"created={tenant['created']} updated={tenant['updated']} "
                f"ack={tenant['acknowledged']}{' (ack failed)' if tenant['ack_failed'] else ''}"
            )
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


async def run_sync(args: argparse.Namespace) -> int:
    """Main orchestration function.

    Returns:
        Process exit code
    """
    start_time = datetime.now(UTC)
    print(f"[Main] Starting at {start_time.isoformat()}")

    try:
        config = SyncConfig().validate(require_database=True)
    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        return 1

    try:
        db_pool = await create_pool(config.database_url)
    except DatabaseError as e:
        print(f"[Main] Database connection failed: {e}")
        return 1

    exit_code = 0
    try:
        token_manager = TokenManager(token_url=config.auth_url, timeout=config.http_timeout)

        if args.test_connection:
            repo = PostgresIntegrationRepository(db_pool)
            integration = await repo.get(args.test_connection, config.provider)
            if integration is None:
                print(f"[Main] No {config.provider} integration for tenant {args.test_connection}")
                return 1

            result = await token_manager.test_connection(
                integration.tenant_id,
                integration.credentials,
                config.merchant_api_url,
            )
            print_result(result, args.json, args.output)
            exit_code = 0 if result["ok"] else 1

        elif args.tenant:
            coordinator = create_sync_coordinator(config, db_pool, token_manager=token_manager)
            try:
                tenant_result = await coordinator.run_tenant(args.tenant)
            except SyncEngineError as e:
                print(f"[Main] {e}")
                return 1
            print_result(tenant_result.to_dict(), args.json, args.output)
            exit_code = 0 if tenant_result.success else 1

        else:
            coordinator = create_sync_coordinator(config, db_pool, token_manager=token_manager)
            cycle = await coordinator.run_cycle()
            print_result(cycle.to_dict(), args.json, args.output)
            exit_code = 0 if cycle.error is None else 1

    finally:
        await close_pool(db_pool)

    duration = (datetime.now(UTC) - start_time).total_seconds()
    print(f"\n[Main] Completed in {duration:.1f} seconds")
    return exit_code


def main():
    parser = argparse.ArgumentParser(
        description="Sync delivery marketplace orders to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # One cycle over all enabled tenants
  python main.py --once                   # Same, explicit
  python main.py --tenant 42              # One cycle for a single tenant
  python main.py --test-connection 42     # Verify credentials, list merchants
  python main.py --json                   # Print the result as JSON

For a persistent loop, run scheduler.py.
        """
    )

    # Run selection
    run_group = parser.add_argument_group("Run Selection")
    mode = run_group.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run one cycle over all enabled tenants (default)"
    )
    mode.add_argument(
        "--tenant",
        type=str,
        metavar="TENANT_ID",
        help="Run one cycle for a single tenant"
    )
    mode.add_argument(
        "--test-connection",
        type=str,
        metavar="TENANT_ID",
        help="Check a tenant's credentials and list accessible merchants (no sync)"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON"
    )
    output_group.add_argument(
        "--output",
        type=str,
        metavar="FILE",
        help="Save the result as JSON to FILE"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    sys.exit(asyncio.run(run_sync(args)))


if __name__ == "__main__":
    main()
