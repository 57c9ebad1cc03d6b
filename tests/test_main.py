#!/usr/bin/env python3
"""Tests for the one-shot CLI."""
import argparse
import json
import sys
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
import main
from src.deliverysync.api.exceptions import ConnectionPoolError
from src.deliverysync.sync.domain.entities import CycleResult, TenantSyncResult


def cli_args(**overrides):
    values = {"once": False, "tenant": None, "test_connection": None, "json": False, "output": None}
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def db_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/orders")


class TestPrintResult:
    def test_json_output(self, capsys):
        main.print_result({"ok": True}, as_json=True)
        assert json.loads(capsys.readouterr().out) == {"ok": True}

    def test_saves_file(self, tmp_path):
        target = tmp_path / "cycle.json"
        main.print_result({"ok": True}, as_json=False, output=str(target))
        assert json.loads(target.read_text()) == {"ok": True}

    def test_cycle_summary(self, capsys):
        now = datetime.now(UTC)
        result = CycleResult(
            started_at=now,
            completed_at=now,
            tenants=[TenantSyncResult(tenant_id="t1", created=2, ack_failed=True)],
        )

        main.print_result(result.to_dict(), as_json=False)

        out = capsys.readouterr().out
        assert "SYNC COMPLETE" in out
        assert "(ack failed)" in out


class TestRunSync:
    @pytest.mark.asyncio
    async def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert await main.run_sync(cli_args()) == 1

    @pytest.mark.asyncio
    async def test_database_unreachable(self, db_env):
        with patch.object(main, "create_pool", AsyncMock(side_effect=ConnectionPoolError("down"))):
            assert await main.run_sync(cli_args()) == 1

    @pytest.mark.asyncio
    async def test_cycle_run(self, db_env):
        now = datetime.now(UTC)
        coordinator = MagicMock()
        coordinator.run_cycle = AsyncMock(
            return_value=CycleResult(started_at=now, completed_at=now)
        )

        with patch.object(main, "create_pool", AsyncMock(return_value=MagicMock())), \
                patch.object(main, "close_pool", AsyncMock()) as close_pool, \
                patch.object(main, "create_sync_coordinator", return_value=coordinator):
            assert await main.run_sync(cli_args(once=True)) == 0

        close_pool.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_single_tenant_failure_exit_code(self, db_env):
        coordinator = MagicMock()
        coordinator.run_tenant = AsyncMock(
            return_value=TenantSyncResult(tenant_id="t1", success=False, skipped=True)
        )

        with patch.object(main, "create_pool", AsyncMock(return_value=MagicMock())), \
                patch.object(main, "close_pool", AsyncMock()), \
                patch.object(main, "create_sync_coordinator", return_value=coordinator):
            assert await main.run_sync(cli_args(tenant="t1")) == 1

        coordinator.run_tenant.assert_awaited_once_with("t1")
