"""
Tests for the token wallet DB init script
=========================================

Tests:
1. Production guard requires WALLET_INIT_CONFIRM=YES
2. Dry run creates nothing
3. Init is idempotent
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy import inspect

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import build_engine
from token_wallet.db_init import check_environment, run_init


async def table_names(engine):
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


class TestEnvironmentGuard:

    def test_development_allowed(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")

        allowed, message = check_environment()

        assert allowed is True
        assert "development" in message

    def test_production_requires_confirmation(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.delenv("WALLET_INIT_CONFIRM", raising=False)

        allowed, message = check_environment()

        assert allowed is False
        assert "WALLET_INIT_CONFIRM=YES" in message

    def test_production_confirmed(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("WALLET_INIT_CONFIRM", "YES")

        assert check_environment()[0] is True

    @pytest.mark.asyncio
    async def test_blocked_init_touches_nothing(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.delenv("WALLET_INIT_CONFIRM", raising=False)
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'blocked.db'}")

        try:
            assert await run_init(engine=engine) is False
            assert await table_names(engine) == set()
        finally:
            await engine.dispose()


class TestRunInit:

    @pytest.mark.asyncio
    async def test_dry_run_then_init(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ENVIRONMENT", "test")
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'init.db'}")

        try:
            assert await run_init(dry_run=True, engine=engine) is True
            assert await table_names(engine) == set()

            assert await run_init(engine=engine) is True
            assert await run_init(engine=engine) is True
            assert {"accounts", "token_transactions"} <= await table_names(engine)
        finally:
            await engine.dispose()
