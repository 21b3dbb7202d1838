"""Tests for the grantsync CLI."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner

from grantsync.cli import main

CUSTOMER_ID = "3f2b8c1e-6d4a-4e7b-9c2d-1a5e8f0b7c6d"
SYNCED_AT = datetime(2026, 10, 19, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_db(monkeypatch):
    """Database stand-in wired into every command."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value="6c1f7d1e-0b5a-4f0e-8a8e-0d6f1b2c3a4d")
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.health_check = AsyncMock(return_value=True)

    @asynccontextmanager
    async def transaction():
        yield db.conn

    db.conn = AsyncMock()
    db.transaction = MagicMock(side_effect=transaction)
    db.__aenter__.return_value = db
    monkeypatch.setattr("grantsync.storage.database.Database", lambda *a, **kw: db)
    return db


def _metadata_row(data_source: str, last_result: str = "success: 20 programs (0 skipped)"):
    return {
        "data_source": data_source,
        "last_synced_at": SYNCED_AT,
        "last_success_at": SYNCED_AT,
        "sync_count": 1,
        "last_result": last_result,
        "created_at": SYNCED_AT,
        "updated_at": SYNCED_AT,
    }


def _program_row(**overrides):
    row = {
        "id": "6c1f7d1e-0b5a-4f0e-8a8e-0d6f1b2c3a4d",
        "data_source": "기업마당",
        "external_id": "PBLN_1",
        "title": "수출 바우처",
        "description": None,
        "category": None,
        "target_audience": [],
        "target_location": [],
        "keywords": [],
        "budget_range": None,
        "deadline": None,
        "source_url": None,
        "attachment_url": None,
        "registered_at": SYNCED_AT,
        "start_date": None,
        "end_date": None,
        "raw_data": {"pblancId": "PBLN_1", "flpthNm": "/cmm/fms/a.hwp@/cmm/fms/b.pdf"},
        "sync_status": "active",
        "created_at": SYNCED_AT,
        "updated_at": SYNCED_AT,
    }
    row.update(overrides)
    return row


# ── init-db ───────────────────────────────────────────────


class TestInitDb:
    def test_creates_tables_in_dependency_order(self, runner, fake_db):
        result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0, result.output
        statements = [c.args[0] for c in fake_db.execute.call_args_list]
        assert "CREATE TABLE IF NOT EXISTS programs" in statements[0]
        assert "sync_metadata" in statements[1]
        assert "matching_results" in statements[2]
        fake_db.close.assert_awaited_once()


# ── sync ──────────────────────────────────────────────────


class TestSync:
    def test_no_registries_configured(self, runner, monkeypatch):
        monkeypatch.setattr(
            "grantsync.ingestion.connectors.create_connectors", lambda *a, **kw: [],
        )

        result = runner.invoke(main, ["sync"])

        assert result.exit_code == 1
        assert "No registries configured" in result.output

    def test_mock_sync(self, runner, fake_db):
        fake_db.fetchrow.side_effect = lambda sql, source, *rest: _metadata_row(source)

        result = runner.invoke(main, ["sync", "--mock"])

        assert result.exit_code == 0, result.output
        assert "6/6 sources succeeded, 120 programs upserted" in result.output

    def test_mock_sync_single_source(self, runner, fake_db):
        fake_db.fetchrow.side_effect = lambda sql, source, *rest: _metadata_row(source)

        result = runner.invoke(main, ["sync", "--mock", "--source", "K-Startup"])

        assert result.exit_code == 0, result.output
        assert "1/1 sources succeeded" in result.output

    def test_unknown_source_rejected(self, runner):
        result = runner.invoke(main, ["sync", "--mock", "--source", "nope"])

        assert result.exit_code == 2


# ── sync-status ───────────────────────────────────────────


class TestSyncStatus:
    def test_no_runs_yet(self, runner, fake_db):
        result = runner.invoke(main, ["sync-status"])

        assert result.exit_code == 0
        assert "No sync has run yet." in result.output

    def test_lists_sources(self, runner, fake_db):
        fake_db.fetch.side_effect = [
            [_metadata_row("기업마당"), _metadata_row("K-Startup", "failed: boom")],
            [{"data_source": "기업마당", "count": 20}],
        ]

        result = runner.invoke(main, ["sync-status"])

        assert result.exit_code == 0, result.output
        assert "기업마당" in result.output
        assert "failed: boom" in result.output
        assert "Programs:     20" in result.output


# ── match ─────────────────────────────────────────────────


class TestMatch:
    def test_rejects_non_uuid(self, runner):
        result = runner.invoke(main, ["match", "customer-1"])

        assert result.exit_code == 2
        assert "must be a UUID" in result.output

    def test_unknown_customer(self, runner, fake_db):
        result = runner.invoke(main, ["match", CUSTOMER_ID])

        assert result.exit_code == 1
        assert "Customer not found" in result.output

    def test_prints_ranking(self, runner, fake_db):
        fake_db.fetchrow.return_value = {
            "id": CUSTOMER_ID,
            "industry": "IT",
            "location": "서울",
            "challenges": [],
            "goals": [],
            "preferred_keywords": ["수출"],
        }
        fake_db.fetch.return_value = [
            _program_row(target_audience=["IT"], target_location=["서울"], keywords=["수출"]),
        ]

        result = runner.invoke(main, ["match", CUSTOMER_ID, "--refresh"])

        assert result.exit_code == 0, result.output
        assert "[ 85] 수출 바우처" in result.output
        fake_db.transaction.assert_called_once()


# ── backfill-attachments ──────────────────────────────────


class TestBackfillAttachments:
    def test_dry_run_does_not_write(self, runner, fake_db):
        fake_db.fetch.return_value = [_program_row(), _program_row(external_id="PBLN_2", raw_data={})]

        result = runner.invoke(main, ["backfill-attachments", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "PBLN_1: https://www.bizinfo.go.kr/cmm/fms/a.hwp" in result.output
        assert "Would update 1 of 2" in result.output
        fake_db.execute.assert_not_awaited()

    def test_updates_rows(self, runner, fake_db):
        fake_db.fetch.return_value = [_program_row()]

        result = runner.invoke(main, ["backfill-attachments"])

        assert result.exit_code == 0, result.output
        assert "Updated 1 of 1" in result.output
        sql, program_id, url = fake_db.execute.call_args.args
        assert "UPDATE programs SET attachment_url" in sql
        assert url == "https://www.bizinfo.go.kr/cmm/fms/a.hwp"


# ── health ────────────────────────────────────────────────


class TestHealth:
    def test_healthy_database(self, runner, fake_db):
        result = runner.invoke(main, ["health"])

        assert result.exit_code == 0, result.output
        assert "postgres: True" in result.output
        fake_db.__aexit__.assert_awaited_once()

    def test_unhealthy_database(self, runner, fake_db):
        fake_db.health_check.return_value = False

        result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "Some services unhealthy!" in result.output


class TestDebugFlag:
    def test_debug_sets_log_level(self, runner, fake_db, monkeypatch):
        levels = []
        monkeypatch.setattr("grantsync.cli.setup_logging", lambda level=None: levels.append(level))

        result = runner.invoke(main, ["--debug", "health"])

        assert result.exit_code == 0, result.output
        assert levels == ["DEBUG"]
