"""
Tests for the command line interface.
"""

from __future__ import annotations

import os
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from divscan import __version__
from divscan.analysis.aggregation import summarize
from divscan.checkpoint.store import CheckpointStore
from divscan.cli.main import app
from divscan.config import Settings
from divscan.coordinator.run import CollectionResult
from divscan.exceptions import ListingError
from divscan.types import (
    CheckpointState,
    CollectionReport,
    EntityRecord,
    ReportMetadata,
    RequestStats,
    utc_now,
)

runner = CliRunner()


def finished(settings: Settings) -> CollectionResult:
    records = (EntityRecord(symbol="KO", fields={"dividend_yield": 3.1, "sector": "Consumer Staples"}),)
    now = utc_now()
    metadata = ReportMetadata(
        run_id="run_cli",
        started_at=now - timedelta(minutes=5),
        completed_at=now,
        total_scanned=3,
        processed=3,
        recorded=1,
        skipped=2,
        failed=0,
        resumed_entities=0,
        requests=RequestStats(total=9, succeeded=9),
        active_seconds=300.0,
    )
    report = CollectionReport(metadata=metadata, statistics=summarize(records), records=records)
    return CollectionResult(report=report, output_path=settings.report_path)


class TestInfoCommands:
    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_config(self, mock_settings: Settings) -> None:
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "CONCURRENCY" in result.stdout

    def test_invalid_config_exits(self, mock_env_vars: dict[str, str]) -> None:
        with patch.dict(os.environ, {"MIN_DELAY_SECONDS": "5", "MAX_DELAY_SECONDS": "1"}):
            result = runner.invoke(app, ["config"])

        assert result.exit_code == 1


class TestCheckpointCommands:
    def test_status_without_checkpoint(self, mock_settings: Settings) -> None:
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "No checkpoint" in result.stdout

    def test_status_and_clear(self, mock_settings: Settings) -> None:
        store = CheckpointStore.from_settings(mock_settings)
        store.save(CheckpointState(processed={"KO", "PEP"}))

        status = runner.invoke(app, ["status"])
        assert status.exit_code == 0
        assert "Processed" in status.stdout

        cleared = runner.invoke(app, ["clear-checkpoint"])
        assert cleared.exit_code == 0
        assert not store.exists()


class TestCollectCommand:
    def test_collect_prints_summary(self, mock_settings: Settings) -> None:
        run = AsyncMock(return_value=finished(mock_settings))
        with patch("divscan.coordinator.run.collect", run):
            result = runner.invoke(app, ["collect", "--concurrency", "1", "--limit", "3"])

        assert result.exit_code == 0
        assert "Summary" in result.stdout
        kwargs = run.await_args.kwargs
        assert kwargs["concurrency"] == 1
        assert kwargs["limit"] == 3
        assert kwargs["fresh"] is False

    def test_collect_listing_failure_exits(self, mock_settings: Settings) -> None:
        run = AsyncMock(side_effect=ListingError("Failed to fetch entity listing"))
        with patch("divscan.coordinator.run.collect", run):
            result = runner.invoke(app, ["collect"])

        assert result.exit_code == 1

    @pytest.mark.parametrize("value", ["0", "-2"])
    def test_collect_rejects_bad_concurrency(self, mock_settings: Settings, value: str) -> None:
        result = runner.invoke(app, ["collect", "--concurrency", value])

        assert result.exit_code != 0
