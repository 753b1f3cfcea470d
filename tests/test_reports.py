"""
Tests for the report model and writer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import orjson
import pytest

from divscan.analysis.aggregation import summarize
from divscan.exceptions import ReportError
from divscan.reports.writer import ReportWriter
from divscan.types import CollectionReport, EntityRecord, ReportMetadata, RequestStats

STARTED = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def report() -> CollectionReport:
    records = (
        EntityRecord(symbol="KO", fields={"name": "Coca-Cola", "dividend_yield": 3.1, "sector": "Consumer Staples"}),
        EntityRecord(symbol="T", fields={"name": "AT&T", "dividend_yield": 6.5, "sector": "Telecom"}),
    )
    metadata = ReportMetadata(
        run_id="run_test",
        started_at=STARTED,
        completed_at=STARTED + timedelta(minutes=90),
        total_scanned=10,
        processed=10,
        recorded=2,
        skipped=7,
        failed=1,
        resumed_entities=4,
        requests=RequestStats(total=40, succeeded=30, failed=10),
        active_seconds=3600.0,
    )
    return CollectionReport(metadata=metadata, statistics=summarize(records), records=records)


class TestReportModel:
    """Tests for report serialization."""

    def test_to_dict(self, report: CollectionReport) -> None:
        data = report.to_dict()

        assert data["success"] is True
        assert data["count"] == 2
        assert data["last_updated"] == "2024-06-01T13:30:00+00:00"
        assert [s["symbol"] for s in data["stocks"]] == ["KO", "T"]
        assert data["metadata"]["duration_minutes"] == 60.0
        assert data["metadata"]["elapsed_minutes"] == 90.0
        assert data["metadata"]["requests"]["success_rate"] == 0.75
        assert data["statistics"]["total_records"] == 2

    def test_success_rate_without_requests(self) -> None:
        assert RequestStats().success_rate == 0.0


class TestReportWriter:
    """Tests for writing the report to disk."""

    def test_write(self, report: CollectionReport, temp_dir: Path) -> None:
        path = temp_dir / "out" / "dividends.json"

        written = ReportWriter().write(report, path)

        assert written == path
        assert orjson.loads(path.read_bytes()) == orjson.loads(orjson.dumps(report.to_dict()))
        assert [p.name for p in path.parent.iterdir()] == ["dividends.json"]

    def test_write_is_indented(self, report: CollectionReport, temp_dir: Path) -> None:
        path = ReportWriter().write(report, temp_dir / "dividends.json")

        assert path.read_text().startswith('{\n  "success": true')

    def test_overwrites_previous_report(self, report: CollectionReport, temp_dir: Path) -> None:
        path = temp_dir / "dividends.json"
        path.write_text("old")

        ReportWriter().write(report, path)

        assert orjson.loads(path.read_bytes())["count"] == 2

    def test_unwritable_path(self, report: CollectionReport, temp_dir: Path) -> None:
        blocker = temp_dir / "file"
        blocker.write_text("x")

        with pytest.raises(ReportError) as exc_info:
            ReportWriter().write(report, blocker / "dividends.json")

        assert exc_info.value.context["path"] == str(blocker / "dividends.json")
