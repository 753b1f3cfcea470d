"""
Report writer.

The report is written once, at the end of a run, as indented JSON. It goes
through a temp file and a rename so a reader of the output path sees
either the previous report or the new one.
"""

from __future__ import annotations

from pathlib import Path

import orjson

from divscan.exceptions import ReportError
from divscan.logging import get_logger
from divscan.types import CollectionReport
from divscan.utils.files import write_bytes_atomic

logger = get_logger(__name__)


class ReportWriter:
    """Serializes a CollectionReport to disk."""

    def render(self, report: CollectionReport) -> bytes:
        return orjson.dumps(report.to_dict(), option=orjson.OPT_INDENT_2)

    def write(self, report: CollectionReport, path: Path) -> Path:
        """Write the report to ``path``.

        Returns:
            The path written.

        Raises:
            ReportError: If the file cannot be written.
        """
        path = Path(path)
        try:
            write_bytes_atomic(path, self.render(report))
        except OSError as e:
            raise ReportError(
                "Failed to write report",
                context={"path": str(path), "error": str(e)},
            ) from e

        logger.info("Report written", path=str(path), records=len(report.records))
        return path
