"""
Checkpoint store for resumable collection runs.

Progress is persisted as two whole JSON documents:

- records.json: the partial record list
- progress.json: processed symbols, tallies and timestamps

save() writes records first, then progress, each through a temp file and
os.replace(). A crash between the two leaves records for entities that
progress does not yet claim; load() drops those, so the entities are
re-processed. The reverse (progress claiming entities whose records were
never written) cannot happen.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import orjson

from divscan.config import Settings
from divscan.exceptions import CheckpointError
from divscan.logging import get_logger
from divscan.types import CheckpointState, EntityRecord, RunTallies, utc_now
from divscan.utils.files import write_bytes_atomic

logger = get_logger(__name__)

FORMAT_VERSION = 1
PROGRESS_FILE = "progress.json"
RECORDS_FILE = "records.json"


class CheckpointStore:
    """Persists and restores CheckpointState."""

    def __init__(
        self,
        directory: Path | str,
        staleness_seconds: float = 2 * 3600.0,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            directory: Directory holding the checkpoint documents.
            staleness_seconds: Checkpoints older than this are ignored.
            now: Clock used for stamping and staleness checks.
        """
        self.directory = Path(directory)
        self.staleness_seconds = staleness_seconds
        self._now = now

    @classmethod
    def from_settings(cls, settings: Settings) -> CheckpointStore:
        return cls(settings.checkpoint_dir, staleness_seconds=settings.staleness_seconds)

    @property
    def progress_path(self) -> Path:
        return self.directory / PROGRESS_FILE

    @property
    def records_path(self) -> Path:
        return self.directory / RECORDS_FILE

    def exists(self) -> bool:
        return self.progress_path.exists()

    # ==================== Writing ====================

    def _write_atomic(self, path: Path, data: dict[str, Any]) -> None:
        try:
            write_bytes_atomic(path, orjson.dumps(data, option=orjson.OPT_INDENT_2))
        except OSError as e:
            raise CheckpointError(
                "Failed to write checkpoint document",
                context={"path": str(path), "error": str(e)},
            ) from e

    def save(self, state: CheckpointState) -> None:
        """Persist the state. Safe to call repeatedly.

        Raises:
            CheckpointError: If a document cannot be written.
        """
        saved_at = self._now()
        records = [r.to_dict() for r in state.records if r.symbol in state.processed]

        self._write_atomic(
            self.records_path,
            {
                "version": FORMAT_VERSION,
                "saved_at": saved_at.isoformat(),
                "records": records,
            },
        )
        self._write_atomic(
            self.progress_path,
            {
                "version": FORMAT_VERSION,
                "saved_at": saved_at.isoformat(),
                "started_at": state.started_at.isoformat(),
                "processed": sorted(state.processed),
                "tallies": state.tallies.to_dict(),
            },
        )
        state.saved_at = saved_at
        logger.debug(
            "Checkpoint saved",
            processed=len(state.processed),
            records=len(records),
        )

    # ==================== Reading ====================

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            data = orjson.loads(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning("Unreadable checkpoint document", path=str(path), error=str(e))
            return None
        if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
            logger.warning("Unsupported checkpoint document", path=str(path))
            return None
        return data

    def _age_seconds(self, saved_at: datetime) -> float:
        return (self._now() - saved_at).total_seconds()

    def load(self) -> CheckpointState:
        """Restore the last saved state, or an empty one.

        An empty state is returned when nothing was saved, when a document
        is unreadable, or when the checkpoint is older than the staleness
        window.
        """
        progress = self._read(self.progress_path)
        if progress is None:
            return CheckpointState.empty()

        records_doc = self._read(self.records_path)
        if records_doc is None:
            logger.warning("Checkpoint records missing, starting over")
            return CheckpointState.empty()

        try:
            saved_at = datetime.fromisoformat(progress["saved_at"])
            started_at = datetime.fromisoformat(progress["started_at"])
            processed = {str(s) for s in progress["processed"]}
            tallies = RunTallies.from_dict(progress.get("tallies") or {})
            raw_records = records_doc.get("records") or []
            all_records = [EntityRecord.from_dict(r) for r in raw_records]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed checkpoint, starting over", error=str(e))
            return CheckpointState.empty()

        age = self._age_seconds(saved_at)
        if age > self.staleness_seconds:
            logger.info(
                "Ignoring stale checkpoint",
                age_hours=round(age / 3600.0, 2),
                limit_hours=round(self.staleness_seconds / 3600.0, 2),
            )
            return CheckpointState.empty()

        records: list[EntityRecord] = []
        seen: set[str] = set()
        for record in all_records:
            if record.symbol not in processed or record.symbol in seen:
                continue
            seen.add(record.symbol)
            records.append(record)

        dropped = len(all_records) - len(records)
        if dropped:
            logger.info("Dropped records not covered by progress", count=dropped)

        logger.info(
            "Checkpoint loaded",
            processed=len(processed),
            records=len(records),
            age_minutes=round(age / 60.0, 1),
        )
        return CheckpointState(
            processed=processed,
            records=records,
            tallies=tallies,
            started_at=started_at,
            saved_at=saved_at,
        )

    def describe(self) -> dict[str, Any] | None:
        """Summary of the stored checkpoint for display, or None."""
        progress = self._read(self.progress_path)
        if progress is None:
            return None
        try:
            saved_at = datetime.fromisoformat(progress["saved_at"])
        except (KeyError, TypeError, ValueError):
            return None
        records_doc = self._read(self.records_path) or {}
        age = self._age_seconds(saved_at)
        return {
            "saved_at": saved_at.isoformat(),
            "started_at": progress.get("started_at"),
            "age_hours": round(age / 3600.0, 2),
            "stale": age > self.staleness_seconds,
            "processed": len(progress.get("processed") or []),
            "records": len(records_doc.get("records") or []),
        }

    # ==================== Removal ====================

    def clear(self) -> None:
        """Delete the checkpoint. Safe when nothing is stored.

        Raises:
            CheckpointError: If a document cannot be removed.
        """
        try:
            self.progress_path.unlink(missing_ok=True)
            self.records_path.unlink(missing_ok=True)
            if self.directory.exists():
                for leftover in self.directory.glob(".*.tmp"):
                    leftover.unlink(missing_ok=True)
        except OSError as e:
            raise CheckpointError(
                "Failed to clear checkpoint",
                context={"path": str(self.directory), "error": str(e)},
            ) from e
        logger.debug("Checkpoint cleared", path=str(self.directory))
