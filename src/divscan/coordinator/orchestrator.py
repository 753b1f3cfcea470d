"""
Batch orchestrator.

Drives every pending entity through the EntityPipeline in listing order,
in groups of ``concurrency``. A group settles fully before the next one
starts, and results are merged into the checkpoint state only at that
join point, so a checkpoint never holds a half-processed group.

Per-entity states: PENDING -> IN_FLIGHT -> RECORDED | SKIPPED | FAILED.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Callable, Sequence

from divscan.analysis.aggregation import summarize
from divscan.checkpoint.store import CheckpointStore
from divscan.config import Settings
from divscan.coordinator.pipeline import EntityPipeline
from divscan.logging import get_logger, log_context
from divscan.net.throttle import ThrottleController
from divscan.types import (
    CheckpointState,
    CollectionReport,
    Entity,
    EntityRecord,
    EntityResult,
    EntityStatus,
    ReportMetadata,
    generate_id,
    utc_now,
)

logger = get_logger(__name__)

# (processed, total, recorded)
ProgressCallback = Callable[[int, int, int], None]


def _has_growth(record: EntityRecord) -> bool:
    return record.get("growth_rate") is not None


class BatchOrchestrator:
    """Runs a resumable collection over a fixed entity list."""

    def __init__(
        self,
        pipeline: EntityPipeline,
        store: CheckpointStore,
        throttle: ThrottleController,
        checkpoint_every: int = 25,
        top_n: int = 20,
        filter_missing_growth: bool = False,
        on_progress: ProgressCallback | None = None,
        run_id: str | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            pipeline: Per-entity pipeline.
            store: Checkpoint store used for resume and periodic saves.
            throttle: Shared throttle; its stats become the run's request tallies.
            checkpoint_every: Processed entities between checkpoint saves.
            top_n: Size of the top-yield ranking.
            filter_missing_growth: Drop records without growth from the report list.
            on_progress: Called after every group settles.
            run_id: Run identifier (generated when omitted).
            now: Clock for report timestamps.
        """
        if checkpoint_every < 1:
            raise ValueError("checkpoint_every must be >= 1")
        self.pipeline = pipeline
        self.store = store
        self.throttle = throttle
        self.checkpoint_every = checkpoint_every
        self.top_n = top_n
        self.filter_missing_growth = filter_missing_growth
        self.on_progress = on_progress
        self.run_id = run_id or generate_id("run")
        self._now = now
        self.statuses: dict[str, EntityStatus] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        pipeline: EntityPipeline,
        store: CheckpointStore,
        throttle: ThrottleController,
        **kwargs: object,
    ) -> BatchOrchestrator:
        return cls(
            pipeline,
            store,
            throttle,
            checkpoint_every=settings.CHECKPOINT_EVERY,
            top_n=settings.TOP_N,
            filter_missing_growth=settings.FILTER_MISSING_GROWTH,
            **kwargs,  # type: ignore[arg-type]
        )

    async def _process(self, entity: Entity) -> EntityResult:
        with log_context(symbol=entity.symbol):
            try:
                return await self.pipeline.process(entity)
            except Exception as e:
                logger.error(
                    "Unexpected error processing entity",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return EntityResult(
                    entity.symbol,
                    EntityStatus.FAILED,
                    reason=f"unexpected error: {type(e).__name__}",
                )

    def _save(self, state: CheckpointState, carried: float, segment_start: datetime) -> None:
        state.tallies.active_seconds = carried + (self._now() - segment_start).total_seconds()
        self.store.save(state)

    def _merge(self, state: CheckpointState, result: EntityResult) -> None:
        state.processed.add(result.symbol)
        state.tallies.processed += 1
        self.statuses[result.symbol] = result.status

        if result.status is EntityStatus.RECORDED and result.record is not None:
            state.records.append(result.record)
        elif result.status is EntityStatus.SKIPPED:
            state.tallies.skipped += 1
        else:
            state.tallies.failed += 1
            logger.warning("Entity failed", symbol=result.symbol, reason=result.reason)

    async def run(self, entities: Sequence[Entity], concurrency: int = 3) -> CollectionReport:
        """Collect records for every entity not already checkpointed.

        Args:
            entities: Listing in processing order. Duplicate symbols are ignored.
            concurrency: Entities processed at once; 1 means strictly sequential.

        Returns:
            The finished report.

        Raises:
            CheckpointError: If a checkpoint save fails.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        with log_context(run_id=self.run_id, phase="collect"):
            segment_start = self._now()
            state = self.store.load()
            resumed = len(state.processed)
            carried = state.tallies.active_seconds

            # Request tallies continue from the interrupted run.
            self.throttle.stats.merge(state.tallies.requests)
            state.tallies.requests = self.throttle.stats

            unique: list[Entity] = []
            seen: set[str] = set()
            for entity in entities:
                if entity.symbol in seen:
                    continue
                seen.add(entity.symbol)
                unique.append(entity)

            pending = [e for e in unique if e.symbol not in state.processed]
            for entity in pending:
                self.statuses[entity.symbol] = EntityStatus.PENDING

            logger.info(
                "Starting collection",
                total=len(unique),
                pending=len(pending),
                resumed=resumed,
                concurrency=concurrency,
            )

            since_save = 0
            for start in range(0, len(pending), concurrency):
                group = pending[start : start + concurrency]
                for entity in group:
                    self.statuses[entity.symbol] = EntityStatus.IN_FLIGHT

                results = await asyncio.gather(*(self._process(e) for e in group))
                for result in results:
                    self._merge(state, result)

                since_save += len(group)
                if since_save >= self.checkpoint_every:
                    self._save(state, carried, segment_start)
                    since_save = 0

                if self.on_progress is not None:
                    self.on_progress(len(state.processed), len(unique), len(state.records))

            self._save(state, carried, segment_start)
            completed_at = self._now()

            records = tuple(state.records)
            statistics = summarize(records, top_n=self.top_n)
            if self.filter_missing_growth:
                records = tuple(r for r in records if _has_growth(r))

            metadata = ReportMetadata(
                run_id=self.run_id,
                started_at=state.started_at,
                completed_at=completed_at,
                total_scanned=len(unique),
                processed=state.tallies.processed,
                recorded=len(state.records),
                skipped=state.tallies.skipped,
                failed=state.tallies.failed,
                resumed_entities=resumed,
                requests=copy.copy(self.throttle.stats),
                active_seconds=carried + (completed_at - segment_start).total_seconds(),
            )

            logger.info(
                "Collection complete",
                recorded=metadata.recorded,
                skipped=metadata.skipped,
                failed=metadata.failed,
                success_rate=round(metadata.requests.success_rate, 4),
            )
            return CollectionReport(metadata=metadata, statistics=statistics, records=records)
