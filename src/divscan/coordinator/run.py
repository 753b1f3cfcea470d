"""
Run driver: wires settings into a full collection.

listing -> orchestrated collection -> report write -> checkpoint clear.

A listing failure is fatal and happens before anything is checkpointed.
The checkpoint is cleared only after the report is safely on disk.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import httpx

from divscan.checkpoint.store import CheckpointStore
from divscan.config import Settings
from divscan.coordinator.orchestrator import BatchOrchestrator, ProgressCallback
from divscan.coordinator.pipeline import EntityPipeline
from divscan.data.nasdaq_client import NasdaqClient
from divscan.logging import get_logger, log_context
from divscan.net.executor import SleepFn
from divscan.net.throttle import ThrottleController
from divscan.reports.writer import ReportWriter
from divscan.types import CollectionReport, generate_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class CollectionResult:
    """A finished run and where its report went."""

    report: CollectionReport
    output_path: Path


async def collect(
    settings: Settings,
    concurrency: int | None = None,
    limit: int | None = None,
    fresh: bool = False,
    output: Path | None = None,
    on_progress: ProgressCallback | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> CollectionResult:
    """Run one collection end to end.

    Args:
        settings: Application settings.
        concurrency: Overrides CONCURRENCY.
        limit: Only process the first N listed entities.
        fresh: Discard any existing checkpoint first.
        output: Report path (defaults to settings.report_path).
        on_progress: Progress callback forwarded to the orchestrator.
        transport: httpx transport override (tests use MockTransport).
        sleep: Async sleep used for pacing and backoff.

    Raises:
        ListingError: If the entity listing cannot be fetched.
        CheckpointError: If the checkpoint cannot be written.
        ReportError: If the report cannot be written.
    """
    settings.ensure_directories()
    run_id = generate_id("run")
    output_path = Path(output) if output is not None else settings.report_path

    store = CheckpointStore.from_settings(settings)
    if fresh:
        store.clear()
        logger.info("Discarded existing checkpoint")

    throttle = ThrottleController.from_settings(settings)
    source = NasdaqClient.create(settings, throttle, sleep=sleep, transport=transport)

    try:
        with log_context(run_id=run_id, phase="listing"):
            entities = await source.list_entities()
        if limit is not None:
            entities = entities[:limit]

        pipeline = EntityPipeline(source, fallback=settings.SUPPLEMENT_FALLBACK)
        orchestrator = BatchOrchestrator.from_settings(
            settings,
            pipeline,
            store,
            throttle,
            on_progress=on_progress,
            run_id=run_id,
        )
        report = await orchestrator.run(
            entities, concurrency=concurrency or settings.CONCURRENCY
        )

        with log_context(run_id=run_id, phase="report"):
            ReportWriter().write(report, output_path)
            store.clear()
    finally:
        await source.close()

    return CollectionResult(report=report, output_path=output_path)
