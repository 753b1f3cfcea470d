"""
Coordinator package: per-entity pipeline, batch orchestration and the run driver.
"""

from divscan.coordinator.orchestrator import BatchOrchestrator
from divscan.coordinator.pipeline import (
    CONTINUE,
    Continue,
    EntityPipeline,
    PrimaryDividendStage,
    Stage,
    Stop,
    SupplementaryStage,
)
from divscan.coordinator.run import CollectionResult, collect

__all__ = [
    "BatchOrchestrator",
    "CONTINUE",
    "CollectionResult",
    "Continue",
    "EntityPipeline",
    "PrimaryDividendStage",
    "Stage",
    "Stop",
    "SupplementaryStage",
    "collect",
]
