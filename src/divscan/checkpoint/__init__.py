"""
Checkpoint package: persisted progress for resumable runs.
"""

from divscan.checkpoint.store import CheckpointStore

__all__ = ["CheckpointStore"]
