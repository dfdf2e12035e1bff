"""Resumable run state."""

from queryplane.checkpoint.manager import (
    DEFAULT_CHECKPOINT_FILE,
    CheckpointManager,
    CheckpointState,
)

__all__ = ["DEFAULT_CHECKPOINT_FILE", "CheckpointManager", "CheckpointState"]
