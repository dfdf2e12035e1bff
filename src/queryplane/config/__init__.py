"""Config module exports."""

from queryplane.config.loader import QueryPlaneSettings, load_config, resolve_repo_path
from queryplane.config.models import (
    CardinalityConfig,
    CheckpointConfig,
    IndexMetadataConfig,
    LoggingConfig,
    QueryPlaneConfig,
    RefactorConfig,
)

__all__ = [
    "load_config",
    "resolve_repo_path",
    "QueryPlaneConfig",
    "QueryPlaneSettings",
    "LoggingConfig",
    "IndexMetadataConfig",
    "CardinalityConfig",
    "CheckpointConfig",
    "RefactorConfig",
]
