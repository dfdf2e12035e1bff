"""Core module exports."""

from queryplane.core.errors import (
    ConfigError,
    ErrorCode,
    QueryPlaneError,
    RefactorError,
    SchemaError,
)
from queryplane.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from queryplane.core.progress import progress, status

__all__ = [
    # Errors
    "ErrorCode",
    "QueryPlaneError",
    "ConfigError",
    "SchemaError",
    "RefactorError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "progress",
    "status",
]
