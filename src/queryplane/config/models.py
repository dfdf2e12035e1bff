"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (QUERYPLANE__SECTION__KEY)
3. Repo YAML (.queryplane/config.yaml)
4. Global YAML (~/.config/queryplane/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    QUERYPLANE__<SECTION>__<KEY>=<VALUE>

Examples:
    QUERYPLANE__LOGGING__LEVEL=DEBUG
    QUERYPLANE__INDEXES__PATH=/abs/path/indexes.yaml
    QUERYPLANE__CHECKPOINT__PATH=.query-optimizer-checkpoint.json
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        QUERYPLANE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every extracted condition.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class IndexMetadataConfig(BaseModel):
    """Index metadata source.

    Env vars:
        QUERYPLANE__INDEXES__PATH: YAML/JSON file describing table indexes
        QUERYPLANE__INDEXES__DATABASE_URL: SQLAlchemy URL to introspect instead
    """

    path: str | None = Field(
        default=None,
        description="Index metadata file (YAML or JSON). Relative paths resolve against the repo root.",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL of a database to introspect for indexes. "
        "Used when no metadata file is configured.",
    )


class CardinalityConfig(BaseModel):
    """User-defined cardinality overrides.

    Env vars:
        QUERYPLANE__CARDINALITY__LOW: JSON list of column names forced LOW
        QUERYPLANE__CARDINALITY__HIGH: JSON list of column names forced HIGH
    """

    low: list[str] = Field(default_factory=list, description="Columns always treated as LOW.")
    high: list[str] = Field(
        default_factory=list,
        description="Columns always treated as HIGH. Wins over 'low' when listed in both.",
    )

    @field_validator("low", "high")
    @classmethod
    def lower_case(cls, v: list[str]) -> list[str]:
        return [c.strip().lower() for c in v if c.strip()]


class CheckpointConfig(BaseModel):
    """Checkpoint persistence for resumable batch runs.

    Env vars:
        QUERYPLANE__CHECKPOINT__PATH: Checkpoint file location
    """

    path: str = Field(
        default=".query-optimizer-checkpoint.json",
        description="Checkpoint JSON file. Relative paths resolve against the repo root.",
    )
    enabled: bool = Field(default=True, description="Disable to always start fresh.")


class RefactorConfig(BaseModel):
    """Source rewriting options.

    Env vars:
        QUERYPLANE__REFACTOR__TEXT_BLOCK_WIDTH: Wrap width for long queries
    """

    text_block_width: int = Field(
        default=80,
        description="Queries longer than this are written as Java text blocks, "
        "wrapped at whitespace near this column.",
    )
    text_block_indent: str = Field(default="        ", description="Indent for text block lines.")
    source_roots: list[str] = Field(
        default_factory=lambda: ["src/main/java", "src/test/java"],
        description="Directories (relative to the repo root) scanned for Java sources.",
    )

    @field_validator("text_block_width")
    @classmethod
    def validate_width(cls, v: int) -> int:
        if v < 20:
            raise ValueError(f"text_block_width must be >= 20, got {v}")
        return v


class StatsConfig(BaseModel):
    """Per-repository statistics CSV.

    Env vars:
        QUERYPLANE__STATS__ENABLED: Write statistics rows
        QUERYPLANE__STATS__PATH: CSV file location
    """

    enabled: bool = True
    path: str = Field(default="query-optimization-stats.csv")


class QueryPlaneConfig(BaseModel):
    """Root configuration model."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    indexes: IndexMetadataConfig = Field(default_factory=IndexMetadataConfig)
    cardinality: CardinalityConfig = Field(default_factory=CardinalityConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    refactor: RefactorConfig = Field(default_factory=RefactorConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
