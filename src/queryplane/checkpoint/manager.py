"""Checkpoint/resume state for batch optimization runs.

The state is saved after every processed repository so an interrupted run
can pick up where it stopped. The file is removed once a full run completes.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from queryplane.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_CHECKPOINT_FILE = ".query-optimizer-checkpoint.json"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class CheckpointState(BaseModel):
    """On-disk checkpoint document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    start_time: str | None = Field(default=None, alias="startTime")
    last_update: str | None = Field(default=None, alias="lastUpdate")
    processed: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("processed", "processedRepositories"),
        serialization_alias="processed",
    )
    suggested_single_column_indexes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("suggestedSingleColumnIndexes", "suggestedNewIndexes"),
        serialization_alias="suggestedSingleColumnIndexes",
    )
    suggested_multi_column_indexes: list[str] = Field(
        default_factory=list, alias="suggestedMultiColumnIndexes"
    )
    modified_files: list[str] = Field(default_factory=list, alias="modifiedFiles")


class CheckpointManager:
    """Tracks processed repositories and accumulated suggestions.

    ``load()`` must be called before use; until then the manager behaves as
    a fresh session. Single writer, no locking.
    """

    def __init__(self, path: Path | str = DEFAULT_CHECKPOINT_FILE) -> None:
        self.path = Path(path)
        self._state = CheckpointState()
        self._loaded: bool | None = None

    def load(self) -> bool:
        """Restore the saved state. Returns False when starting fresh.

        Never raises; a missing or unreadable file resets to an empty state.
        Calling it again returns the first answer without re-reading the file.
        """
        if self._loaded is not None:
            return self._loaded

        if not self.path.exists():
            log.debug("checkpoint_not_found", path=str(self.path))
            self._reset()
            self._loaded = False
            return False

        try:
            raw = self.path.read_text(encoding="utf-8")
            state = CheckpointState.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            log.warning("checkpoint_unreadable", path=str(self.path), error=str(e))
            self._reset()
            self._loaded = False
            return False

        self._state = state
        self._state.processed = list(dict.fromkeys(state.processed))
        self._loaded = True
        log.info("checkpoint_loaded", path=str(self.path), processed=len(state.processed))
        return True

    def save(self) -> None:
        """Write the state atomically (temp file in the same directory, then replace)."""
        self.get_session_id()
        if self._state.start_time is None:
            self._state.start_time = _now()
        self._state.last_update = _now()
        payload = self._state.model_dump_json(by_alias=True, indent=2)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        log.debug("checkpoint_saved", processed=len(self._state.processed))

    def clear(self) -> None:
        """Delete the checkpoint file and start a fresh, unloaded session."""
        if self.path.exists():
            self.path.unlink()
            log.info("checkpoint_cleared", path=str(self.path))
        self._state = CheckpointState()
        self._loaded = None

    def _reset(self) -> None:
        self._state = CheckpointState(session_id=str(uuid.uuid4()), start_time=_now())

    # Session

    def get_session_id(self) -> str:
        if self._state.session_id is None:
            self._state.session_id = str(uuid.uuid4())
        return self._state.session_id

    def has_checkpoint(self) -> bool:
        return self.path.exists()

    # Processed repositories

    def is_processed(self, fqn: str) -> bool:
        return fqn in self._state.processed

    def mark_processed(self, fqn: str) -> None:
        if fqn not in self._state.processed:
            self._state.processed.append(fqn)

    def get_processed(self) -> set[str]:
        return set(self._state.processed)

    def get_processed_count(self) -> int:
        return len(self._state.processed)

    # Accumulated results

    def set_index_suggestions(self, single: Iterable[str], multi: Iterable[str]) -> None:
        """Store index suggestions (``table|column`` and ``table|c1,c2``), order kept."""
        self._state.suggested_single_column_indexes = list(dict.fromkeys(single))
        self._state.suggested_multi_column_indexes = list(dict.fromkeys(multi))

    def get_suggested_single_column_indexes(self) -> list[str]:
        return list(self._state.suggested_single_column_indexes)

    def get_suggested_multi_column_indexes(self) -> list[str]:
        return list(self._state.suggested_multi_column_indexes)

    def set_modified_files(self, files: Iterable[str]) -> None:
        self._state.modified_files = sorted(set(files))

    def get_modified_files(self) -> set[str]:
        return set(self._state.modified_files)
