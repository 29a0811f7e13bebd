"""Local record of reconciled entities between runs.

The state file maps each (kind, name) handle of a manifest to the remote
identifier and the last known state of that entity. It holds declared
secrets in clear text because an update needs the previous password, so
it is written with owner-only permissions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .config import MAX_STATE_FILE_SIZE_BYTES
from .errors import WekaOperatorError
from .kinds import EntityKind

logger = logging.getLogger(__name__)

STATE_FILE_VERSION = 1
STATE_FILE_MODE = 0o600


class StateFileError(WekaOperatorError):
    """Raised when the state file cannot be read or written."""

    pass


class StateEntry(BaseModel):
    kind: EntityKind
    name: str
    identifier: str
    state: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[EntityKind, str]:
        return (self.kind, self.name)


class StateFile(BaseModel):
    version: int = STATE_FILE_VERSION
    resources: list[StateEntry] = Field(default_factory=list)


class StateStore:
    """In-memory view of a state file with explicit load and save.

    Args:
        path: State file location. A missing file is an empty state.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._entries: dict[tuple[EntityKind, str], StateEntry] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StateStore:
        """Read the state file.

        Raises:
            StateFileError: The file is too large, unreadable or malformed.
        """
        self._entries = {}
        if not self._path.exists():
            logger.info("No state file, starting empty", extra={"path": str(self._path)})
            return self

        try:
            file_size = self._path.stat().st_size
        except OSError as e:
            raise StateFileError(f"Failed to stat state file {self._path}: {e}") from e

        if file_size > MAX_STATE_FILE_SIZE_BYTES:
            raise StateFileError(
                f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: {self._path}"
            )

        try:
            content = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateFileError(f"Failed to read state file {self._path}: {e}") from e

        try:
            state_file = StateFile.model_validate_json(content)
        except ValidationError as e:
            raise StateFileError(f"Invalid state file {self._path}: {e.error_count()} errors") from e

        if state_file.version != STATE_FILE_VERSION:
            raise StateFileError(
                f"Unsupported state file version {state_file.version} in {self._path}"
            )

        for entry in state_file.resources:
            self._entries[entry.key] = entry
        return self

    def save(self) -> None:
        """Write the state file atomically.

        Raises:
            StateFileError: The file cannot be written.
        """
        state_file = StateFile(resources=list(self._entries.values()))
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, STATE_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state_file.model_dump_json(indent=2))
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StateFileError(f"Failed to write state file {self._path}: {e}") from e

        logger.info(
            "Saved state",
            extra={"path": str(self._path), "resources": len(self._entries)},
        )

    def get(self, kind: EntityKind, name: str) -> StateEntry | None:
        return self._entries.get((kind, name))

    def put(self, kind: EntityKind, name: str, identifier: str, state: dict[str, Any]) -> None:
        self._entries[(kind, name)] = StateEntry(
            kind=kind, name=name, identifier=identifier, state=state
        )

    def remove(self, kind: EntityKind, name: str) -> None:
        self._entries.pop((kind, name), None)

    def entries(self) -> list[StateEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
