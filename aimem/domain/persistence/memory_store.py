import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from aimem.domain.constants import (
    DEFAULT_MEMORY_DIR,
    MEMORY_BACKUP_INFIX,
    MEMORY_FILENAME,
    MEMORY_TEMP_SUFFIX,
    REQUIRED_MEMORY_SECTIONS,
)
from aimem.domain.errors import LedgerCorruptError, LedgerWriteError
from aimem.domain.models.approval_status import ApprovalStatus
from aimem.domain.models.project_memory import (
    CurrentSession,
    GlobalDecision,
    ProjectContext,
    ProjectMemory,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProjectMemoryStore:
    """Handles persistence of the project memory document (the ledger).

    Reads never raise: an unreadable, corrupt or incomplete document is backed
    up and replaced by a fresh (or salvaged) one. Writes go to a temp file that
    is verified before it atomically replaces the ledger.
    """

    def __init__(
        self,
        project_root: Path,
        memory_dir: Path | None = None,
        filename: str = MEMORY_FILENAME,
    ):
        """
        Initialize the memory store.

        Args:
            project_root: Root directory of the governed project
            memory_dir: Memory directory, relative to project_root (default: .ai-memory)
            filename: Ledger file name (default: project-memory.json)
        """
        self.project_root = Path(project_root).resolve()
        memory_dir = memory_dir or DEFAULT_MEMORY_DIR
        self.memory_dir = memory_dir if memory_dir.is_absolute() else self.project_root / memory_dir
        self.memory_file = self.memory_dir / filename

    @property
    def project_name(self) -> str:
        return self.project_root.name

    def exists(self) -> bool:
        return self.memory_file.exists()

    def read_document(self) -> dict[str, Any] | None:
        """
        Read the raw ledger document.

        Returns:
            The parsed mapping, or None if no ledger exists yet

        Raises:
            OSError: If the file exists but cannot be read
            LedgerCorruptError: If the content is not a JSON object
        """
        try:
            raw = self.memory_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LedgerCorruptError(f"Invalid JSON in {self.memory_file}: {e}") from e

        if not isinstance(data, dict):
            raise LedgerCorruptError(f"Ledger root must be an object: {self.memory_file}")

        missing = self._missing_sections(data)
        if missing:
            raise LedgerCorruptError(
                f"Ledger is missing required sections {missing}: {self.memory_file}",
                incomplete=True,
            )

        return data

    def load(self) -> ProjectMemory:
        """
        Load the project memory, recovering from any damage.

        Returns:
            The stored memory, a salvaged one, or a fresh default
        """
        try:
            data = self.read_document()
        except LedgerCorruptError as e:
            if e.incomplete:
                return self._repair_incomplete()
            logger.warning(f"Project memory is corrupt, starting fresh: {e}")
            self._backup()
            return self.create_default()
        except OSError as e:
            logger.error(f"Could not read project memory {self.memory_file}: {e}")
            return self.create_default()

        if data is None:
            return self.create_default()

        try:
            return ProjectMemory.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Project memory failed validation, salvaging valid entries: {e}")
            return self._rebuild(data)

    def save(self, memory: ProjectMemory) -> Path:
        """
        Write the project memory atomically.

        Args:
            memory: The document to persist

        Returns:
            Path to the ledger file

        Raises:
            LedgerWriteError: If the document could not be written and verified
        """
        temp_file = self.memory_file.with_suffix(MEMORY_TEMP_SUFFIX)
        data = memory.to_document()

        try:
            self.memory_dir.mkdir(parents=True, exist_ok=True)

            # Write atomically - write to temp, verify, then rename
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())

            self._verify(temp_file)
            temp_file.replace(self.memory_file)
        except (OSError, LedgerCorruptError) as e:
            self._discard(temp_file)
            raise LedgerWriteError(f"Failed to write project memory {self.memory_file}: {e}") from e

        logger.debug(f"Project memory saved to {self.memory_file}")
        return self.memory_file

    def update(self, mutate: Callable[[ProjectMemory], T]) -> T:
        """Load, apply ``mutate`` in place, save, and return its result.

        Raises:
            LedgerWriteError: If the updated document could not be written
        """
        memory = self.load()
        result = mutate(memory)
        self.save(memory)
        return result

    def create_default(self, task: str = "No active task") -> ProjectMemory:
        return ProjectMemory.create_default(self.project_name, task=task)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _missing_sections(self, data: dict[str, Any]) -> list[str]:
        return [s for s in REQUIRED_MEMORY_SECTIONS if not isinstance(data.get(s), dict)]

    def _verify(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise LedgerCorruptError(f"Written ledger is not valid JSON: {e}") from e
        if not isinstance(data, dict) or self._missing_sections(data):
            raise LedgerCorruptError("Written ledger is missing required sections")

    def _discard(self, temp_file: Path) -> None:
        try:
            temp_file.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove temp ledger {temp_file}: {e}")

    def _backup(self) -> Path | None:
        """Move the current ledger aside under a timestamped name."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.memory_file.with_name(
            f"{self.memory_file.stem}.{MEMORY_BACKUP_INFIX}-{stamp}{self.memory_file.suffix}"
        )
        try:
            self.memory_file.replace(backup)
        except OSError as e:
            logger.error(f"Could not back up project memory {self.memory_file}: {e}")
            return None
        logger.warning(f"Backed up unreadable project memory to {backup}")
        return backup

    def _repair_incomplete(self) -> ProjectMemory:
        # Re-read the raw mapping so valid keys can be carried over.
        try:
            data = json.loads(self.memory_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            data = {}

        logger.warning(f"Project memory is incomplete, rebuilding: {self.memory_file}")
        return self._rebuild(data if isinstance(data, dict) else {})

    def _rebuild(self, data: dict[str, Any]) -> ProjectMemory:
        """Back up the damaged ledger, then persist whatever entries still validate."""
        self._backup()
        memory = self._salvage(data)
        try:
            self.save(memory)
        except LedgerWriteError as e:
            logger.error(f"Could not write rebuilt project memory: {e}")
        return memory

    def _salvage(self, data: dict[str, Any]) -> ProjectMemory:
        memory = self.create_default()

        for key, model, attr in (
            ("projectContext", ProjectContext, "project_context"),
            ("currentSession", CurrentSession, "current_session"),
        ):
            if isinstance(data.get(key), dict):
                try:
                    setattr(memory, attr, model.model_validate(data[key]))
                except ValidationError:
                    logger.warning(f"Dropping unreadable '{key}' section")

        states = data.get("approvalStates")
        if isinstance(states, dict):
            for path, status in states.items():
                try:
                    memory.approval_states[path] = ApprovalStatus.model_validate(status)
                except ValidationError:
                    logger.warning(f"Dropping unreadable approval state for {path}")

        history = data.get("fileHistory")
        if isinstance(history, dict):
            memory.file_history = history

        decisions = data.get("globalDecisions")
        if isinstance(decisions, list):
            for entry in decisions:
                try:
                    memory.global_decisions.append(GlobalDecision.model_validate(entry))
                except ValidationError:
                    logger.warning("Dropping unreadable global decision entry")

        return memory
