"""Session and decision journal kept alongside approvals in project memory."""

import json
import logging
from typing import Any

from aimem.domain.models.project_memory import (
    CurrentSession,
    GlobalDecision,
    ProjectMemory,
    SessionStep,
)
from aimem.domain.persistence.memory_store import ProjectMemoryStore

logger = logging.getLogger(__name__)


class SessionJournal:
    """Records the agent's current task, completed steps and decisions.

    All writes go through the same crash-safe ledger writer as approvals and
    raise LedgerWriteError when the ledger cannot be written.
    """

    def __init__(self, memory_store: ProjectMemoryStore):
        self.memory_store = memory_store

    def get_project_memory(self) -> ProjectMemory:
        return self.memory_store.load()

    def start_session(self, task: str) -> str:
        """Replace the current session with a new one for ``task``."""
        session = CurrentSession(task=task)

        def _apply(memory: ProjectMemory) -> None:
            memory.current_session = session

        self.memory_store.update(_apply)
        logger.info(f"Started new session {session.session_id}: {task}")
        return session.session_id

    def add_session_step(
        self,
        step: str,
        files_modified: list[str] | None = None,
        description: str | None = None,
    ) -> SessionStep:
        entry = SessionStep(step=step, files_modified=list(files_modified or []), description=description)

        def _apply(memory: ProjectMemory) -> None:
            memory.current_session.completed_steps.append(entry)

        self.memory_store.update(_apply)
        logger.info(f"Step completed: {step}")
        return entry

    def add_decision(
        self,
        key: str,
        value: Any,
        reasoning: str,
        *,
        approved_by: str = "system",
        related_files: list[str] | None = None,
    ) -> GlobalDecision:
        """Record a decision in the current session and in the global decision log."""
        decision = GlobalDecision(
            decision=f"{key}: {json.dumps(value, default=str)}",
            reasoning=reasoning,
            approved_by=approved_by,
            related_files=list(related_files or []),
        )

        def _apply(memory: ProjectMemory) -> None:
            memory.current_session.important_decisions[key] = value
            memory.global_decisions.append(decision)

        self.memory_store.update(_apply)
        logger.info(f"Decision recorded: {key} = {value}")
        return decision
