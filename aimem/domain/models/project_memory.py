"""Project memory document: the on-disk ledger holding approval state.

The JSON layout uses camelCase keys. ``projectContext`` and ``currentSession``
are mandatory; a document without them is considered incomplete.
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aimem.domain.models.approval_status import ApprovalStatus


def generate_session_id() -> str:
    return f"session-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def generate_decision_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class ProjectContext(_CamelModel):
    name: str
    architecture: str = "unknown"
    tech_stack: list[str] = Field(default_factory=list)
    coding_standards: str | None = "./docs/coding-standards.md"
    main_branch: str | None = "main"


class SessionStep(_CamelModel):
    step: str
    completed: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    files_modified: list[str] = Field(default_factory=list)
    description: str | None = None
    time_spent: int | None = 0


class CurrentSession(_CamelModel):
    session_id: str = Field(default_factory=generate_session_id)
    task: str = "No active task"
    started: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_steps: list[SessionStep] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    important_decisions: dict[str, Any] = Field(default_factory=dict)
    blockers: list[str] = Field(default_factory=list)


class GlobalDecision(_CamelModel):
    id: str = Field(default_factory=generate_decision_id)
    decision: str
    reasoning: str
    impact: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    approved_by: str = "system"
    related_files: list[str] = Field(default_factory=list)


class ProjectMemory(_CamelModel):
    """Complete project memory document."""

    project_context: ProjectContext
    current_session: CurrentSession = Field(default_factory=CurrentSession)
    file_history: dict[str, Any] = Field(default_factory=dict)
    global_decisions: list[GlobalDecision] = Field(default_factory=list)
    approval_states: dict[str, ApprovalStatus] = Field(default_factory=dict)

    @classmethod
    def create_default(cls, project_name: str, task: str = "No active task") -> "ProjectMemory":
        return cls(
            project_context=ProjectContext(name=project_name),
            current_session=CurrentSession(task=task),
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible on-disk layout."""
        return self.model_dump(mode="json", by_alias=True)
