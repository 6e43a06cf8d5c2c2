"""Domain models for the AI memory guard."""

from .approval_status import ApprovalSlot, ApprovalStatus, SlotApproval
from .metadata import (
    AIMetadata,
    BreakingChangesRisk,
    EditPermission,
    MethodPermission,
    Stability,
)
from .rule import Rule
from .decision import Decision
from .project_memory import (
    CurrentSession,
    GlobalDecision,
    ProjectContext,
    ProjectMemory,
    SessionStep,
)


__all__ = [
    "ApprovalSlot",
    "ApprovalStatus",
    "SlotApproval",
    "AIMetadata",
    "BreakingChangesRisk",
    "EditPermission",
    "MethodPermission",
    "Stability",
    "Rule",
    "Decision",
    "CurrentSession",
    "GlobalDecision",
    "ProjectContext",
    "ProjectMemory",
    "SessionStep",
]
