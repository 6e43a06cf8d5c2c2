from typing import Any, Literal

from pydantic import BaseModel, Field


class BaseOutput(BaseModel):
    schema_version: int = 1
    command: Literal[
        "check",
        "actions",
        "approve",
        "status",
        "invalidate",
        "metadata",
        "update",
        "rules",
        "scan",
        "session",
    ]
    exit_code: int
    error: str | None = None


class CheckOutput(BaseOutput):
    command: Literal["check"] = "check"
    file: str
    allowed: bool = False
    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ActionsOutput(BaseOutput):
    command: Literal["actions"] = "actions"
    file: str
    actions: list[str] = Field(default_factory=list)


class ApproveOutput(BaseOutput):
    command: Literal["approve"] = "approve"
    file: str
    slot: str | None = None
    approved_by: str | None = None
    recorded: bool = False


class StatusOutput(BaseOutput):
    command: Literal["status"] = "status"
    file: str
    # None when the ledger holds no entry for the file.
    approvals: dict[str, Any] | None = None


class InvalidateOutput(BaseOutput):
    command: Literal["invalidate"] = "invalidate"
    file: str
    reason: str | None = None
    invalidated: bool = False


class MetadataOutput(BaseOutput):
    command: Literal["metadata"] = "metadata"
    file: str
    has_metadata: bool = False
    metadata: dict[str, Any] | None = None


class UpdateOutput(BaseOutput):
    command: Literal["update"] = "update"
    file: str
    fields: list[str] = Field(default_factory=list)
    updated: bool = False


class RuleSummary(BaseModel):
    id: str
    name: str
    condition: str
    action: str
    priority: int
    enabled: bool
    blocking: bool


class RulesOutput(BaseOutput):
    command: Literal["rules"] = "rules"
    rules: list[RuleSummary] = Field(default_factory=list)


class ScanOutput(BaseOutput):
    command: Literal["scan"] = "scan"
    pattern: str | None = None
    files: list[str] = Field(default_factory=list)


class SessionOutput(BaseOutput):
    command: Literal["session"] = "session"
    action: Literal["start", "step", "decide"]
    session_id: str | None = None
    task: str | None = None
    step: str | None = None
    decision_id: str | None = None
