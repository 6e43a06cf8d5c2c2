"""Embedded file metadata models.

An ``AIMetadata`` record is derived from a file's ``@ai-metadata`` block every
time it is needed; it is never persisted on its own.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aimem.domain.models.approval_status import ApprovalStatus


class Stability(str, Enum):
    STABLE = "stable"
    EXPERIMENTAL = "experimental"
    DEPRECATED = "deprecated"


class EditPermission(str, Enum):
    FULL = "full"
    ADD_ONLY = "add-only"
    READ_ONLY = "read-only"
    METHOD_SPECIFIC = "method-specific"


class MethodPermission(str, Enum):
    READ_ONLY = "read-only"
    ALLOW = "allow"
    RESTRICTED = "restricted"


class BreakingChangesRisk(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AIMetadata(BaseModel):
    """Structured view of a file's ``@ai-metadata`` block.

    Every field is optional: a block that exists but declares nothing is an
    empty record, which is distinct from a file without a block (``None``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    class_name: str | None = Field(default=None, alias="class")
    description: str | None = None
    last_update: str | None = None
    last_editor: str | None = None
    changelog: str | None = None
    stability: Stability | None = None
    edit_permissions: EditPermission | None = None
    method_permissions: dict[str, MethodPermission] | None = None
    dependencies: list[str] | None = None
    tests: list[str] | None = None
    breaking_changes_risk: BreakingChangesRisk | None = None
    review_required: bool = False
    ai_context: str | None = None
    approvals: ApprovalStatus | None = None

    @property
    def is_read_only(self) -> bool:
        return self.edit_permissions == EditPermission.READ_ONLY

    @property
    def is_high_risk(self) -> bool:
        return self.breaking_changes_risk == BreakingChangesRisk.HIGH

    @property
    def is_deprecated(self) -> bool:
        return self.stability == Stability.DEPRECATED

    @property
    def has_tests(self) -> bool:
        return bool(self.tests)
