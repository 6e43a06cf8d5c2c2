"""Per-file approval state kept in the project memory ledger."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from aimem.domain.errors import UnknownApprovalSlotError


class ApprovalSlot(str, Enum):
    """The three independent approval dimensions of a file."""

    DEV = "dev"
    CODE_REVIEW = "codeReview"
    QA = "qa"

    @classmethod
    def parse(cls, value: "str | ApprovalSlot") -> "ApprovalSlot":
        """Resolve a slot from its canonical, snake_case, kebab-case or legacy name.

        Accepts e.g. ``"dev"``, ``"code_review"``, ``"code-review"``,
        ``"codeReview"`` and ``"codeReviewApproved"``.

        Raises:
            UnknownApprovalSlotError: If the name does not denote a slot.
        """
        if isinstance(value, ApprovalSlot):
            return value
        if not isinstance(value, str):
            raise UnknownApprovalSlotError(f"Approval slot must be a name, got {value!r}")
        key = value.strip().replace("-", "").replace("_", "").lower()
        if key.endswith("approved"):
            key = key[: -len("approved")]
        for slot in cls:
            if slot.value.lower() == key:
                return slot
        raise UnknownApprovalSlotError(
            f"Unknown approval slot '{value}' (expected one of: {', '.join(s.value for s in cls)})"
        )


# Flat keys written by older ledgers: slot -> (approved, by, date)
_LEGACY_KEYS: dict[ApprovalSlot, tuple[str, str, str]] = {
    ApprovalSlot.DEV: ("devApproved", "devApprovedBy", "devApprovedDate"),
    ApprovalSlot.CODE_REVIEW: ("codeReviewApproved", "codeReviewApprovedBy", "codeReviewDate"),
    ApprovalSlot.QA: ("qaApproved", "qaApprovedBy", "qaApprovedDate"),
}


class SlotApproval(BaseModel):
    """State of one approval slot. An unset slot is simply ``approved=False``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    approved: bool = False
    approved_by: str | None = None
    approved_date: str | None = None


class ApprovalStatus(BaseModel):
    """Approval record for a single file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dev: SlotApproval = Field(default_factory=SlotApproval)
    code_review: SlotApproval = Field(default_factory=SlotApproval)
    qa: SlotApproval = Field(default_factory=SlotApproval)

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_keys(cls, data: Any) -> Any:
        # Older ledgers stored one flat mapping; fold those keys into slots.
        if not isinstance(data, dict):
            return data
        if not any(key in data for keys in _LEGACY_KEYS.values() for key in keys):
            return data

        migrated = {k: v for k, v in data.items() if not any(k in keys for keys in _LEGACY_KEYS.values())}
        for slot, (approved_key, by_key, date_key) in _LEGACY_KEYS.items():
            if slot.value in migrated:
                continue
            if not any(key in data for key in (approved_key, by_key, date_key)):
                continue
            migrated[slot.value] = {
                "approved": data.get(approved_key) is True,
                "approvedBy": data.get(by_key) or None,
                "approvedDate": data.get(date_key) or None,
            }
        return migrated

    def slot(self, slot: ApprovalSlot | str) -> SlotApproval:
        return getattr(self, _SLOT_ATTRS[ApprovalSlot.parse(slot)])

    def is_approved(self, slot: ApprovalSlot | str) -> bool:
        return self.slot(slot).approved

    def with_slot(self, slot: ApprovalSlot | str, value: SlotApproval) -> "ApprovalStatus":
        """Return a copy with one slot replaced; other slots are untouched."""
        return self.model_copy(update={_SLOT_ATTRS[ApprovalSlot.parse(slot)]: value})

    @property
    def any_approved(self) -> bool:
        return self.dev.approved or self.code_review.approved or self.qa.approved


_SLOT_ATTRS: dict[ApprovalSlot, str] = {
    ApprovalSlot.DEV: "dev",
    ApprovalSlot.CODE_REVIEW: "code_review",
    ApprovalSlot.QA: "qa",
}
