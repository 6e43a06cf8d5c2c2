"""Governance event types for observer pattern notifications."""

from enum import Enum


class GovernanceEventType(str, Enum):
    """Typed governance events for IDE and agent integration notifications."""

    # Pre-modification checks
    MODIFICATION_CHECKED = "modification_checked"
    MODIFICATION_BLOCKED = "modification_blocked"

    # Approval ledger
    APPROVAL_GRANTED = "approval_granted"
    APPROVALS_INVALIDATED = "approvals_invalidated"

    # Metadata and rules
    METADATA_UPDATED = "metadata_updated"
    RULES_CHANGED = "rules_changed"
