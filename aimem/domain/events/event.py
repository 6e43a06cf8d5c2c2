"""Governance event payload model."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from aimem.domain.events.event_types import GovernanceEventType


class GovernanceEvent(BaseModel):
    """Immutable event payload for governance notifications."""

    model_config = {"frozen": True}

    event_type: GovernanceEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    file_path: str | None = None
    slot: str | None = None
    actor: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
