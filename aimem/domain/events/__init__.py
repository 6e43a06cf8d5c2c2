"""Notifications about modification checks, approvals, metadata edits and rule changes.

The gate emits a GovernanceEvent after each of these. Observers such as the
CLI stderr printer subscribe through GovernanceEventEmitter.
"""

from aimem.domain.events.event_types import GovernanceEventType
from aimem.domain.events.event import GovernanceEvent
from aimem.domain.events.observer import GovernanceObserver
from aimem.domain.events.emitter import GovernanceEventEmitter
from aimem.domain.events.stderr_observer import StderrEventObserver

__all__ = [
    "GovernanceEventType",
    "GovernanceEvent",
    "GovernanceObserver",
    "GovernanceEventEmitter",
    "StderrEventObserver",
]
