"""Tests for GovernanceEventEmitter."""

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from aimem.domain.events.emitter import GovernanceEventEmitter
from aimem.domain.events.event import GovernanceEvent
from aimem.domain.events.event_types import GovernanceEventType


def _make_event(event_type: GovernanceEventType) -> GovernanceEvent:
    """Helper to create a test event."""
    return GovernanceEvent(event_type=event_type, file_path="src/a.js")


class TestGovernanceEventEmitter:
    """Tests for GovernanceEventEmitter."""

    def test_subscribe_global_receives_all_events(self) -> None:
        emitter = GovernanceEventEmitter()
        observer = MagicMock()
        emitter.subscribe(observer)

        events = [
            _make_event(GovernanceEventType.MODIFICATION_CHECKED),
            _make_event(GovernanceEventType.APPROVAL_GRANTED),
            _make_event(GovernanceEventType.RULES_CHANGED),
        ]
        for event in events:
            emitter.emit(event)

        calls = [call[0][0] for call in observer.on_event.call_args_list]
        assert calls == events

    def test_subscribe_specific_receives_only_matching_events(self) -> None:
        emitter = GovernanceEventEmitter()
        observer = MagicMock()
        emitter.subscribe(observer, event_types=[GovernanceEventType.MODIFICATION_BLOCKED])

        blocked = _make_event(GovernanceEventType.MODIFICATION_BLOCKED)
        emitter.emit(_make_event(GovernanceEventType.MODIFICATION_CHECKED))
        emitter.emit(blocked)

        observer.on_event.assert_called_once_with(blocked)

    def test_unsubscribe_removes_observer(self) -> None:
        emitter = GovernanceEventEmitter()
        observer = MagicMock()
        emitter.subscribe(observer)
        emitter.subscribe(observer, event_types=[GovernanceEventType.METADATA_UPDATED])

        emitter.unsubscribe(observer)
        emitter.emit(_make_event(GovernanceEventType.METADATA_UPDATED))

        observer.on_event.assert_not_called()

    def test_unsubscribe_nonexistent_observer_is_safe(self) -> None:
        GovernanceEventEmitter().unsubscribe(MagicMock())  # Should not raise

    def test_emit_continues_if_observer_raises(self) -> None:
        emitter = GovernanceEventEmitter()
        failing_observer = MagicMock()
        failing_observer.on_event.side_effect = ValueError("Test error")
        successful_observer = MagicMock()
        emitter.subscribe(failing_observer)
        emitter.subscribe(successful_observer)

        event = _make_event(GovernanceEventType.APPROVALS_INVALIDATED)
        emitter.emit(event)  # Should not raise

        failing_observer.on_event.assert_called_once_with(event)
        successful_observer.on_event.assert_called_once_with(event)


def test_event_is_immutable() -> None:
    event = _make_event(GovernanceEventType.APPROVAL_GRANTED)

    with pytest.raises(ValidationError):
        event.actor = "mallory"


def test_event_defaults() -> None:
    event = GovernanceEvent(event_type=GovernanceEventType.RULES_CHANGED)

    assert event.timestamp.tzinfo is not None
    assert event.file_path is None
    assert event.metadata == {}
