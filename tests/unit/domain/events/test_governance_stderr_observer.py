"""Tests for StderrEventObserver."""

from unittest.mock import patch

from aimem.domain.events.event import GovernanceEvent
from aimem.domain.events.event_types import GovernanceEventType
from aimem.domain.events.stderr_observer import StderrEventObserver


class TestStderrEventObserver:
    def test_emits_event_type_to_stderr(self) -> None:
        observer = StderrEventObserver()
        event = GovernanceEvent(event_type=GovernanceEventType.MODIFICATION_CHECKED)

        with patch("click.echo") as mock_echo:
            observer.on_event(event)

        mock_echo.assert_called_once()
        assert mock_echo.call_args[0][0] == "[EVENT] modification_checked"
        assert mock_echo.call_args[1]["err"] is True

    def test_full_event_format(self) -> None:
        observer = StderrEventObserver()
        event = GovernanceEvent(
            event_type=GovernanceEventType.APPROVAL_GRANTED,
            file_path="src/payment.js",
            slot="dev",
            actor="bob@example.com",
            metadata={"z": 1, "a": "x"},
        )

        with patch("click.echo") as mock_echo:
            observer.on_event(event)

        assert mock_echo.call_args[0][0] == (
            "[EVENT] approval_granted path=src/payment.js slot=dev by=bob@example.com a=x z=1"
        )
