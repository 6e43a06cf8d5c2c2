"""Interface implemented by consumers of gate events."""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from aimem.domain.events.event import GovernanceEvent


class GovernanceObserver(Protocol):
    """Anything with an ``on_event`` method can watch the gate."""

    def on_event(self, event: "GovernanceEvent") -> None:
        """React to a check, approval, invalidation, metadata update or rule change.

        Runs synchronously inside the gate call that emitted the event.
        """
        ...
