"""Fan-out of gate events to subscribed observers."""

import logging
from collections import defaultdict

from aimem.domain.events.event import GovernanceEvent
from aimem.domain.events.event_types import GovernanceEventType
from aimem.domain.events.observer import GovernanceObserver

logger = logging.getLogger(__name__)


class GovernanceEventEmitter:
    """Delivers each GovernanceEvent to global observers, then to those subscribed to its type.

    A failing observer is logged and skipped, so a notification never changes
    the outcome of a check or a ledger write.
    """

    def __init__(self) -> None:
        self._observers: dict[GovernanceEventType, list[GovernanceObserver]] = defaultdict(
            list
        )
        self._global_observers: list[GovernanceObserver] = []

    def subscribe(
        self,
        observer: GovernanceObserver,
        event_types: list[GovernanceEventType] | None = None,
    ) -> None:
        """Register ``observer`` for the given event types (every type when None)."""
        if event_types is None:
            self._global_observers.append(observer)
        else:
            for event_type in event_types:
                self._observers[event_type].append(observer)

    def unsubscribe(self, observer: GovernanceObserver) -> None:
        """Remove observer from all subscriptions."""
        if observer in self._global_observers:
            self._global_observers.remove(observer)
        for observers in self._observers.values():
            if observer in observers:
                observers.remove(observer)

    def emit(self, event: GovernanceEvent) -> None:
        """Dispatch event to all relevant observers."""
        for observer in self._global_observers:
            self._safe_notify(observer, event)
        for observer in self._observers.get(event.event_type, []):
            self._safe_notify(observer, event)

    def _safe_notify(self, observer: GovernanceObserver, event: GovernanceEvent) -> None:
        """Call the observer and log its failure instead of propagating it."""
        try:
            observer.on_event(event)
        except Exception as e:
            logger.warning(f"Observer {observer} failed on {event.event_type}: {e}")
