"""Prints gate events to stderr for `aimem --events`."""

import click

from aimem.domain.events.event import GovernanceEvent


class StderrEventObserver:
    """Writes one `[EVENT] <type> key=value ...` line per event."""

    def on_event(self, event: GovernanceEvent) -> None:
        parts = [f"[EVENT] {event.event_type.value}"]
        if event.file_path:
            parts.append(f"path={event.file_path}")
        if event.slot:
            parts.append(f"slot={event.slot}")
        if event.actor:
            parts.append(f"by={event.actor}")
        for key, value in sorted(event.metadata.items()):
            parts.append(f"{key}={value}")
        click.echo(" ".join(parts), err=True)
