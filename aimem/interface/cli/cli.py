import json
import logging
from pathlib import Path
from typing import Any

import click
from pydantic import BaseModel

from aimem.application.config_loader import load_config
from aimem.application.modification_gate import ModificationGate
from aimem.application.project_root import detect_project_root
from aimem.application.session_journal import SessionJournal
from aimem.domain.events import GovernanceEventEmitter
from aimem.domain.models.approval_status import ApprovalSlot
from aimem.interface.cli.output_models import (
    ActionsOutput,
    ApproveOutput,
    CheckOutput,
    InvalidateOutput,
    MetadataOutput,
    RuleSummary,
    RulesOutput,
    ScanOutput,
    SessionOutput,
    StatusOutput,
    UpdateOutput,
)

logger = logging.getLogger(__name__)

# Patched by tests where the CLI reads it.
DEFAULT_USER_HOME: Path | None = None

# Exit code of `check` when modification is blocked.
EXIT_BLOCKED = 2


def _json_emit(model: BaseModel) -> None:
    # Single-line JSON, omit None fields (e.g., StatusOutput.approvals without a ledger entry).
    click.echo(model.model_dump_json(exclude_none=True), nl=True)


def _get_json_mode(ctx: click.Context) -> bool:
    obj = ctx.obj or {}
    return bool(obj.get("json", False))


def _format_error(e: Exception) -> str:
    """Format exception into user-friendly message."""
    if isinstance(e, FileNotFoundError):
        return f"File not found: {e.filename}" if e.filename else str(e)
    if isinstance(e, KeyError):
        return f"Missing required field: {e.args[0]}"
    return str(e)


def _fail(ctx: click.Context, output: BaseModel, e: Exception) -> None:
    """Report ``e`` as a JSON error output or a ClickException."""
    message = _format_error(e)
    if _get_json_mode(ctx):
        _json_emit(output.model_copy(update={"exit_code": 1, "error": message}))
        raise click.exceptions.Exit(1)
    raise click.ClickException(message) from e


def _get_gate(ctx: click.Context) -> ModificationGate:
    """Build the gate once per invocation from the merged config."""
    obj = ctx.ensure_object(dict)
    if obj.get("gate") is None:
        root: Path = obj["project_root"]
        cfg = load_config(project_root=root, user_home=DEFAULT_USER_HOME or Path.home())

        emitter = GovernanceEventEmitter()
        if obj.get("events"):
            from aimem.domain.events.stderr_observer import StderrEventObserver

            emitter.subscribe(StderrEventObserver())

        obj["gate"] = ModificationGate.from_config(root, cfg, emitter=emitter)
    return obj["gate"]


def _parse_value(raw: str) -> Any:
    """JSON values (true, 3, ["a"]) are decoded; anything else stays a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


@click.group(help="Modification governance for AI agents.")
@click.option("--json", "json_output", is_flag=True, help="Emit machine-readable JSON on stdout.")
@click.option(
    "--project-root",
    "project_root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: detected from the current directory).",
)
@click.option("--events", is_flag=True, help="Emit governance events to stderr.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    project_root: Path | None,
    events: bool,
    verbose: bool,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["json"] = bool(json_output)
    ctx.obj["events"] = bool(events)
    ctx.obj["project_root"] = (project_root or detect_project_root()).resolve()


@cli.command("check")
@click.argument("path", type=str)
@click.pass_context
def check_cmd(ctx: click.Context, path: str) -> None:
    """Decide whether PATH may be modified. Exits 2 when blocked."""
    try:
        gate = _get_gate(ctx)
        key = gate.relative_key(path)
        decision = gate.check_before_modification(path)
        exit_code = 0 if decision.allowed else EXIT_BLOCKED

        if _get_json_mode(ctx):
            _json_emit(
                CheckOutput(
                    exit_code=exit_code,
                    file=key,
                    allowed=decision.allowed,
                    reasons=decision.reasons,
                    warnings=decision.warnings,
                )
            )
            raise click.exceptions.Exit(exit_code)

        click.echo(f"allowed={'true' if decision.allowed else 'false'}")
        for reason in decision.reasons:
            click.echo(f"reason: {reason}")
        for warning in decision.warnings:
            click.echo(f"warning: {warning}")
        if exit_code:
            raise click.exceptions.Exit(exit_code)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, CheckOutput(exit_code=1, file=path), e)


@cli.command("actions")
@click.argument("path", type=str)
@click.pass_context
def actions_cmd(ctx: click.Context, path: str) -> None:
    """List the actions required after PATH was modified."""
    try:
        gate = _get_gate(ctx)
        actions = gate.get_modification_actions(path)

        if _get_json_mode(ctx):
            _json_emit(ActionsOutput(exit_code=0, file=gate.relative_key(path), actions=actions))
            raise click.exceptions.Exit(0)

        for action in actions:
            click.echo(action)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, ActionsOutput(exit_code=1, file=path), e)


@cli.command("approve")
@click.argument("path", type=str)
@click.option(
    "--slot",
    required=True,
    type=click.Choice([s.value for s in ApprovalSlot]),
    help="Approval slot to grant.",
)
@click.option("--by", "approved_by", required=True, type=str, help="Who approves.")
@click.pass_context
def approve_cmd(ctx: click.Context, path: str, slot: str, approved_by: str) -> None:
    """Record an approval for PATH."""
    try:
        gate = _get_gate(ctx)
        recorded = gate.set_approval(path, slot, approved_by)
        exit_code = 0 if recorded else 1

        if _get_json_mode(ctx):
            _json_emit(
                ApproveOutput(
                    exit_code=exit_code,
                    file=gate.relative_key(path),
                    slot=slot,
                    approved_by=approved_by,
                    recorded=recorded,
                    error=None if recorded else "Could not write the approval ledger",
                )
            )
            raise click.exceptions.Exit(exit_code)

        if not recorded:
            raise click.ClickException("Could not write the approval ledger")
        click.echo(f"approved {slot} by {approved_by}")

    except (click.exceptions.Exit, click.ClickException):
        raise
    except Exception as e:
        _fail(ctx, ApproveOutput(exit_code=1, file=path, slot=slot), e)


@cli.command("status")
@click.argument("path", type=str)
@click.pass_context
def status_cmd(ctx: click.Context, path: str) -> None:
    """Show the recorded approvals of PATH."""
    try:
        gate = _get_gate(ctx)
        status = gate.get_approval_status(path)

        if _get_json_mode(ctx):
            _json_emit(
                StatusOutput(
                    exit_code=0,
                    file=gate.relative_key(path),
                    approvals=status.model_dump(mode="json", by_alias=True) if status else None,
                )
            )
            raise click.exceptions.Exit(0)

        if status is None:
            click.echo("no approvals recorded")
            return
        for slot in ApprovalSlot:
            entry = status.slot(slot)
            line = f"{slot.value}={'true' if entry.approved else 'false'}"
            if entry.approved:
                line += f" by={entry.approved_by} date={entry.approved_date}"
            click.echo(line)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, StatusOutput(exit_code=1, file=path), e)


@cli.command("invalidate")
@click.argument("path", type=str)
@click.option("--reason", default="file modified", show_default=True, type=str)
@click.pass_context
def invalidate_cmd(ctx: click.Context, path: str, reason: str) -> None:
    """Reset every approval of PATH."""
    try:
        gate = _get_gate(ctx)
        invalidated = gate.invalidate_approvals(path, reason)
        exit_code = 0 if invalidated else 1

        if _get_json_mode(ctx):
            _json_emit(
                InvalidateOutput(
                    exit_code=exit_code,
                    file=gate.relative_key(path),
                    reason=reason,
                    invalidated=invalidated,
                    error=None if invalidated else "Could not write the approval ledger",
                )
            )
            raise click.exceptions.Exit(exit_code)

        if not invalidated:
            raise click.ClickException("Could not write the approval ledger")
        click.echo(f"invalidated approvals ({reason})")

    except (click.exceptions.Exit, click.ClickException):
        raise
    except Exception as e:
        _fail(ctx, InvalidateOutput(exit_code=1, file=path, reason=reason), e)


@cli.command("metadata")
@click.argument("path", type=str)
@click.pass_context
def metadata_cmd(ctx: click.Context, path: str) -> None:
    """Print the metadata block of PATH."""
    try:
        gate = _get_gate(ctx)
        metadata = gate.extract_metadata(path)
        payload = (
            metadata.model_dump(mode="json", by_alias=True, exclude_none=True)
            if metadata is not None
            else None
        )

        if _get_json_mode(ctx):
            _json_emit(
                MetadataOutput(
                    exit_code=0,
                    file=gate.relative_key(path),
                    has_metadata=metadata is not None,
                    metadata=payload,
                )
            )
            raise click.exceptions.Exit(0)

        if payload is None:
            click.echo("no metadata")
            return
        for key, value in payload.items():
            click.echo(f"{key}={json.dumps(value) if isinstance(value, (dict, list)) else value}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, MetadataOutput(exit_code=1, file=path), e)


@cli.command("update")
@click.argument("path", type=str)
@click.option(
    "--set",
    "assignments",
    multiple=True,
    required=True,
    help="Field assignment KEY=VALUE; VALUE may be JSON. Repeatable.",
)
@click.pass_context
def update_cmd(ctx: click.Context, path: str, assignments: tuple[str, ...]) -> None:
    """Write fields into the metadata block of PATH."""
    try:
        updates: dict[str, Any] = {}
        for assignment in assignments:
            key, sep, raw = assignment.partition("=")
            if not sep or not key.strip():
                raise click.BadParameter(f"expected KEY=VALUE, got {assignment!r}", param_hint="--set")
            updates[key.strip()] = _parse_value(raw.strip())

        gate = _get_gate(ctx)
        updated = gate.update_metadata(path, updates)
        exit_code = 0 if updated else 1

        if _get_json_mode(ctx):
            _json_emit(
                UpdateOutput(
                    exit_code=exit_code,
                    file=gate.relative_key(path),
                    fields=list(updates),
                    updated=updated,
                    error=None if updated else "Could not update metadata",
                )
            )
            raise click.exceptions.Exit(exit_code)

        if not updated:
            raise click.ClickException(f"Could not update metadata in {path}")
        click.echo(f"updated {', '.join(updates)}")

    except (click.exceptions.Exit, click.ClickException):
        raise
    except Exception as e:
        _fail(ctx, UpdateOutput(exit_code=1, file=path), e)


@cli.command("rules")
@click.pass_context
def rules_cmd(ctx: click.Context) -> None:
    """List the configured rules in evaluation order."""
    try:
        gate = _get_gate(ctx)
        threshold = gate.evaluator.blocking_threshold
        summaries = [
            RuleSummary(
                id=rule.id,
                name=rule.name,
                condition=rule.condition,
                action=rule.action,
                priority=rule.priority,
                enabled=rule.enabled,
                blocking=rule.priority > threshold,
            )
            for rule in gate.list_rules()
        ]

        if _get_json_mode(ctx):
            _json_emit(RulesOutput(exit_code=0, rules=summaries))
            raise click.exceptions.Exit(0)

        for s in summaries:
            state = "enabled" if s.enabled else "disabled"
            kind = "blocking" if s.blocking else "warning"
            click.echo(f"{s.id} priority={s.priority} {kind} {state}: {s.condition}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, RulesOutput(exit_code=1), e)


@cli.command("scan")
@click.argument("pattern", required=False, type=str)
@click.pass_context
def scan_cmd(ctx: click.Context, pattern: str | None) -> None:
    """List files carrying a metadata block."""
    try:
        gate = _get_gate(ctx)
        files = [gate.relative_key(p) for p in gate.find_files_with_metadata(pattern)]

        if _get_json_mode(ctx):
            _json_emit(ScanOutput(exit_code=0, pattern=pattern or gate.scan_pattern, files=files))
            raise click.exceptions.Exit(0)

        for f in files:
            click.echo(f)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, ScanOutput(exit_code=1, pattern=pattern), e)


@cli.group("session")
def session_grp() -> None:
    """Track the agent's current task, steps and decisions."""


def _journal(ctx: click.Context) -> SessionJournal:
    return SessionJournal(_get_gate(ctx).memory_store)


@session_grp.command("start")
@click.argument("task", type=str)
@click.pass_context
def session_start_cmd(ctx: click.Context, task: str) -> None:
    """Begin a new session for TASK."""
    try:
        session_id = _journal(ctx).start_session(task)

        if _get_json_mode(ctx):
            _json_emit(SessionOutput(exit_code=0, action="start", session_id=session_id, task=task))
            raise click.exceptions.Exit(0)

        click.echo(session_id)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, SessionOutput(exit_code=1, action="start", task=task), e)


@session_grp.command("step")
@click.argument("step", type=str)
@click.option("--file", "files", multiple=True, type=str, help="Modified file. Repeatable.")
@click.option("--description", type=str, default=None)
@click.pass_context
def session_step_cmd(
    ctx: click.Context,
    step: str,
    files: tuple[str, ...],
    description: str | None,
) -> None:
    """Record a completed STEP in the current session."""
    try:
        journal = _journal(ctx)
        journal.add_session_step(step, list(files), description)
        session_id = journal.get_project_memory().current_session.session_id

        if _get_json_mode(ctx):
            _json_emit(SessionOutput(exit_code=0, action="step", session_id=session_id, step=step))
            raise click.exceptions.Exit(0)

        click.echo(f"recorded step: {step}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, SessionOutput(exit_code=1, action="step", step=step), e)


@session_grp.command("decide")
@click.argument("key", type=str)
@click.argument("value", type=str)
@click.option("--reasoning", required=True, type=str)
@click.option("--by", "approved_by", default="system", show_default=True, type=str)
@click.option("--file", "files", multiple=True, type=str, help="Related file. Repeatable.")
@click.pass_context
def session_decide_cmd(
    ctx: click.Context,
    key: str,
    value: str,
    reasoning: str,
    approved_by: str,
    files: tuple[str, ...],
) -> None:
    """Record decision KEY=VALUE with its reasoning."""
    try:
        decision = _journal(ctx).add_decision(
            key,
            _parse_value(value),
            reasoning,
            approved_by=approved_by,
            related_files=list(files),
        )

        if _get_json_mode(ctx):
            _json_emit(SessionOutput(exit_code=0, action="decide", decision_id=decision.id))
            raise click.exceptions.Exit(0)

        click.echo(decision.id)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        _fail(ctx, SessionOutput(exit_code=1, action="decide"), e)


if __name__ == "__main__":
    cli()
