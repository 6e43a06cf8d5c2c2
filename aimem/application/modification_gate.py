"""ModificationGate - decides whether an agent may modify a file.

Composes the metadata extractor, the approval ledger and the rule evaluator.
This is the surface callers (CLI, protocol servers) talk to, so nothing here
raises for I/O or parse problems:

- an unreadable file is treated as a file without metadata (fail-open),
- a damaged ledger is recovered by the memory store,
- a ledger write failure on a mutation is logged and reported as ``False``.

Caller mistakes (unknown approval slot, duplicate rule id) still raise
ValueError subclasses.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from aimem.application.config_loader import ConfigLoadError
from aimem.application.metadata_scanner import MetadataScanner
from aimem.domain.errors import DuplicateRuleError, LedgerWriteError
from aimem.domain.events import GovernanceEvent, GovernanceEventEmitter, GovernanceEventType
from aimem.domain.metadata.extractor import MetadataExtractor
from aimem.domain.models.approval_status import ApprovalSlot, ApprovalStatus
from aimem.domain.models.decision import Decision
from aimem.domain.models.metadata import AIMetadata
from aimem.domain.models.rule import Rule
from aimem.domain.persistence.approval_store import ApprovalStore
from aimem.domain.persistence.memory_store import ProjectMemoryStore
from aimem.domain.rules.evaluator import RuleEvaluator

logger = logging.getLogger(__name__)

ReadText = Callable[[Path], str]
WriteText = Callable[[Path, str], None]


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write_text(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


class ModificationGate:
    """Pre- and post-modification checks for files of one project."""

    def __init__(
        self,
        project_root: Path,
        *,
        memory_store: ProjectMemoryStore | None = None,
        extractor: MetadataExtractor | None = None,
        evaluator: RuleEvaluator | None = None,
        scanner: MetadataScanner | None = None,
        emitter: GovernanceEventEmitter | None = None,
        scan_pattern: str | None = None,
        read_text: ReadText = _read_text,
        write_text: WriteText = _write_text,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.memory_store = memory_store or ProjectMemoryStore(self.project_root)
        self.approval_store = ApprovalStore(self.memory_store)
        self.extractor = extractor or MetadataExtractor()
        self.evaluator = evaluator or RuleEvaluator()
        self.scanner = scanner or MetadataScanner(self.project_root, self.extractor)
        self.emitter = emitter or GovernanceEventEmitter()
        self.scan_pattern = scan_pattern
        self._read_text = read_text
        self._write_text = write_text

    @classmethod
    def from_config(
        cls,
        project_root: Path,
        config: Mapping[str, Any],
        *,
        emitter: GovernanceEventEmitter | None = None,
    ) -> "ModificationGate":
        """Build a gate from a merged config (see ``load_config``).

        Raises:
            ConfigLoadError: If a configured rule is invalid or duplicated
        """
        root = Path(project_root).resolve()
        memory_store = ProjectMemoryStore(
            root,
            memory_dir=Path(config["memory_dir"]),
            filename=config["memory_file"],
        )

        evaluator = RuleEvaluator()
        rules_cfg = config.get("rules", {})
        for rule_id in rules_cfg.get("disabled", []):
            if not evaluator.disable_rule(str(rule_id)):
                logger.warning(f"Config disables unknown rule '{rule_id}'")
        for raw_rule in rules_cfg.get("custom", []):
            try:
                evaluator.add_rule(raw_rule)
            except (ValidationError, DuplicateRuleError, TypeError) as e:
                raise ConfigLoadError(f"Invalid custom rule {raw_rule!r}: {e}", cause=e) from e

        extractor = MetadataExtractor()
        scan_cfg = config.get("scan", {})
        scanner = MetadataScanner(root, extractor, exclude=scan_cfg.get("exclude", ()))

        return cls(
            root,
            memory_store=memory_store,
            extractor=extractor,
            evaluator=evaluator,
            scanner=scanner,
            emitter=emitter,
            scan_pattern=scan_cfg.get("pattern"),
        )

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve_path(self, path: str | Path) -> Path:
        """Absolute path for ``path``; relative paths are taken from the project root."""
        p = Path(path)
        return p if p.is_absolute() else self.project_root / p

    def relative_key(self, path: str | Path) -> str:
        return self.approval_store.relative_key(path)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def extract_metadata(self, path: str | Path) -> AIMetadata | None:
        """Parse the file's metadata block; unreadable files yield None."""
        resolved = self.resolve_path(path)
        try:
            text = self._read_text(resolved)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {resolved}, treating as no metadata: {e}")
            return None
        return self.extractor.extract(text)

    def check_before_modification(self, path: str | Path) -> Decision:
        key = self.relative_key(path)
        metadata = self.extract_metadata(path)
        approvals = self.get_approval_status(path)
        decision = self.evaluator.evaluate(metadata, approvals, key)

        event_type = (
            GovernanceEventType.MODIFICATION_CHECKED
            if decision.allowed
            else GovernanceEventType.MODIFICATION_BLOCKED
        )
        self._emit(
            event_type,
            file_path=key,
            metadata={"reasons": len(decision.reasons), "warnings": len(decision.warnings)},
        )
        return decision

    def get_modification_actions(self, path: str | Path) -> list[str]:
        """Follow-up actions required after ``path`` was modified.

        Metadata is re-read so the post-edit block is used.
        """
        return self.evaluator.actions_after(self.extract_metadata(path))

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def get_approval_status(self, path: str | Path) -> ApprovalStatus | None:
        return self.approval_store.get(path)

    def set_approval(self, path: str | Path, slot: ApprovalSlot | str, approved_by: str) -> bool:
        """
        Record an approval for one slot.

        Returns:
            True if the ledger was updated, False if it could not be written

        Raises:
            UnknownApprovalSlotError: If slot is not dev / codeReview / qa
        """
        resolved = ApprovalSlot.parse(slot)
        try:
            self.approval_store.set(path, resolved, approved_by)
        except LedgerWriteError as e:
            logger.error(f"Could not record {resolved.value} approval for {path}: {e}")
            return False
        self._emit(
            GovernanceEventType.APPROVAL_GRANTED,
            file_path=self.relative_key(path),
            slot=resolved.value,
            actor=approved_by,
        )
        return True

    def invalidate_approvals(self, path: str | Path, reason: str = "file modified") -> bool:
        """
        Reset every approval slot of a file.

        Returns:
            True unless the ledger could not be written
        """
        try:
            status = self.approval_store.invalidate_all(path, reason)
        except LedgerWriteError as e:
            logger.error(f"Could not invalidate approvals for {path}: {e}")
            return False
        if status is not None:
            self._emit(
                GovernanceEventType.APPROVALS_INVALIDATED,
                file_path=self.relative_key(path),
                metadata={"reason": reason},
            )
        return True

    # ------------------------------------------------------------------
    # Metadata updates
    # ------------------------------------------------------------------

    def update_metadata(self, path: str | Path, updates: Mapping[str, Any]) -> bool:
        """
        Write ``updates`` into the file's metadata block.

        Returns:
            True if the file now reflects the updates, False on I/O failure
        """
        resolved = self.resolve_path(path)
        try:
            text = self._read_text(resolved)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Could not read {resolved} for metadata update: {e}")
            return False

        updated = self.extractor.apply_updates(text, updates)
        if updated == text:
            return True

        try:
            self._write_text(resolved, updated)
        except OSError as e:
            logger.error(f"Could not write metadata update to {resolved}: {e}")
            return False

        logger.info(f"Updated metadata in {resolved}")
        self._emit(
            GovernanceEventType.METADATA_UPDATED,
            file_path=self.relative_key(path),
            metadata={"fields": ",".join(sorted(updates))},
        )
        return True

    def find_files_with_metadata(self, pattern: str | None = None) -> list[Path]:
        return self.scanner.find_files(pattern or self.scan_pattern)

    # ------------------------------------------------------------------
    # Rule administration
    # ------------------------------------------------------------------

    def add_rule(self, rule: Rule | Mapping[str, Any]) -> Rule:
        added = self.evaluator.add_rule(rule)
        self._emit(GovernanceEventType.RULES_CHANGED, metadata={"added": added.id})
        return added

    def remove_rule(self, rule_id: str) -> bool:
        return self._rules_changed(self.evaluator.remove_rule(rule_id), "removed", rule_id)

    def enable_rule(self, rule_id: str) -> bool:
        return self._rules_changed(self.evaluator.enable_rule(rule_id), "enabled", rule_id)

    def disable_rule(self, rule_id: str) -> bool:
        return self._rules_changed(self.evaluator.disable_rule(rule_id), "disabled", rule_id)

    def list_rules(self) -> list[Rule]:
        return self.evaluator.list_rules()

    def _rules_changed(self, changed: bool, verb: str, rule_id: str) -> bool:
        if changed:
            self._emit(GovernanceEventType.RULES_CHANGED, metadata={verb: rule_id})
        else:
            logger.warning(f"No rule with id '{rule_id}'")
        return changed

    def _emit(self, event_type: GovernanceEventType, **fields: Any) -> None:
        self.emitter.emit(GovernanceEvent(event_type=event_type, **fields))
