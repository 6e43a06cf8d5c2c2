import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from aimem.domain.models.approval_status import ApprovalSlot, ApprovalStatus, SlotApproval
from aimem.domain.models.project_memory import ProjectMemory
from aimem.domain.persistence.memory_store import ProjectMemoryStore

logger = logging.getLogger(__name__)


class ApprovalStore:
    """Per-file approval state, kept in the project memory ledger.

    Entries are keyed by the file path relative to the project root, with
    forward slashes. Every mutation rewrites the whole ledger.
    """

    def __init__(self, memory_store: ProjectMemoryStore):
        self.memory_store = memory_store

    @property
    def project_root(self) -> Path:
        return self.memory_store.project_root

    def relative_key(self, path: str | Path) -> str:
        """Ledger key for ``path``; relative paths are taken from the project root."""
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        return Path(os.path.relpath(p, self.project_root)).as_posix()

    def get(self, path: str | Path) -> ApprovalStatus | None:
        """
        Get the approval record for a file.

        Returns:
            The record, or None if no approval activity was ever recorded
        """
        memory = self.memory_store.load()
        return memory.approval_states.get(self.relative_key(path))

    def all(self) -> dict[str, ApprovalStatus]:
        return dict(self.memory_store.load().approval_states)

    def set(
        self,
        path: str | Path,
        slot: ApprovalSlot | str,
        approved_by: str,
        *,
        now: datetime | None = None,
    ) -> ApprovalStatus:
        """
        Mark one approval slot as approved; other slots are untouched.

        Raises:
            UnknownApprovalSlotError: If slot is not dev / codeReview / qa
            LedgerWriteError: If the ledger could not be written
        """
        resolved = ApprovalSlot.parse(slot)
        key = self.relative_key(path)
        approved_date = (now or datetime.now(timezone.utc)).isoformat()

        def _apply(memory: ProjectMemory) -> ApprovalStatus:
            current = memory.approval_states.get(key) or ApprovalStatus()
            updated = current.with_slot(
                resolved,
                SlotApproval(approved=True, approved_by=approved_by, approved_date=approved_date),
            )
            memory.approval_states[key] = updated
            return updated

        status = self.memory_store.update(_apply)
        logger.info(f"{resolved.value} approval set for {key} by {approved_by}")
        return status

    def invalidate_all(self, path: str | Path, reason: str = "file modified") -> ApprovalStatus | None:
        """
        Reset all three slots of a file to unapproved.

        A file without a ledger entry is left without one.

        Returns:
            The reset record, or None if the file had no entry

        Raises:
            LedgerWriteError: If the ledger could not be written
        """
        key = self.relative_key(path)
        memory = self.memory_store.load()
        if key not in memory.approval_states:
            logger.debug(f"No approvals recorded for {key}; nothing to invalidate")
            return None

        memory.approval_states[key] = ApprovalStatus()
        self.memory_store.save(memory)
        logger.warning(f"Approvals invalidated for {key}: {reason}")
        return memory.approval_states[key]
