"""Tests for ProjectMemoryStore reads, atomic writes and recovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aimem.domain.errors import LedgerCorruptError, LedgerWriteError
from aimem.domain.models.approval_status import ApprovalStatus, SlotApproval
from aimem.domain.persistence.memory_store import ProjectMemoryStore


def _ledger(project_root: Path) -> Path:
    return project_root / ".ai-memory" / "project-memory.json"


def _backups(project_root: Path) -> list[Path]:
    return sorted((project_root / ".ai-memory").glob("project-memory.backup-*.json"))


def test_load_without_ledger_returns_default(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)

    memory = store.load()

    assert memory.project_context.name == "project"
    assert memory.current_session.task == "No active task"
    assert memory.approval_states == {}
    assert not store.exists()


def test_save_writes_camel_case_document(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)
    memory = store.create_default()
    memory.approval_states["src/a.js"] = ApprovalStatus(dev=SlotApproval(approved=True, approved_by="bob"))

    path = store.save(memory)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) >= {"projectContext", "currentSession", "fileHistory", "globalDecisions", "approvalStates"}
    assert data["approvalStates"]["src/a.js"]["dev"]["approvedBy"] == "bob"
    assert data["currentSession"]["sessionId"].startswith("session-")
    assert not path.with_suffix(".json.tmp").exists()


def test_save_then_load_round_trips(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)
    memory = store.create_default(task="Refactor parser")
    memory.approval_states["a.py"] = ApprovalStatus(qa=SlotApproval(approved=True))
    store.save(memory)

    loaded = ProjectMemoryStore(project_root).load()

    assert loaded.current_session.task == "Refactor parser"
    assert loaded.current_session.session_id == memory.current_session.session_id
    assert loaded.approval_states["a.py"].qa.approved is True


def test_unknown_sections_are_preserved(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)
    doc = store.create_default().to_document()
    doc["teamNotes"] = {"owner": "platform"}
    _ledger(project_root).parent.mkdir(parents=True)
    _ledger(project_root).write_text(json.dumps(doc), encoding="utf-8")

    store.save(store.load())

    data = json.loads(_ledger(project_root).read_text(encoding="utf-8"))
    assert data["teamNotes"] == {"owner": "platform"}


def test_corrupt_ledger_is_backed_up_and_replaced(project_root: Path) -> None:
    ledger = _ledger(project_root)
    ledger.parent.mkdir(parents=True)
    ledger.write_text("{ not json", encoding="utf-8")

    memory = ProjectMemoryStore(project_root).load()

    assert memory.approval_states == {}
    backups = _backups(project_root)
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{ not json"
    assert not ledger.exists()


def test_non_object_ledger_is_corrupt(project_root: Path) -> None:
    ledger = _ledger(project_root)
    ledger.parent.mkdir(parents=True)
    ledger.write_text("[1, 2, 3]", encoding="utf-8")
    store = ProjectMemoryStore(project_root)

    with pytest.raises(LedgerCorruptError) as exc_info:
        store.read_document()
    assert exc_info.value.incomplete is False

    store.load()
    assert len(_backups(project_root)) == 1


def test_incomplete_ledger_is_salvaged(project_root: Path) -> None:
    ledger = _ledger(project_root)
    ledger.parent.mkdir(parents=True)
    ledger.write_text(
        json.dumps(
            {
                "projectContext": {"name": "legacy", "architecture": "hexagonal"},
                "approvalStates": {"src/a.js": {"devApproved": True, "devApprovedBy": "bob"}},
                "globalDecisions": [{"decision": "use tabs", "reasoning": "consistency"}, "garbage"],
            }
        ),
        encoding="utf-8",
    )
    store = ProjectMemoryStore(project_root)

    with pytest.raises(LedgerCorruptError) as exc_info:
        store.read_document()
    assert exc_info.value.incomplete is True

    memory = store.load()

    assert memory.project_context.name == "legacy"
    assert memory.project_context.architecture == "hexagonal"
    assert memory.approval_states["src/a.js"].dev.approved_by == "bob"
    assert [d.decision for d in memory.global_decisions] == ["use tabs"]
    assert len(_backups(project_root)) == 1

    rebuilt = json.loads(ledger.read_text(encoding="utf-8"))
    assert "currentSession" in rebuilt
    assert rebuilt["approvalStates"]["src/a.js"]["dev"]["approved"] is True


def test_malformed_entry_keeps_other_approvals(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)
    memory = store.create_default(task="Ship payments")
    memory.approval_states["b.js"] = ApprovalStatus(dev=SlotApproval(approved=True, approved_by="bob"))
    store.save(memory)
    doc = json.loads(_ledger(project_root).read_text(encoding="utf-8"))
    doc["approvalStates"]["a.js"] = {"dev": {"approved": "maybe"}}
    _ledger(project_root).write_text(json.dumps(doc), encoding="utf-8")

    loaded = store.load()

    assert loaded.current_session.task == "Ship payments"
    assert set(loaded.approval_states) == {"b.js"}
    assert loaded.approval_states["b.js"].dev.approved_by == "bob"
    assert len(_backups(project_root)) == 1

    rebuilt = json.loads(_ledger(project_root).read_text(encoding="utf-8"))
    assert set(rebuilt["approvalStates"]) == {"b.js"}


def test_failed_verification_keeps_previous_ledger(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = ProjectMemoryStore(project_root)
    store.save(store.create_default(task="first"))
    before = _ledger(project_root).read_text(encoding="utf-8")

    def fake_verify(self, path):
        raise LedgerCorruptError("Written ledger is missing required sections")

    monkeypatch.setattr(ProjectMemoryStore, "_verify", fake_verify)

    with pytest.raises(LedgerWriteError) as exc_info:
        store.save(store.create_default(task="second"))

    assert isinstance(exc_info.value, OSError)
    assert _ledger(project_root).read_text(encoding="utf-8") == before
    assert not _ledger(project_root).with_suffix(".json.tmp").exists()


def test_update_saves_and_returns_result(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root)

    result = store.update(lambda m: m.file_history.setdefault("a.py", {"edits": 1}))

    assert result == {"edits": 1}
    assert ProjectMemoryStore(project_root).load().file_history == {"a.py": {"edits": 1}}


def test_custom_memory_location(project_root: Path) -> None:
    store = ProjectMemoryStore(project_root, memory_dir=Path("state"), filename="ledger.json")

    store.save(store.create_default())

    assert (project_root / "state" / "ledger.json").is_file()
