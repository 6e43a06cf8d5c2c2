from pathlib import Path
from typing import Callable

import pytest

from aimem.application.modification_gate import ModificationGate
from aimem.domain.events import GovernanceEventEmitter


HIGH_RISK_SOURCE = """/**
 * @ai-metadata
 * @class: PaymentProcessor
 * @description: Charges customer cards
 * @stability: stable
 * @edit-permissions: method-specific
 * @method-permissions: { "charge": "read-only", "refund": "allow" }
 * @dependencies: ["./gateway.js", "./ledger.js"]
 * @tests: ["./tests/payment.test.js"]
 * @breaking-changes-risk: high
 * @review-required: false
 */
export class PaymentProcessor {}
"""

PLAIN_SOURCE = "export const answer = 42;\n"


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Isolated project directory, marked as a project by a .git directory.

    Tests should not write into the real repo's .ai-memory directory.
    """
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    return root


@pytest.fixture
def write_source(project_root: Path) -> Callable[[str, str], Path]:
    """Factory writing a file under the project root and returning its path."""

    def _write(relpath: str, text: str) -> Path:
        path = project_root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def emitter() -> GovernanceEventEmitter:
    return GovernanceEventEmitter()


@pytest.fixture
def gate(project_root: Path, emitter: GovernanceEventEmitter) -> ModificationGate:
    return ModificationGate(project_root, emitter=emitter)


@pytest.fixture
def high_risk_source() -> str:
    return HIGH_RISK_SOURCE


@pytest.fixture
def plain_source() -> str:
    return PLAIN_SOURCE


@pytest.fixture
def utf8() -> str:
    """Canonical encoding used throughout tests."""
    return "utf-8"
