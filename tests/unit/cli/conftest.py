from pathlib import Path

import pytest
from click.testing import CliRunner

import aimem.interface.cli.cli as cli_mod


@pytest.fixture(autouse=True)
def _isolated_user_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the developer's ~/.ai-memory/config.yml out of CLI tests."""
    home = tmp_path / "home"
    home.mkdir(exist_ok=True)
    monkeypatch.setattr(cli_mod, "DEFAULT_USER_HOME", home, raising=True)
    return home


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, project_root: Path):
    """Run the CLI against the test project."""

    def _invoke(*args: str):
        return runner.invoke(
            cli_mod.cli,
            ["--project-root", str(project_root), *args],
            prog_name="aimem",
        )

    return _invoke
