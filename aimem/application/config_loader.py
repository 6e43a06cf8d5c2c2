from pathlib import Path
from typing import Any

import yaml

from aimem.domain.constants import (
    CONFIG_FILENAME,
    DEFAULT_MEMORY_DIR,
    DEFAULT_SCAN_EXCLUDE,
    DEFAULT_SCAN_PATTERN,
    MEMORY_FILENAME,
)


class ConfigLoadError(Exception):
    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


def _defaults() -> dict[str, Any]:
    return {
        "memory_dir": str(DEFAULT_MEMORY_DIR),
        "memory_file": MEMORY_FILENAME,
        "rules": {
            "disabled": [],  # ids of built-in rules to switch off
            "custom": [],  # extra rule mappings, added after the built-ins
        },
        "scan": {
            "pattern": DEFAULT_SCAN_PATTERN,
            "exclude": list(DEFAULT_SCAN_EXCLUDE),
        },
    }


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge mapping keys. For non-dict values, overlay wins.
    """
    merged: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = _deep_merge(merged[k], v)  # type: ignore[arg-type]
        else:
            merged[k] = v
    return merged


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """
    Load YAML file and ensure root is a mapping.
    """
    # Protect against TOCTOU race conditions.
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except Exception as e:  # pragma: no cover
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except Exception as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)

    return data


def _validate(cfg: dict[str, Any], *, path: Path | None = None) -> None:
    rules = cfg.get("rules")
    if not isinstance(rules, dict):
        raise ConfigLoadError("'rules' must be a mapping", path=path)
    if not isinstance(rules.get("disabled", []), list):
        raise ConfigLoadError("'rules.disabled' must be a list of rule ids", path=path)
    if not isinstance(rules.get("custom", []), list):
        raise ConfigLoadError("'rules.custom' must be a list of rules", path=path)
    scan = cfg.get("scan")
    if not isinstance(scan, dict) or not isinstance(scan.get("exclude", []), list):
        raise ConfigLoadError("'scan.exclude' must be a list", path=path)


def load_config(*, project_root: Path | None = None, user_home: Path | None = None) -> dict[str, Any]:
    """
    Load and merge config with precedence (highest wins):
    CLI args (handled in CLI) > project > user > defaults.

    Files:
      - user:    user_home/.ai-memory/config.yml
      - project: project_root/.ai-memory/config.yml

    Note: the project file is always looked up under the default memory
    directory, since it is the file that may relocate that directory.
    """
    project_root = project_root or Path.cwd()
    user_home = user_home or Path.home()

    cfg: dict[str, Any] = _defaults()

    user_path = user_home / DEFAULT_MEMORY_DIR / CONFIG_FILENAME
    cfg = _deep_merge(cfg, _load_yaml_mapping(user_path))

    project_path = project_root / DEFAULT_MEMORY_DIR / CONFIG_FILENAME
    cfg = _deep_merge(cfg, _load_yaml_mapping(project_path))

    _validate(cfg, path=project_path)
    return cfg
