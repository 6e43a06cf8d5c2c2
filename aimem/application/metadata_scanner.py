import logging
import re
from pathlib import Path
from typing import Iterable

from aimem.domain.constants import DEFAULT_SCAN_EXCLUDE, DEFAULT_SCAN_PATTERN
from aimem.domain.metadata.extractor import MetadataExtractor

logger = logging.getLogger(__name__)

_BRACES = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, which pathlib globbing does not support.

    Example:
        "**/*.{js,ts}" -> ["**/*.js", "**/*.ts"]
    """
    match = _BRACES.search(pattern)
    if match is None:
        return [pattern]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        candidate = pattern[: match.start()] + option.strip() + pattern[match.end() :]
        expanded.extend(expand_braces(candidate))
    return expanded


class MetadataScanner:
    """Finds project files that carry an ``@ai-metadata`` block."""

    def __init__(
        self,
        project_root: Path,
        extractor: MetadataExtractor | None = None,
        exclude: Iterable[str] = DEFAULT_SCAN_EXCLUDE,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.extractor = extractor or MetadataExtractor()
        self.exclude = frozenset(exclude)

    def find_files(self, pattern: str | None = None) -> list[Path]:
        """
        List files matching ``pattern`` whose text contains a metadata block.

        Args:
            pattern: Glob relative to the project root (default covers common source files)

        Returns:
            Sorted absolute paths
        """
        found: set[Path] = set()
        for glob in expand_braces(pattern or DEFAULT_SCAN_PATTERN):
            for path in self.project_root.glob(glob):
                if not path.is_file() or self._excluded(path):
                    continue
                try:
                    text = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug(f"Skipping unreadable file {path}: {e}")
                    continue
                if self.extractor.has_metadata(text):
                    found.add(path)
        return sorted(found)

    def _excluded(self, path: Path) -> bool:
        relative = path.relative_to(self.project_root)
        return any(part in self.exclude for part in relative.parts[:-1])
