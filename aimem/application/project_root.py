import logging
from pathlib import Path

from aimem.domain.constants import PROJECT_INDICATORS

logger = logging.getLogger(__name__)


def detect_project_root(start: Path | None = None) -> Path:
    """Walk up from ``start`` to the nearest directory holding a project indicator.

    Falls back to ``start`` itself (default: the current directory) when no
    ancestor carries one of PROJECT_INDICATORS.
    """
    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        for indicator in PROJECT_INDICATORS:
            if (directory / indicator).exists():
                logger.debug(f"Detected project root {directory} (found {indicator})")
                return directory

    logger.info(f"No project indicators found, using {start}")
    return start
