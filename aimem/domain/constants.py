from pathlib import Path

# Project memory storage
DEFAULT_MEMORY_DIR = Path(".ai-memory")
MEMORY_FILENAME = "project-memory.json"
MEMORY_TEMP_SUFFIX = ".json.tmp"
MEMORY_BACKUP_INFIX = "backup"
CONFIG_FILENAME = "config.yml"

# Sections every ledger document must carry
REQUIRED_MEMORY_SECTIONS = ("projectContext", "currentSession")

# Metadata block marker
METADATA_MARKER = "@ai-metadata"

# Rules with priority strictly above this block modification
BLOCKING_PRIORITY_THRESHOLD = 8

NO_METADATA_WARNING = "No metadata found"

# Post-modification actions
ACTION_INVALIDATE_APPROVALS = "invalidate_approvals"
ACTION_UPDATE_LAST_MODIFIED = "update_last_modified"
ACTION_ADD_TO_CHANGELOG = "add_to_changelog"
ACTION_REQUIRE_IMMEDIATE_REVIEW = "require_immediate_review"
ACTION_RUN_TESTS = "run_tests"

# Project root detection
PROJECT_INDICATORS = (
    "package.json",
    ".git",
    "pyproject.toml",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "composer.json",
    ".project",
    "Makefile",
    "CMakeLists.txt",
)

# Metadata scanning
DEFAULT_SCAN_PATTERN = "**/*.{js,ts,jsx,tsx,py,java,cpp,c,h}"
DEFAULT_SCAN_EXCLUDE = ("node_modules", "dist", ".git")
