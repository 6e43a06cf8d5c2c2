"""Extraction and in-place update of ``@ai-metadata`` blocks.

A metadata block is the first ``/** ... */`` comment that contains the
``@ai-metadata`` marker. Fields are ``@name: value`` lines inside it:

    /**
     * @ai-metadata
     * @stability: stable
     * @edit-permissions: method-specific
     * @method-permissions: { "parse": "read-only", "render": "allow" }
     * @tests: ["./tests/parser.test.js"]
     * @breaking-changes-risk: high
     * @review-required: true
     *
     * @approvals:
     *   - dev-approved: false
     */

Extraction never raises on malformed input. A sub-field that cannot be parsed
is left absent and a warning is logged; the rest of the block is still read.
"""

import json
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, TypeVar

from pydantic import ValidationError

from aimem.domain.constants import METADATA_MARKER
from aimem.domain.models.approval_status import ApprovalSlot, ApprovalStatus, SlotApproval
from aimem.domain.models.metadata import (
    AIMetadata,
    BreakingChangesRisk,
    EditPermission,
    MethodPermission,
    Stability,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

# No "*/" may appear between the opening "/**" and the marker.
BLOCK_RE = re.compile(r"/\*\*(?:(?!\*/)[\s\S])*?" + re.escape(METADATA_MARKER) + r"[\s\S]*?\*/")

# Value runs to end of line, excluding trailing blanks and a closing "*/".
_VALUE_END = r"(?=[ \t]*(?:\*/)?[ \t]*(?:[\r\n]|\Z))"

# attribute -> field tag, in canonical block order
SCALAR_TAGS: dict[str, str] = {
    "class_name": "@class:",
    "description": "@description:",
    "last_update": "@last-update:",
    "last_editor": "@last-editor:",
    "changelog": "@changelog:",
    "stability": "@stability:",
    "edit_permissions": "@edit-permissions:",
    "breaking_changes_risk": "@breaking-changes-risk:",
    "review_required": "@review-required:",
    "ai_context": "@ai-context:",
}
LIST_TAGS: dict[str, str] = {
    "dependencies": "@dependencies:",
    "tests": "@tests:",
}
OBJECT_TAGS: dict[str, str] = {
    "method_permissions": "@method-permissions:",
}

_BLOCK_ORDER = (
    "class_name",
    "description",
    "last_update",
    "last_editor",
    "changelog",
    "stability",
    "edit_permissions",
    "method_permissions",
    "dependencies",
    "tests",
    "breaking_changes_risk",
    "review_required",
    "ai_context",
)

# slot -> (approved key, approver key, date key)
APPROVAL_KEYS: dict[ApprovalSlot, tuple[str, str, str]] = {
    ApprovalSlot.DEV: ("dev-approved", "dev-approved-by", "dev-approved-date"),
    ApprovalSlot.CODE_REVIEW: ("code-review-approved", "code-review-approved-by", "code-review-date"),
    ApprovalSlot.QA: ("qa-approved", "qa-approved-by", "qa-approved-date"),
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "stability": Stability,
    "edit_permissions": EditPermission,
    "breaking_changes_risk": BreakingChangesRisk,
}


def _tag_re(tag: str) -> str:
    return r"(?<![\w-])" + re.escape(tag)


def _scalar_re(tag: str) -> re.Pattern[str]:
    return re.compile(_tag_re(tag) + r"[ \t]*([^\n\r]*?)" + _VALUE_END, re.IGNORECASE)


def _approval_re(key: str) -> re.Pattern[str]:
    # Either "@key:" or a "- key:" list item under "@approvals:".
    prefix = r"(?:(?<![\w-])@|(?<![\w-])-[ \t]*)"
    return re.compile(prefix + re.escape(f"{key}:") + r"[ \t]*([^\n\r]*?)" + _VALUE_END, re.IGNORECASE)


_SCALAR_PATTERNS = {attr: _scalar_re(tag) for attr, tag in SCALAR_TAGS.items()}
_LIST_PATTERNS = {
    attr: re.compile(_tag_re(tag) + r"[ \t]*\[([^\]\n\r]*)\]", re.IGNORECASE)
    for attr, tag in LIST_TAGS.items()
}
_OBJECT_PATTERNS = {
    attr: re.compile(_tag_re(tag) + r"[ \t]*(\{[^}\n\r]*\})", re.IGNORECASE)
    for attr, tag in OBJECT_TAGS.items()
}
_FIELD_LINE_PATTERNS = {
    attr: _scalar_re(tag) for attr, tag in {**SCALAR_TAGS, **LIST_TAGS, **OBJECT_TAGS}.items()
}
_APPROVAL_PATTERNS = {
    key: _approval_re(key) for keys in APPROVAL_KEYS.values() for key in keys
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _unquote(value: str) -> str:
    return value.strip().strip("\"'").strip()


def _timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_field_name(key: str) -> str:
    """Map ``"editPermissions"``, ``"edit-permissions"`` or ``"@edit-permissions"`` to the attribute name."""
    name = _CAMEL_BOUNDARY.sub(r"_\1", key.strip().lstrip("@").rstrip(":"))
    name = name.replace("-", "_").lower()
    return "class_name" if name == "class" else name


class MetadataExtractor:
    """Reads and rewrites ``@ai-metadata`` blocks in raw file text."""

    def find_block(self, text: str) -> re.Match[str] | None:
        return BLOCK_RE.search(text)

    def extract(self, text: str) -> AIMetadata | None:
        """Parse the first metadata block in ``text``.

        Returns:
            The parsed record, or None if the text carries no block.
        """
        match = self.find_block(text)
        if match is None:
            return None

        block = match.group(0)
        fields: dict[str, Any] = {}

        for attr, pattern in _SCALAR_PATTERNS.items():
            value = self._scalar(block, pattern)
            if value is None:
                continue
            if attr == "review_required":
                fields[attr] = value == "true"
            elif attr in _ENUM_FIELDS:
                coerced = self._coerce_enum(_ENUM_FIELDS[attr], value, SCALAR_TAGS[attr])
                if coerced is not None:
                    fields[attr] = coerced
            else:
                fields[attr] = value

        for attr, pattern in _LIST_PATTERNS.items():
            items = self._list(block, pattern)
            if items is not None:
                fields[attr] = items

        permissions = self._method_permissions(block)
        if permissions is not None:
            fields["method_permissions"] = permissions

        approvals = self._approvals(block)
        if approvals is not None:
            fields["approvals"] = approvals

        return AIMetadata(**fields)

    def has_metadata(self, text: str) -> bool:
        return self.find_block(text) is not None

    # ------------------------------------------------------------------
    # Field parsers
    # ------------------------------------------------------------------

    def _scalar(self, block: str, pattern: re.Pattern[str]) -> str | None:
        # re.search returns the first occurrence; later duplicates are ignored.
        match = pattern.search(block)
        if match is None:
            return None
        value = _unquote(match.group(1))
        return value or None

    def _list(self, block: str, pattern: re.Pattern[str]) -> list[str] | None:
        match = pattern.search(block)
        if match is None:
            return None
        items = (_unquote(item) for item in match.group(1).split(","))
        return [item for item in items if item]

    def _method_permissions(self, block: str) -> dict[str, MethodPermission] | None:
        tag = OBJECT_TAGS["method_permissions"]
        match = _OBJECT_PATTERNS["method_permissions"].search(block)
        if match is None:
            if _FIELD_LINE_PATTERNS["method_permissions"].search(block):
                logger.warning(f"Could not parse {tag} value: expected a single-line {{...}} object")
            return None

        try:
            raw = json.loads(match.group(1).replace("'", '"'))
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse JSON for {tag}: {e}")
            return None

        if not isinstance(raw, dict):
            logger.warning(f"Could not parse {tag}: expected an object")
            return None

        try:
            return {str(name): MethodPermission(value) for name, value in raw.items()}
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid permission in {tag}: {e}")
            return None

    def _approvals(self, block: str) -> ApprovalStatus | None:
        found = False
        slots: dict[str, SlotApproval] = {}
        for slot, keys in APPROVAL_KEYS.items():
            if any(_APPROVAL_PATTERNS[key].search(block) for key in keys):
                found = True
            approved, approved_by, approved_date = (
                self._scalar(block, _APPROVAL_PATTERNS[key]) for key in keys
            )
            slots[slot.value] = SlotApproval(
                approved=approved == "true",
                approved_by=approved_by,
                approved_date=approved_date,
            )
        if not found:
            return None
        try:
            return ApprovalStatus(**slots)
        except ValidationError as e:
            logger.warning(f"Could not build approvals from metadata block: {e}")
            return None

    def _coerce_enum(self, enum_cls: type[E], value: str, tag: str) -> E | None:
        try:
            return enum_cls(value.lower())
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            logger.warning(f"Ignoring {tag} '{value}' (expected one of: {allowed})")
            return None

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def apply_updates(
        self,
        text: str,
        updates: Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> str:
        """Return ``text`` with ``updates`` written into its metadata block.

        Keys may be attribute names, camelCase names or field tags. Existing
        field lines are rewritten in place, missing ones are inserted before the
        closing ``*/``. Whenever a field actually changes, ``@last-update`` is
        stamped with the current time unless the caller supplied it. Text
        without a block gets a new block prepended.
        """
        normalized = self._normalize_updates(updates)
        match = self.find_block(text)

        if match is None:
            if not normalized:
                return text
            normalized.setdefault("last_update", _timestamp(now))
            return self._generate_block(normalized) + "\n" + text

        if not normalized:
            return text

        original = match.group(0)
        block = original
        for attr, value in normalized.items():
            block = self._set_field(block, attr, value)

        if block == original:
            return text

        if "last_update" not in normalized:
            block = self._set_field(block, "last_update", _timestamp(now))

        return text[: match.start()] + block + text[match.end() :]

    def _normalize_updates(self, updates: Mapping[str, Any]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        known = set(_BLOCK_ORDER)
        for key, value in updates.items():
            attr = normalize_field_name(key)
            if attr not in known:
                logger.warning(f"Ignoring unsupported metadata update field '{key}'")
                continue
            if value is None:
                continue
            normalized[attr] = self._format_value(value)
        return normalized

    def _format_value(self, value: Any) -> str:
        if isinstance(value, Enum):
            return str(value.value)
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, Mapping):
            return json.dumps(
                {k: (v.value if isinstance(v, Enum) else v) for k, v in value.items()}
            )
        if isinstance(value, (list, tuple)):
            return json.dumps([str(item) for item in value])
        return " ".join(str(value).splitlines()).strip()

    def _set_field(self, block: str, attr: str, value: str) -> str:
        tag = self._tag_for(attr)
        line = f"{tag} {value}"
        pattern = _FIELD_LINE_PATTERNS[attr]

        match = pattern.search(block)
        if match is not None:
            if match.group(1).strip() == value:
                return block
            # Keep the tag's original spelling; replace only the value.
            tag_end = match.start() + len(tag)
            return block[:tag_end] + " " + value + block[match.end() :]

        return re.sub(r"\s*\*/\Z", lambda _: f"\n * {line}\n */", block, count=1)

    def _tag_for(self, attr: str) -> str:
        return SCALAR_TAGS.get(attr) or LIST_TAGS.get(attr) or OBJECT_TAGS[attr]

    def _generate_block(self, fields: Mapping[str, str]) -> str:
        lines = ["/**", f" * {METADATA_MARKER}"]
        for attr in _BLOCK_ORDER:
            if attr in fields:
                lines.append(f" * {self._tag_for(attr)} {fields[attr]}")
        lines.append(" */")
        return "\n".join(lines)
