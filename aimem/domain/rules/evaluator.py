"""Pre-modification rule evaluation.

Evaluation runs in two phases. Fixed precedence checks come first (read-only,
high risk without dev approval, review required without code review, and the
deprecation warning). Then every enabled rule is evaluated in registration
order. The built-in rules overlap with the fixed checks on purpose, so a
read-only file reports both the fixed reason and the rule's action.

Failures are fail-open: missing metadata allows modification with a warning,
and a rule whose condition cannot be parsed or evaluated counts as passed.
"""

import logging
from typing import Any, Iterable, Mapping

from aimem.domain.constants import (
    ACTION_ADD_TO_CHANGELOG,
    ACTION_INVALIDATE_APPROVALS,
    ACTION_REQUIRE_IMMEDIATE_REVIEW,
    ACTION_RUN_TESTS,
    ACTION_UPDATE_LAST_MODIFIED,
    BLOCKING_PRIORITY_THRESHOLD,
    NO_METADATA_WARNING,
)
from aimem.domain.errors import ConditionEvalError, ConditionSyntaxError, DuplicateRuleError
from aimem.domain.models.approval_status import ApprovalSlot, ApprovalStatus
from aimem.domain.models.decision import Decision
from aimem.domain.models.metadata import AIMetadata
from aimem.domain.models.rule import Rule
from aimem.domain.rules.defaults import default_rules
from aimem.domain.rules.expression import ConditionContext, evaluate_condition

logger = logging.getLogger(__name__)

READ_ONLY_REASON = "File is marked as read-only"
HIGH_RISK_REASON = "High-risk file requires dev approval before modification"
REVIEW_REQUIRED_REASON = "File requires code review approval before modification"
DEPRECATED_WARNING = "This file is deprecated — consider if modification is necessary"


def _dedupe(messages: list[str]) -> list[str]:
    return list(dict.fromkeys(messages))


class RuleEvaluator:
    """Owns an ordered rule collection and turns metadata + approvals into a Decision."""

    def __init__(
        self,
        rules: Iterable[Rule] | None = None,
        *,
        blocking_threshold: int = BLOCKING_PRIORITY_THRESHOLD,
    ) -> None:
        """
        Args:
            rules: Initial rule set (default: the built-in rules)
            blocking_threshold: Failed rules with priority strictly above this block
        """
        self._rules: list[Rule] = [
            r.model_copy() for r in (default_rules() if rules is None else rules)
        ]
        self._ensure_unique_ids(self._rules)
        self.blocking_threshold = blocking_threshold

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        metadata: AIMetadata | None,
        approvals: ApprovalStatus | None,
        file_path: str = "",
    ) -> Decision:
        if metadata is None:
            return Decision(warnings=[NO_METADATA_WARNING])

        reasons: list[str] = []
        warnings: list[str] = []

        dev_approved = approvals is not None and approvals.is_approved(ApprovalSlot.DEV)
        review_approved = approvals is not None and approvals.is_approved(ApprovalSlot.CODE_REVIEW)

        if metadata.is_read_only:
            reasons.append(READ_ONLY_REASON)
        if metadata.is_high_risk and not dev_approved:
            reasons.append(HIGH_RISK_REASON)
        if metadata.review_required and not review_approved:
            reasons.append(REVIEW_REQUIRED_REASON)
        if metadata.is_deprecated:
            warnings.append(DEPRECATED_WARNING)

        context = ConditionContext(metadata=metadata, approvals=approvals, file_path=file_path)
        for rule in self._rules:
            if not rule.enabled:
                continue
            if self._passes(rule, context):
                continue
            if rule.priority > self.blocking_threshold:
                reasons.append(rule.action)
            else:
                warnings.append(rule.action)

        return Decision(reasons=_dedupe(reasons), warnings=_dedupe(warnings))

    def _passes(self, rule: Rule, context: ConditionContext) -> bool:
        try:
            return evaluate_condition(rule.condition, context)
        except (ConditionSyntaxError, ConditionEvalError) as e:
            logger.warning(f"Could not evaluate rule {rule.id} ({rule.condition!r}): {e}")
            return True

    def actions_after(self, metadata: AIMetadata | None) -> list[str]:
        """Actions the caller must perform after a file was modified."""
        actions = [
            ACTION_INVALIDATE_APPROVALS,
            ACTION_UPDATE_LAST_MODIFIED,
            ACTION_ADD_TO_CHANGELOG,
        ]
        if metadata is not None and metadata.is_high_risk:
            actions.append(ACTION_REQUIRE_IMMEDIATE_REVIEW)
        if metadata is not None and metadata.has_tests:
            actions.append(ACTION_RUN_TESTS)
        return actions

    # ------------------------------------------------------------------
    # Rule administration
    # ------------------------------------------------------------------

    def add_rule(self, rule: Rule | Mapping[str, Any]) -> Rule:
        """Register a rule after the existing ones.

        Raises:
            DuplicateRuleError: If a rule with the same id is registered.
            pydantic.ValidationError: If a mapping does not describe a valid rule.
        """
        new_rule = rule.model_copy() if isinstance(rule, Rule) else Rule.model_validate(rule)
        if self.get_rule(new_rule.id) is not None:
            raise DuplicateRuleError(f"Rule '{new_rule.id}' is already registered")
        self._rules.append(new_rule)
        logger.info(f"Added rule: {new_rule.name} ({new_rule.id})")
        return new_rule

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        removed = len(self._rules) != before
        if removed:
            logger.info(f"Removed rule: {rule_id}")
        return removed

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                self._rules[index] = rule.model_copy(update={"enabled": enabled})
                logger.info(f"{'Enabled' if enabled else 'Disabled'} rule: {rule_id}")
                return True
        return False

    def get_rule(self, rule_id: str) -> Rule | None:
        return next((r for r in self._rules if r.id == rule_id), None)

    def list_rules(self) -> list[Rule]:
        return [r.model_copy() for r in self._rules]

    @staticmethod
    def _ensure_unique_ids(rules: list[Rule]) -> None:
        seen: set[str] = set()
        for rule in rules:
            if rule.id in seen:
                raise DuplicateRuleError(f"Rule '{rule.id}' is already registered")
            seen.add(rule.id)
