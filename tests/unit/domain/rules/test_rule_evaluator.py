"""Tests for RuleEvaluator decisions, actions and rule administration."""

import logging

import pytest

from aimem.domain.errors import DuplicateRuleError
from aimem.domain.models.approval_status import ApprovalStatus, SlotApproval
from aimem.domain.models.metadata import (
    AIMetadata,
    BreakingChangesRisk,
    EditPermission,
    Stability,
)
from aimem.domain.models.rule import Rule
from aimem.domain.rules.evaluator import (
    DEPRECATED_WARNING,
    HIGH_RISK_REASON,
    READ_ONLY_REASON,
    REVIEW_REQUIRED_REASON,
    RuleEvaluator,
)


def _approved(*slots: str) -> ApprovalStatus:
    return ApprovalStatus(**{s: SlotApproval(approved=True, approved_by="bob") for s in slots})


def _rule(rule_id: str, condition: str, priority: int, action: str | None = None) -> Rule:
    return Rule(
        id=rule_id,
        name=rule_id,
        condition=condition,
        action=action or f"{rule_id} triggered",
        priority=priority,
    )


class TestDefaultDecisions:
    """Built-in checks and rules."""

    def test_missing_metadata_allows_with_warning(self) -> None:
        decision = RuleEvaluator().evaluate(None, None)

        assert decision.allowed is True
        assert decision.reasons == []
        assert decision.warnings == ["No metadata found"]

    def test_empty_metadata_allows_silently(self) -> None:
        decision = RuleEvaluator().evaluate(AIMetadata(), None)

        assert decision.allowed is True
        assert decision.reasons == []
        assert decision.warnings == []

    def test_read_only_blocks_even_with_approvals(self) -> None:
        meta = AIMetadata(edit_permissions=EditPermission.READ_ONLY)

        decision = RuleEvaluator().evaluate(meta, _approved("dev", "code_review", "qa"))

        assert decision.allowed is False
        assert decision.reasons[0] == READ_ONLY_REASON
        assert "File is marked as read-only and cannot be modified" in decision.reasons

    def test_high_risk_without_dev_approval_blocks(self) -> None:
        meta = AIMetadata(breaking_changes_risk=BreakingChangesRisk.HIGH)

        decision = RuleEvaluator().evaluate(meta, None)

        assert decision.allowed is False
        assert HIGH_RISK_REASON in decision.reasons
        assert "High-risk file requires developer approval" in decision.reasons

    def test_high_risk_with_dev_approval_allows(self) -> None:
        meta = AIMetadata(breaking_changes_risk=BreakingChangesRisk.HIGH, stability=Stability.STABLE)

        decision = RuleEvaluator().evaluate(meta, _approved("dev"))

        assert decision.allowed is True
        assert decision.warnings == []

    def test_review_required_without_code_review_blocks(self) -> None:
        meta = AIMetadata(review_required=True)

        decision = RuleEvaluator().evaluate(meta, _approved("dev"))

        assert decision.reasons == [REVIEW_REQUIRED_REASON]
        # The matching built-in rule has priority 8 and is advisory.
        assert decision.warnings == ["File requires code review before modification"]

    def test_review_required_with_code_review_allows(self) -> None:
        meta = AIMetadata(review_required=True)

        assert RuleEvaluator().evaluate(meta, _approved("code_review")).allowed is True

    def test_stable_without_dev_approval_warns(self) -> None:
        meta = AIMetadata(stability=Stability.STABLE)

        decision = RuleEvaluator().evaluate(meta, None)

        assert decision.allowed is True
        assert decision.warnings == ["Stable code should be reviewed before modification"]

    def test_deprecated_warns(self) -> None:
        meta = AIMetadata(stability=Stability.DEPRECATED)

        decision = RuleEvaluator().evaluate(meta, None)

        assert decision.allowed is True
        assert decision.warnings == [
            DEPRECATED_WARNING,
            "Consider if modifying deprecated file is necessary",
        ]


class TestCustomRules:
    def test_priority_above_threshold_blocks(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("nine", 'metadata.stability == "experimental"', 9)])

        decision = evaluator.evaluate(AIMetadata(), None)

        assert decision.allowed is False
        assert decision.reasons == ["nine triggered"]

    def test_priority_at_threshold_warns(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("eight", 'metadata.stability == "experimental"', 8)])

        decision = evaluator.evaluate(AIMetadata(), None)

        assert decision.allowed is True
        assert decision.warnings == ["eight triggered"]

    def test_passing_rule_reports_nothing(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("ok", "metadata.stability == null", 10)])

        assert evaluator.evaluate(AIMetadata(), None).reasons == []

    def test_broken_condition_counts_as_passed(self, caplog) -> None:
        evaluator = RuleEvaluator(
            rules=[
                _rule("syntax", "isReadOnly(", 10),
                _rule("unknown", "launchMissiles()", 10),
            ]
        )

        with caplog.at_level(logging.WARNING):
            decision = evaluator.evaluate(AIMetadata(), None)

        assert decision.allowed is True
        assert "syntax" in caplog.text
        assert "unknown" in caplog.text

    @pytest.mark.parametrize("condition", ["hasApproval(true)", "hasApproval(null)", "hasApproval(false)"])
    def test_non_string_slot_counts_as_unapproved(self, condition: str) -> None:
        evaluator = RuleEvaluator(rules=[_rule("odd-slot", condition, 10)])

        decision = evaluator.evaluate(AIMetadata(), _approved("qa"))

        assert decision.reasons == ["odd-slot triggered"]

    @pytest.mark.parametrize(
        "condition",
        [
            "(" * 2000 + "true" + ")" * 2000,
            "!" * 3000 + "true",
            " && ".join(["true"] * 5000),
        ],
    )
    def test_deeply_nested_condition_counts_as_passed(self, condition: str, caplog) -> None:
        evaluator = RuleEvaluator(rules=[_rule("deep", condition, 10)])

        with caplog.at_level(logging.WARNING):
            decision = evaluator.evaluate(AIMetadata(), _approved("qa"))

        assert decision.allowed is True
        assert "deep" in caplog.text

    def test_disabled_rule_is_skipped(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("nine", "false", 9)])
        evaluator.disable_rule("nine")

        assert evaluator.evaluate(AIMetadata(), None).allowed is True

    def test_file_path_is_visible_to_conditions(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("no-vendor", 'filePath != "vendor/lib.js"', 9)])

        assert evaluator.evaluate(AIMetadata(), None, "vendor/lib.js").allowed is False
        assert evaluator.evaluate(AIMetadata(), None, "src/lib.js").allowed is True

    def test_identical_messages_are_reported_once(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("dup", "!isReadOnly()", 10, action=READ_ONLY_REASON)])

        decision = evaluator.evaluate(AIMetadata(edit_permissions=EditPermission.READ_ONLY), None)

        assert decision.reasons == [READ_ONLY_REASON]

    def test_custom_threshold(self) -> None:
        evaluator = RuleEvaluator(rules=[_rule("five", "false", 5)], blocking_threshold=4)

        assert evaluator.evaluate(AIMetadata(), None).reasons == ["five triggered"]


class TestActionsAfter:
    def test_base_actions(self) -> None:
        assert RuleEvaluator().actions_after(None) == [
            "invalidate_approvals",
            "update_last_modified",
            "add_to_changelog",
        ]

    def test_high_risk_with_tests(self) -> None:
        meta = AIMetadata(breaking_changes_risk=BreakingChangesRisk.HIGH, tests=["./t.test.js"])

        assert RuleEvaluator().actions_after(meta) == [
            "invalidate_approvals",
            "update_last_modified",
            "add_to_changelog",
            "require_immediate_review",
            "run_tests",
        ]

    def test_empty_tests_do_not_require_run(self) -> None:
        assert "run_tests" not in RuleEvaluator().actions_after(AIMetadata(tests=[]))


class TestRuleAdministration:
    def test_default_rules_in_order(self) -> None:
        ids = [r.id for r in RuleEvaluator().list_rules()]

        assert ids == [
            "read-only-protection",
            "high-risk-needs-dev-approval",
            "review-required",
            "stable-code-needs-dev-approval",
            "deprecated-warning",
        ]

    def test_add_rule_from_mapping(self) -> None:
        evaluator = RuleEvaluator(rules=[])

        added = evaluator.add_rule(
            {"id": "x", "name": "X", "condition": "true", "action": "do x", "priority": 3}
        )

        assert added.enabled is True
        assert evaluator.get_rule("x") == added

    def test_add_duplicate_id_raises(self) -> None:
        evaluator = RuleEvaluator()

        with pytest.raises(DuplicateRuleError):
            evaluator.add_rule(_rule("read-only-protection", "true", 1))

        with pytest.raises(ValueError):
            evaluator.add_rule(_rule("deprecated-warning", "true", 1))

    def test_duplicate_initial_rules_raise(self) -> None:
        with pytest.raises(DuplicateRuleError):
            RuleEvaluator(rules=[_rule("a", "true", 1), _rule("a", "false", 2)])

    def test_remove_enable_disable_report_presence(self) -> None:
        evaluator = RuleEvaluator()

        assert evaluator.disable_rule("deprecated-warning") is True
        assert evaluator.get_rule("deprecated-warning").enabled is False
        assert evaluator.enable_rule("deprecated-warning") is True
        assert evaluator.get_rule("deprecated-warning").enabled is True
        assert evaluator.remove_rule("deprecated-warning") is True
        assert evaluator.get_rule("deprecated-warning") is None

        assert evaluator.remove_rule("missing") is False
        assert evaluator.enable_rule("missing") is False
        assert evaluator.disable_rule("missing") is False

    def test_list_rules_returns_copies(self) -> None:
        evaluator = RuleEvaluator()

        listed = evaluator.list_rules()
        listed[0].enabled = False
        listed.clear()

        assert len(evaluator.list_rules()) == 5
        assert evaluator.get_rule("read-only-protection").enabled is True
