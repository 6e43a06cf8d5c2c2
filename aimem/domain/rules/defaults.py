"""Built-in rule set.

Each condition states what must hold for the rule to pass; a rule whose
condition is false is reported. Priority 9 and above blocks modification.
"""

from aimem.domain.models.rule import Rule


def default_rules() -> list[Rule]:
    """Return a fresh copy of the built-in rules, in registration order."""
    return [
        Rule(
            id="read-only-protection",
            name="Prevent Read-Only Modifications",
            condition="!isReadOnly()",
            action="File is marked as read-only and cannot be modified",
            priority=10,
        ),
        Rule(
            id="high-risk-needs-dev-approval",
            name="High Risk Needs Approval",
            condition='!isHighRisk() || hasApproval("dev")',
            action="High-risk file requires developer approval",
            priority=9,
        ),
        Rule(
            id="review-required",
            name="Review Required",
            condition='!metadata.reviewRequired || hasApproval("codeReview")',
            action="File requires code review before modification",
            priority=8,
        ),
        Rule(
            id="stable-code-needs-dev-approval",
            name="Stable Code Protection",
            condition='metadata.stability !== "stable" || hasApproval("dev")',
            action="Stable code should be reviewed before modification",
            priority=6,
        ),
        Rule(
            id="deprecated-warning",
            name="Deprecated File Warning",
            condition="!isDeprecated()",
            action="Consider if modifying deprecated file is necessary",
            priority=5,
        ),
    ]
