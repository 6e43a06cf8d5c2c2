"""Domain-level exceptions for the AI memory guard."""


class GovernanceError(Exception):
    """Base class for all modification-governance failures."""

    pass


class LedgerCorruptError(GovernanceError):
    """Raised when the project memory document cannot be parsed or validated."""

    def __init__(self, message: str, *, incomplete: bool = False) -> None:
        super().__init__(message)
        self.incomplete = incomplete


class LedgerWriteError(GovernanceError, OSError):
    """Raised when the project memory document cannot be written safely."""

    pass


class ConditionSyntaxError(GovernanceError):
    """Raised when a rule condition does not match the condition grammar."""

    pass


class ConditionEvalError(GovernanceError):
    """Raised when a parsed rule condition cannot be evaluated."""

    pass


class DuplicateRuleError(GovernanceError, ValueError):
    """Raised when a rule id is registered twice."""

    pass


class UnknownApprovalSlotError(GovernanceError, ValueError):
    """Raised for approval slot names outside dev / codeReview / qa."""

    pass
