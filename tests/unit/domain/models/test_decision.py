"""Tests for the Decision model."""

from aimem.domain.models.decision import Decision


def test_allowed_iff_no_reasons() -> None:
    assert Decision().allowed is True
    assert Decision(warnings=["careful"]).allowed is True
    assert Decision(reasons=["no"]).allowed is False


def test_allowed_is_serialized() -> None:
    data = Decision(reasons=["no"], warnings=["w"]).model_dump()

    assert data == {"reasons": ["no"], "warnings": ["w"], "allowed": False}
