from pydantic import BaseModel, Field, computed_field


class Decision(BaseModel):
    """Outcome of a pre-modification check. Never persisted.

    Modification is allowed exactly when no blocking reason was recorded;
    warnings are advisory only.
    """

    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def allowed(self) -> bool:
        return not self.reasons
