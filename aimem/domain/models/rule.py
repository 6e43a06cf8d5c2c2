from pydantic import BaseModel, field_validator


class Rule(BaseModel):
    """A named, prioritized condition checked before a file is modified.

    ``condition`` describes what must hold for the rule to pass. When it
    evaluates false the rule is triggered and ``action`` is reported, as a
    blocking reason when ``priority`` is above the blocking threshold and as a
    warning otherwise.
    """

    id: str
    name: str
    condition: str
    action: str
    priority: int
    enabled: bool = True

    @field_validator("id", "condition")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("must be non-empty")
        return v2
