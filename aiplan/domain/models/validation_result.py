"""Validation result model shared by schema and reachability checks."""

from pydantic import BaseModel


class ValidationResult(BaseModel):
    """Outcome of a validation pass.

    Validators return this instead of raising for expected invalid input.
    ``errors`` is only populated when ``is_valid`` is False.
    """

    is_valid: bool
    errors: list[str] | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, *errors: str) -> "ValidationResult":
        return cls(is_valid=False, errors=list(errors))
