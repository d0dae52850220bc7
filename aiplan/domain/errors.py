"""Domain-level exceptions for aiplan."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiplan.domain.models.execution import ExecutionSummary


class ProviderError(Exception):
    """Raised when a provider fails (network, auth, timeout, etc.)."""

    pass


class DelimitedParseError(ValueError):
    """Raised when a delimited operation block is malformed."""

    pass


class JsonOperationsError(Exception):
    """Raised when a reply is valid JSON but does not describe valid operations.

    Distinct from a JSON syntax error, which only means the reply is not JSON.
    """

    pass


class PlanValidationError(Exception):
    """Raised when a plan is rejected before any file is touched."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class PlanExecutionError(Exception):
    """Raised when one or more operations of a plan failed during execution.

    The partial summary (including backups of original file contents) is
    attached so callers can retry, auto-fix or undo.
    """

    def __init__(self, message: str, summary: "ExecutionSummary") -> None:
        super().__init__(message)
        self.summary = summary


class HistoryError(Exception):
    """Raised when a history entry cannot be found or persisted."""

    pass
