"""Execution result models for applied plans."""

from pydantic import BaseModel, Field

from aiplan.domain.models.operation import Operation


class OperationResult(BaseModel):
    operation: Operation
    success: bool
    error: str | None = None


class FailedOperation(BaseModel):
    """An operation paired with the reason it failed (validation or execution)."""

    operation: Operation
    error: str


class ExecutionSummary(BaseModel):
    """Aggregate result of executing a plan.

    ``file_original_contents`` maps each path touched by an ``edit`` or
    ``delete`` to its content captured before any mutation, for undo.
    """

    execution_results: list[OperationResult] = Field(default_factory=list)
    file_original_contents: dict[str, str] = Field(default_factory=dict)
    successful_ops: int = 0
    failed_ops: int = 0
    failed_operations: list[FailedOperation] | None = None
