"""Sequential plan execution with pre-mutation backups."""

import logging
from typing import Sequence

from aiplan.domain.constants import DEFAULT_PLAN_DESCRIPTION
from aiplan.domain.errors import PlanExecutionError, PlanValidationError
from aiplan.domain.models.execution import ExecutionSummary, FailedOperation, OperationResult
from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    MoveOperation,
    Operation,
    validate_operations,
)
from aiplan.engine import file_io


logger = logging.getLogger(__name__)


class PlanExecutor:
    """Applies a plan to the filesystem in list order.

    Contract:
    - Current content of every ``edit``/``delete`` target is captured before
      any mutation (missing files are omitted).
    - An invalid plan raises ``PlanValidationError`` with zero side effects.
    - Execution stops at the first failing operation and raises
      ``PlanExecutionError`` carrying the partial summary. Earlier operations
      stay applied; recovery goes through the captured backups.
    """

    def execute_plan(
        self,
        operations: Sequence[Operation],
        plan_description: str = DEFAULT_PLAN_DESCRIPTION,
    ) -> ExecutionSummary:
        logger.info(f"Executing plan: {plan_description} ({len(operations)} operations)")

        originals = self._snapshot(operations)

        validation = validate_operations(list(operations))
        if not validation.is_valid:
            details = "; ".join(validation.errors or ["unknown validation error"])
            raise PlanValidationError(f"Plan contains invalid operations: {details}", validation.errors)

        results: list[OperationResult] = []
        failed: list[FailedOperation] = []

        for op in operations:
            try:
                self._apply(op)
            except Exception as e:
                error = str(e) or type(e).__name__
                results.append(OperationResult(operation=op, success=False, error=error))
                failed.append(FailedOperation(operation=op, error=error))
                logger.error(f"Operation {op.type} failed: {error}")
                logger.warning("Stopping execution of remaining operations")
                break
            results.append(OperationResult(operation=op, success=True))

        summary = ExecutionSummary(
            execution_results=results,
            file_original_contents=originals,
            successful_ops=len(results) - len(failed),
            failed_ops=len(failed),
            failed_operations=failed or None,
        )
        logger.info(
            f"Execution finished: {summary.successful_ops} succeeded, "
            f"{summary.failed_ops} failed ({len(operations)} total)"
        )

        if failed:
            raise PlanExecutionError(
                f"Plan execution incomplete: {len(failed)} operation(s) failed", summary
            )
        return summary

    @staticmethod
    def _snapshot(operations: Sequence[Operation]) -> dict[str, str]:
        originals: dict[str, str] = {}
        for op in operations:
            if isinstance(op, (EditOperation, DeleteOperation)) and op.file_path not in originals:
                try:
                    originals[op.file_path] = file_io.read_text(op.file_path)
                except (OSError, UnicodeDecodeError):
                    continue
        return originals

    @staticmethod
    def _apply(op: Operation) -> None:
        if isinstance(op, CreateOperation):
            file_io.create_file(op.file_path, op.content)
        elif isinstance(op, EditOperation):
            file_io.write_with_replace(op.file_path, op.content, op.find)
        elif isinstance(op, MoveOperation):
            file_io.move_file(op.old_path, op.new_path)
        elif isinstance(op, DeleteOperation):
            file_io.delete_file(op.file_path)
        else:
            raise ValueError(f"Unsupported operation type: {getattr(op, 'type', op)}")


def execute_plan(
    operations: Sequence[Operation],
    plan_description: str = DEFAULT_PLAN_DESCRIPTION,
) -> ExecutionSummary:
    """Convenience wrapper around ``PlanExecutor().execute_plan``."""
    return PlanExecutor().execute_plan(operations, plan_description)
