"""Schema and filesystem reachability validation for operations.

Schema checks are pure. Reachability checks consult the live filesystem to
decide whether applying an operation would succeed right now. Neither raises
for invalid input: both return a ``ValidationResult``.
"""

import logging
import os
from typing import Any, Sequence

from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    MoveOperation,
    Operation,
    validate_operation,
    validate_operations,
)
from aiplan.domain.models.validation_result import ValidationResult
from aiplan.engine.file_io import IgnoreFilter, count_matches, read_text


logger = logging.getLogger(__name__)


class OperationValidator:
    """Validates operations against the schema and the filesystem.

    Args:
        ignore_filter: Consulted before editing a file. None disables ignore checks.
    """

    def __init__(self, ignore_filter: IgnoreFilter | None = None):
        self.ignore_filter = ignore_filter

    @staticmethod
    def validate_operation(op: Any) -> ValidationResult:
        return validate_operation(op)

    @staticmethod
    def validate_operations(ops: Any) -> ValidationResult:
        return validate_operations(ops)

    def validate_reachability(self, op: Operation) -> ValidationResult:
        """Check one operation against the current filesystem state.

        Total over its input: unexpected I/O errors become validation failures.
        """
        try:
            if isinstance(op, CreateOperation):
                return self._validate_create(op)
            if isinstance(op, EditOperation):
                return self._validate_edit(op)
            if isinstance(op, MoveOperation):
                return self._validate_move(op)
            if isinstance(op, DeleteOperation):
                return self._validate_delete(op)
            return ValidationResult.fail(f"Unknown operation type: {getattr(op, 'type', op)}")
        except Exception as e:
            logger.debug(f"Reachability check raised: {e}")
            return ValidationResult.fail(f"Error while checking reachability: {e}")

    def validate_operations_reachability(self, ops: Sequence[Operation]) -> ValidationResult:
        """Check every operation, prefixing errors with the 1-based index and type."""
        errors: list[str] = []
        for index, op in enumerate(ops, start=1):
            result = self.validate_reachability(op)
            if not result.is_valid:
                op_type = getattr(op, "type", "unknown")
                errors.extend(f"Operation {index} ({op_type}): {err}" for err in result.errors or [])

        if errors:
            return ValidationResult(is_valid=False, errors=errors)
        return ValidationResult.ok()

    def _validate_create(self, op: CreateOperation) -> ValidationResult:
        if os.path.exists(op.file_path):
            return ValidationResult.fail(f"File already exists: {op.file_path}")
        return ValidationResult.ok()

    def _validate_edit(self, op: EditOperation) -> ValidationResult:
        if self.ignore_filter is not None and self.ignore_filter.is_ignored(op.file_path):
            return ValidationResult.fail(f"File is ignored and cannot be edited: {op.file_path}")

        try:
            content = read_text(op.file_path)
        except (OSError, UnicodeDecodeError):
            return ValidationResult.fail(f"Cannot access file: {op.file_path}")

        if op.find:
            match_count = count_matches(content, op.find)
            if match_count == 0:
                return ValidationResult.fail(
                    f"Text to replace not found in file: {op.file_path}\n{op.find}\n"
                )
            if match_count > 1:
                return ValidationResult.fail(
                    f"Found {match_count} matches in file, a more specific find text is required: {op.file_path}"
                )
        return ValidationResult.ok()

    def _validate_move(self, op: MoveOperation) -> ValidationResult:
        if not op.old_path or not op.new_path:
            return ValidationResult.fail("Move operation is missing the source or target path")
        if not os.path.exists(op.old_path):
            return ValidationResult.fail(f"Source file does not exist: {op.old_path}")

        target_dir = os.path.dirname(op.new_path) or "."
        if not os.path.isdir(target_dir):
            return ValidationResult.fail(f"Cannot access target directory: {target_dir}")
        if os.path.exists(op.new_path):
            return ValidationResult.fail(f"Target file already exists: {op.new_path}")
        return ValidationResult.ok()

    def _validate_delete(self, op: DeleteOperation) -> ValidationResult:
        if not os.path.exists(op.file_path):
            return ValidationResult.fail(f"File does not exist: {op.file_path}")
        return ValidationResult.ok()
