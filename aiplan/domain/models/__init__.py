"""Domain models for aiplan."""

from .operation import (
    CONTEXT_OPERATION_TYPES,
    FILE_OPERATION_TYPES,
    OPERATION_ADAPTER,
    OPERATION_TYPES,
    BaseOperation,
    ContextOperation,
    CreateOperation,
    DeleteOperation,
    EditOperation,
    FileOperation,
    ListDirectoryOperation,
    MoveOperation,
    Operation,
    ReadFileOperation,
    ResponseOperation,
    SearchContentOperation,
    coerce_operation,
    is_context_operation,
    is_file_operation,
    validate_operation,
    validate_operations,
)
from .validation_result import ValidationResult
from .execution import ExecutionSummary, FailedOperation, OperationResult
from .chat_message import ChatMessage
from .history_entry import HistoryEntry


__all__ = [
    "CONTEXT_OPERATION_TYPES",
    "FILE_OPERATION_TYPES",
    "OPERATION_ADAPTER",
    "OPERATION_TYPES",
    "BaseOperation",
    "ContextOperation",
    "CreateOperation",
    "DeleteOperation",
    "EditOperation",
    "FileOperation",
    "ListDirectoryOperation",
    "MoveOperation",
    "Operation",
    "ReadFileOperation",
    "ResponseOperation",
    "SearchContentOperation",
    "is_context_operation",
    "is_file_operation",
    "coerce_operation",
    "validate_operation",
    "validate_operations",
    "ValidationResult",
    "ExecutionSummary",
    "FailedOperation",
    "OperationResult",
    "ChatMessage",
    "HistoryEntry",
]
