"""Operation models.

An operation is one atomic instruction extracted from a model reply. The set
of variants is closed and discriminated by the ``type`` field:

- ``response``: explanatory text only, no filesystem effect
- ``create`` / ``edit`` / ``move`` / ``delete``: file mutations
- ``list_directory`` / ``search_content`` / ``read_file``: read-only context gathering

Python attributes are snake_case; the wire names used by model replies and plan
exports (``filePath``, ``oldPath``, ...) are field aliases. Models are frozen so
a reviewed plan is always a new list of new operations.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .validation_result import ValidationResult


OPERATION_TYPES = (
    "response",
    "create",
    "edit",
    "move",
    "delete",
    "list_directory",
    "search_content",
    "read_file",
)
FILE_OPERATION_TYPES = ("create", "edit", "move", "delete")
CONTEXT_OPERATION_TYPES = ("list_directory", "search_content", "read_file")


class BaseOperation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    comment: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire (alias) names, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ResponseOperation(BaseOperation):
    type: Literal["response"] = "response"
    content: str


class CreateOperation(BaseOperation):
    type: Literal["create"] = "create"
    file_path: str = Field(alias="filePath", min_length=1)
    content: str


class EditOperation(BaseOperation):
    """Replace the unique occurrence of ``find`` with ``content``.

    Without ``find`` the whole file content is replaced.
    """

    type: Literal["edit"] = "edit"
    file_path: str = Field(alias="filePath", min_length=1)
    find: str | None = None
    content: str


class MoveOperation(BaseOperation):
    type: Literal["move"] = "move"
    old_path: str = Field(alias="oldPath", min_length=1)
    new_path: str = Field(alias="newPath", min_length=1)


class DeleteOperation(BaseOperation):
    type: Literal["delete"] = "delete"
    file_path: str = Field(alias="filePath", min_length=1)


class ListDirectoryOperation(BaseOperation):
    type: Literal["list_directory"] = "list_directory"
    path: str = Field(min_length=1)
    recursive: bool | None = None
    max_depth: int | None = Field(default=None, alias="maxDepth")


class SearchContentOperation(BaseOperation):
    type: Literal["search_content"] = "search_content"
    path: str = Field(min_length=1)
    pattern: str = Field(min_length=1)
    file_pattern: str | None = Field(default=None, alias="filePattern")
    context_lines: int | None = Field(default=None, alias="contextLines")


class ReadFileOperation(BaseOperation):
    type: Literal["read_file"] = "read_file"
    path: str = Field(min_length=1)
    start: int | None = None
    end: int | None = None


FileOperation = Union[CreateOperation, EditOperation, MoveOperation, DeleteOperation]
ContextOperation = Union[ListDirectoryOperation, SearchContentOperation, ReadFileOperation]

Operation = Annotated[
    Union[
        ResponseOperation,
        CreateOperation,
        EditOperation,
        MoveOperation,
        DeleteOperation,
        ListDirectoryOperation,
        SearchContentOperation,
        ReadFileOperation,
    ],
    Field(discriminator="type"),
]

OPERATION_ADAPTER: TypeAdapter[Operation] = TypeAdapter(Operation)


def is_file_operation(op: BaseOperation) -> bool:
    return getattr(op, "type", None) in FILE_OPERATION_TYPES


def is_context_operation(op: BaseOperation) -> bool:
    return getattr(op, "type", None) in CONTEXT_OPERATION_TYPES


def _format_validation_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        msg = error.get("msg", "invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


def validate_operation(op: Any) -> ValidationResult:
    """Validate one operation against the schema.

    Total over its input: any value yields a result, nothing is raised.
    """
    if isinstance(op, BaseOperation):
        op = op.to_wire()

    if isinstance(op, Mapping):
        op_type = op.get("type")
        if isinstance(op_type, str) and op_type not in OPERATION_TYPES:
            return ValidationResult.fail(f"Unknown operation type: '{op_type}'")

    try:
        OPERATION_ADAPTER.validate_python(op)
    except ValidationError as e:
        return ValidationResult(is_valid=False, errors=_format_validation_errors(e))
    except Exception as e:
        return ValidationResult.fail(f"Invalid operation: {e}")
    return ValidationResult.ok()


def validate_operations(ops: Any) -> ValidationResult:
    """Validate a list of operations, collecting errors for every index."""
    if not isinstance(ops, (list, tuple)):
        return ValidationResult.fail("Operations must be a list")

    errors: list[str] = []
    for index, op in enumerate(ops):
        result = validate_operation(op)
        if not result.is_valid:
            errors.extend(f"Operation {index}: {err}" for err in result.errors or [])

    if errors:
        return ValidationResult(is_valid=False, errors=errors)
    return ValidationResult.ok()


def coerce_operation(raw: Any) -> Operation:
    """Convert raw data (or an existing model) into a typed operation.

    Raises:
        pydantic.ValidationError: If ``raw`` does not match the schema
    """
    if isinstance(raw, BaseOperation):
        return raw
    return OPERATION_ADAPTER.validate_python(raw)
