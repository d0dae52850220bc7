from typing import Any, Literal
from pydantic import BaseModel, Field


class BaseOutput(BaseModel):
    schema_version: int = 1
    command: Literal["ask", "exec-plan", "history", "config"]
    exit_code: int
    error: str | None = None


class AskOutput(BaseOutput):
    command: Literal["ask"] = "ask"
    applied: bool = False
    operation_count: int = 0
    # Omitted when history is disabled or nothing was recorded.
    history_id: str | None = None


class ExecPlanOutput(BaseOutput):
    command: Literal["exec-plan"] = "exec-plan"
    source: str
    applied: bool = False
    operation_count: int = 0
    history_id: str | None = None


class HistoryEntrySummary(BaseModel):
    """Summary of a single history entry for list output."""
    id: str
    name: str | None = None
    timestamp: str
    prompt: str
    applied: bool | None = None
    file_operations: int = 0


class HistoryListOutput(BaseOutput):
    command: Literal["history"] = "history"
    action: Literal["list"] = "list"
    entries: list[HistoryEntrySummary] = Field(default_factory=list)


class HistoryActionOutput(BaseOutput):
    command: Literal["history"] = "history"
    action: Literal["undo", "redo", "delete", "clear"]
    entry_id: str | None = None
    applied: bool | None = None


class ConfigOutput(BaseOutput):
    command: Literal["config"] = "config"
    config: dict[str, Any] = Field(default_factory=dict)
