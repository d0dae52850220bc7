"""History entry model persisted after a plan is handled."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from aiplan.domain.models.operation import Operation


class HistoryEntry(BaseModel):
    """A durable record of one request and the plan it produced.

    ``original_file_contents`` holds the pre-execution content of every file
    edited or deleted by the plan, which makes undo possible.
    """

    id: str
    name: str | None = None
    description: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    prompt: str
    ai_response: str | None = None
    operations: list[Operation] = Field(default_factory=list)
    original_file_contents: dict[str, str] = Field(default_factory=dict)
    applied: bool | None = None
    files: list[str] = Field(default_factory=list)

    def file_operations(self) -> list[Operation]:
        return [op for op in self.operations if op.type != "response"]
