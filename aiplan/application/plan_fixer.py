"""Auto-fix loop: re-prompt the model with failure context until the plan is reachable."""

import logging
from typing import Sequence

from aiplan.application.delimiters import format_operation_block
from aiplan.application.operation_validator import OperationValidator
from aiplan.application.response_parser import parse_response
from aiplan.domain.models.chat_message import ChatMessage
from aiplan.domain.models.execution import FailedOperation
from aiplan.domain.models.operation import EditOperation, Operation
from aiplan.domain.providers.response_provider import ResponseProvider
from aiplan.engine.file_io import read_text


logger = logging.getLogger(__name__)

FIND_PREVIEW_CHARS = 100
FILE_PREVIEW_CHARS = 500

FIX_SYSTEM_PROMPT = """You are a code repair assistant. Your task is to analyze failed file operations and produce corrected operations.

Core principles:
- Analyze the cause of each error carefully
- Base every operation on the actual file content
- Make sure each find text matches the file exactly once
- Use the correct delimited operation format"""


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def build_fix_prompt(failed_ops: Sequence[FailedOperation]) -> str:
    """Render the user prompt describing each failed operation."""
    parts = ["The following operations failed. Analyze the errors and produce corrected operations.", "", "Error details:"]

    for index, failed in enumerate(failed_ops, start=1):
        op = failed.operation
        parts.append("")
        parts.append(f"{index}. Operation type: {op.type}")
        parts.append(f"   Error: {failed.error}")
        parts.append(format_operation_block(op))

        if isinstance(op, EditOperation):
            if op.find:
                parts.append(f"   Find text: {_truncate(op.find, FIND_PREVIEW_CHARS)}")
            try:
                content = read_text(op.file_path)
            except (OSError, UnicodeDecodeError):
                content = None
            if content:
                parts.append(f"   File content:\n{_truncate(content, FILE_PREVIEW_CHARS)}")

    parts.append("")
    parts.append(
        "Fix requirements:\n"
        "1. Analyze why each operation failed\n"
        "2. If a find text does not match, adjust it to the actual file content\n"
        "3. If a file does not exist, consider creating it first\n"
        "4. Output the complete corrected operation sequence\n"
        "5. Use the delimited operation format"
    )
    return "\n".join(parts)


class PlanFixer:
    """Asks the model to repair failed operations, with bounded retries.

    Args:
        provider: Model transport
        validator: Used for reachability checks on each candidate fix
        model: Optional model override
        temperature: Optional temperature override
    """

    def __init__(
        self,
        provider: ResponseProvider,
        validator: OperationValidator,
        model: str | None = None,
        temperature: float | None = None,
    ):
        self.provider = provider
        self.validator = validator
        self.model = model
        self.temperature = temperature

    def auto_fix(
        self,
        failed_ops: Sequence[FailedOperation],
        max_retries: int = 3,
    ) -> list[Operation] | None:
        """Return reachable replacement operations, or None if fixing failed.

        Each attempt parses the reply, drops ``response`` operations and checks
        reachability of the rest. A reply with no file operations counts as a
        failed attempt. A provider error ends the loop immediately.
        """
        logger.warning(f"Attempting to auto-fix {len(failed_ops)} failed operation(s)")

        messages = [
            ChatMessage(role="system", content=FIX_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_fix_prompt(failed_ops)),
        ]

        for attempt in range(1, max_retries + 1):
            logger.info(f"Fix attempt {attempt}/{max_retries}")
            try:
                reply = self.provider.generate(messages, model=self.model, temperature=self.temperature)
            except Exception as e:
                logger.error(f"Fix attempt {attempt} failed: {e}")
                return None

            file_ops = [op for op in parse_response(reply) if op.type != "response"]
            if not file_ops:
                logger.warning("Model returned no usable operations")
                messages.append(ChatMessage(role="assistant", content=reply))
                messages.append(ChatMessage(
                    role="user",
                    content="No valid operations were found in your reply. Output the corrected operations.",
                ))
                continue

            validation = self.validator.validate_operations_reachability(file_ops)
            if validation.is_valid:
                logger.info(f"Fix succeeded with {len(file_ops)} operation(s)")
                return file_ops

            errors = "; ".join(validation.errors or [])
            logger.warning(f"Fixed operations still fail: {errors}")
            messages.append(ChatMessage(role="assistant", content=reply))
            messages.append(ChatMessage(role="user", content=f"The fix failed: {errors}. Please fix it again."))

        logger.error("Auto-fix failed after reaching the retry limit")
        return None
