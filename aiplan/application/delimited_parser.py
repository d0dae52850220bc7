"""Parser for the delimited operation block format.

Two independent stages with different tolerance policies:

- ``find_operation_blocks`` locates top-level OPERATION blocks. A nested start
  discards the in-progress block, an orphan end is ignored, and an
  unterminated trailing block is dropped.
- ``parse_operation_block`` turns one block body into a field dict. Nested
  content starts and unterminated content blocks raise in strict mode and are
  auto-closed in loose mode.
"""

import logging
from typing import Any, Callable

from aiplan.application.delimiters import (
    END_DELIMITER_RE,
    LOOSE_END_MARKERS,
    START_DELIMITER_RE,
    end_delimiter,
    start_delimiter,
    unescape_delimiters,
)
from aiplan.domain.errors import DelimitedParseError


logger = logging.getLogger(__name__)

PATH_KEYS = ("filePath", "oldPath", "newPath")
LINE_NUMBER_KEYS = ("startLine", "endLine")

PathResolver = Callable[[str], str]


def find_operation_blocks(response: str) -> list[str]:
    """Return the raw bodies of all complete top-level OPERATION blocks."""
    start_marker = start_delimiter()
    end_marker = end_delimiter()

    blocks: list[str] = []
    current: list[str] = []
    in_block = False

    for line in response.split("\n"):
        stripped = line.strip()

        if stripped == start_marker:
            if in_block:
                logger.warning("Nested operation start found, discarding the open block")
            in_block = True
            current = []
            continue

        if stripped == end_marker:
            if not in_block:
                logger.warning("Orphan operation end marker ignored")
                continue
            in_block = False
            body = "\n".join(current)
            if body.strip():
                blocks.append(body)
            current = []
            continue

        if in_block:
            current.append(line)

    if in_block and current:
        logger.warning("Unterminated operation block ignored")

    return blocks


def _coerce_line_number(value: str) -> int | float | None:
    try:
        number = float(value)
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def parse_operation_block(
    block: str,
    loose_mode: bool = False,
    path_resolver: PathResolver | None = None,
) -> dict[str, Any]:
    """Parse one OPERATION block body into a raw field mapping.

    Args:
        block: Text between the OPERATION start and end markers
        loose_mode: Auto-close malformed content blocks instead of failing
        path_resolver: Applied to ``filePath``/``oldPath``/``newPath`` values

    Returns:
        Field dict using wire names; content blocks are unescaped

    Raises:
        DelimitedParseError: On nesting or termination errors (strict mode)
            or when the block has no ``type``
    """
    operation: dict[str, Any] = {}
    content_key: str | None = None
    content_lines: list[str] = []

    def close_content() -> None:
        operation[content_key.lower()] = unescape_delimiters("\n".join(content_lines))

    for line in block.split("\n"):
        stripped = line.strip()

        start_match = START_DELIMITER_RE.match(stripped)
        if start_match:
            if content_key:
                if not loose_mode:
                    raise DelimitedParseError(
                        f"Nested start delimiter inside '{content_key}' block: '{stripped}'"
                    )
                close_content()
                logger.warning(f"Auto-closed unterminated {content_key.lower()} block")
                content_lines = []
            content_key = start_match.group(1)
            continue

        if content_key:
            end_match = END_DELIMITER_RE.match(stripped)
            if (end_match and end_match.group(1) == content_key) or (
                loose_mode and stripped in LOOSE_END_MARKERS
            ):
                close_content()
                content_key = None
                content_lines = []
            else:
                content_lines.append(line)
            continue

        if not stripped:
            continue

        separator = stripped.find(":")
        if separator <= 0:
            logger.warning(f"Skipping invalid parameter line: '{stripped}'")
            continue

        key = stripped[:separator].strip()
        value = stripped[separator + 1:].strip()

        if key in LINE_NUMBER_KEYS:
            number = _coerce_line_number(value)
            if number is not None:
                operation[key] = number
                continue
        elif key in PATH_KEYS and value:
            operation[key] = path_resolver(value) if path_resolver else value
            continue

        if key and value:
            operation[key] = value

    if not operation.get("type"):
        raise DelimitedParseError(f"Operation block is missing the 'type' field: {operation}")

    if content_key:
        if not loose_mode:
            raise DelimitedParseError(f"Unterminated content block: '{content_key}'")
        close_content()
        logger.warning(f"Auto-closed unterminated {content_key.lower()} block")

    return operation
