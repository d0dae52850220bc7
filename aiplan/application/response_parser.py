"""Turn a raw model reply into a list of typed operations.

JSON (parsed permissively with json5) is tried first; the delimited block
format is the fallback. Paths are resolved to absolute before validation in
both modes.
"""

import logging
from typing import Any

import json5
from pydantic import ValidationError

from aiplan.application.delimited_parser import (
    PATH_KEYS,
    PathResolver,
    find_operation_blocks,
    parse_operation_block,
)
from aiplan.application.delimiters import start_delimiter
from aiplan.domain.errors import DelimitedParseError, JsonOperationsError
from aiplan.domain.models.operation import (
    Operation,
    coerce_operation,
    validate_operation,
    validate_operations,
)
from aiplan.engine.file_io import to_absolute_path


logger = logging.getLogger(__name__)


def _looks_like_json(text: str) -> bool:
    return text.startswith("[") or (text.startswith("{") and text.endswith("}"))


def _resolve_paths(item: Any, path_resolver: PathResolver) -> Any:
    if not isinstance(item, dict):
        return item
    resolved = dict(item)
    for key in PATH_KEYS:
        value = resolved.get(key)
        if isinstance(value, str) and value:
            resolved[key] = path_resolver(value)
    return resolved


def parse_json_operations(text: str, path_resolver: PathResolver = to_absolute_path) -> list[Operation]:
    """Parse a JSON/JSON5 array (or single object) of operations.

    Returns an empty list when the text is not JSON at all.

    Raises:
        JsonOperationsError: If the text is JSON but not a valid operation list
    """
    if not _looks_like_json(text):
        return []

    try:
        data = json5.loads(text)
    except ValueError:
        return []

    items = data if isinstance(data, list) else [data]
    if not items:
        return []

    items = [_resolve_paths(item, path_resolver) for item in items]
    validation = validate_operations(items)
    if not validation.is_valid:
        details = "; ".join((validation.errors or ["unknown error"])[:3])
        raise JsonOperationsError(f"JSON validation failed: {details}")

    logger.info(f"Parsed {len(items)} JSON operations")
    return [coerce_operation(item) for item in items]


def parse_delimited_operations(
    text: str,
    should_validate: bool = True,
    loose_mode: bool = False,
    path_resolver: PathResolver = to_absolute_path,
) -> list[Operation]:
    """Parse every OPERATION block, skipping blocks that fail.

    One bad block never aborts the batch; skipped blocks are counted and
    reported as a warning.
    """
    blocks = find_operation_blocks(text)
    operations: list[Operation] = []
    skipped = 0

    for index, block in enumerate(blocks, start=1):
        try:
            raw = parse_operation_block(block, loose_mode=loose_mode, path_resolver=path_resolver)
        except DelimitedParseError as e:
            logger.warning(f"Failed to parse operation {index}: {e}")
            skipped += 1
            continue

        if should_validate:
            validation = validate_operation(raw)
            if not validation.is_valid:
                details = ", ".join(validation.errors or ["unknown error"])
                logger.warning(f"Operation {index} failed validation: {details}")
                skipped += 1
                continue

        try:
            operations.append(coerce_operation(raw))
        except ValidationError as e:
            logger.warning(f"Operation {index} could not be built: {e.error_count()} errors")
            skipped += 1

    if skipped:
        logger.warning(f"Ignored {skipped} invalid operation blocks")

    return operations


def parse_response(
    text: str,
    should_validate: bool = True,
    loose_mode: bool = False,
    path_resolver: PathResolver = to_absolute_path,
) -> list[Operation]:
    """Extract the ordered operation list from a model reply.

    Never raises for malformed replies: JSON that fails validation is logged
    and the delimited format is tried; an unusable reply yields ``[]``.

    Args:
        text: Raw model reply
        should_validate: Run schema validation on each delimited block
        loose_mode: Tolerate malformed content blocks (see delimited_parser)
        path_resolver: Resolves relative file paths to absolute paths
    """
    trimmed = text.strip()
    if not trimmed:
        logger.warning("Model reply is empty")
        return []

    try:
        json_ops = parse_json_operations(trimmed, path_resolver)
    except JsonOperationsError as e:
        logger.warning(f"JSON parsing failed: {e}")
        json_ops = []
    if json_ops:
        return json_ops

    delimited_ops = parse_delimited_operations(
        trimmed,
        should_validate=should_validate,
        loose_mode=loose_mode,
        path_resolver=path_resolver,
    )
    if delimited_ops:
        return delimited_ops

    if start_delimiter() in trimmed:
        logger.warning("Delimiters found but no valid operation could be parsed")
    return []
