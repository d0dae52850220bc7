"""Render user-supplied files as FILE blocks for the model prompt.

A file argument is a path, ``path:START-END``, ``path:START-`` / ``path:START``,
or a glob pattern. Glob matches are included in full. Several ranges for the
same file are intersected.

Block layout:

    --- FILE start ---
    --- metadata start ---
    path: /abs/path
    range: 10-20
    --- metadata end ---
    --- content start ---
    <escaped file text>
    --- content end ---
    --- FILE end ---
"""

import glob
import logging
import os
import re
from dataclasses import dataclass
from typing import Sequence

from aiplan.application.delimiters import end_delimiter, escape_delimiters, start_delimiter
from aiplan.engine.file_io import IgnoreFilter, read_text


logger = logging.getLogger(__name__)

_GLOB_CHARS = re.compile(r"[*?\[\]]")
_RANGE_SUFFIX = re.compile(r":(\d+)(?:-(\d*))?$")


@dataclass
class FileContextItem:
    path: str
    start: int | None = None
    end: int | None = None
    comment: str | None = None


def parse_file_spec(spec: str) -> tuple[str, int | None, int | None]:
    """Split ``path:START-END`` into its parts. A start below 1 means no range."""
    match = _RANGE_SUFFIX.search(spec)
    if not match:
        return spec, None, None

    path = spec[: match.start()]
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else None
    if start < 1:
        return path, None, None
    return path, start, end


def format_file_block(
    path: str,
    content: str,
    range_desc: str | None = None,
    comment: str | None = None,
    match_ranges: str | None = None,
) -> str:
    lines = [start_delimiter("FILE"), start_delimiter("metadata"), f"path: {path}"]
    if range_desc:
        lines.append(f"range: {range_desc}")
    if match_ranges:
        lines.append(f"matchRanges: {match_ranges}")
    if comment:
        lines.append(f"comment: {comment}")
    lines.append(end_delimiter("metadata"))
    lines.append(start_delimiter("content"))
    lines.append(escape_delimiters(content))
    lines.append(end_delimiter("content"))
    lines.append(end_delimiter("FILE"))
    return "\n".join(lines)


def _render_item(item: FileContextItem) -> str | None:
    if os.path.isdir(item.path):
        return None
    try:
        text = read_text(item.path)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot read file {item.path}, skipping: {e}")
        return None

    if item.start is None and item.end is None:
        return format_file_block(item.path, text, comment=item.comment)

    lines = text.split("\n")
    start = item.start or 1
    end = min(item.end, len(lines)) if item.end is not None else len(lines)
    selected = lines[start - 1:end]
    if not selected:
        logger.warning(f"Range {start}-{item.end or 'end'} of {item.path} is empty, skipping")
        return None

    range_desc = f"{start}-{item.end if item.end is not None else 'end'}"
    return format_file_block(item.path, "\n".join(selected), range_desc, item.comment)


def format_file_contexts(items: Sequence[FileContextItem]) -> str:
    blocks = [block for block in (_render_item(item) for item in items) if block]
    if blocks:
        logger.info(f"Added {len(blocks)} file(s) to the context")
    return "\n\n".join(blocks)


def collect_file_context(patterns: Sequence[str], ignore_filter: IgnoreFilter | None = None) -> str:
    """Build the FILE-block context for a list of file arguments.

    Missing files, ignored glob matches and empty range intersections are
    skipped with a warning. Returns ``""`` when nothing matched.
    """
    ranges: dict[str, list[tuple[int | None, int | None]]] = {}

    for pattern in patterns:
        if _GLOB_CHARS.search(pattern):
            for match in sorted(glob.glob(pattern, recursive=True, include_hidden=True)):
                path = os.path.abspath(match)
                if ignore_filter is not None and ignore_filter.is_ignored(path):
                    continue
                ranges.setdefault(path, []).append((None, None))
        else:
            path, start, end = parse_file_spec(pattern)
            ranges.setdefault(os.path.abspath(path), []).append((start, end))

    items: list[FileContextItem] = []
    for path, spans in ranges.items():
        starts = [s for s, _ in spans if s is not None]
        ends = [e for _, e in spans if e is not None]
        start = max(starts) if starts else None
        end = min(ends) if ends else None

        if start is not None and end is not None and start > end:
            logger.warning(f"Ranges given for {path} do not overlap, skipping")
            continue
        if not os.path.exists(path):
            logger.warning(f"File does not exist or is not accessible: {path}, skipping")
            continue
        items.append(FileContextItem(path=path, start=start, end=end))

    if not items:
        logger.warning("No files matched the given patterns")
        return ""
    return format_file_contexts(items)
