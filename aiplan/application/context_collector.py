"""Executes read-only context operations requested by the model.

Results are returned as delimited text for the next model turn. Failures are
reported inside the result block instead of being raised, so one bad request
never aborts a round.
"""

import logging
import os
import re
from pathlib import Path
from typing import Sequence

from aiplan.application.delimiters import end_delimiter, start_delimiter
from aiplan.application.file_context import format_file_block
from aiplan.domain.constants import SKIPPED_DIRECTORIES
from aiplan.domain.models.operation import (
    ContextOperation,
    ListDirectoryOperation,
    ReadFileOperation,
    SearchContentOperation,
)
from aiplan.engine.file_io import IgnoreFilter, read_text


logger = logging.getLogger(__name__)

MAX_LISTED_ENTRIES = 200
MAX_SEARCHED_FILES = 50
MAX_SEARCH_MATCHES = 30
DEFAULT_MAX_DEPTH = 2
DEFAULT_CONTEXT_LINES = 2
DEFAULT_FILE_PATTERN = "**/*"


def _result_block(ident: str, *lines: str) -> str:
    return "\n".join([start_delimiter(ident), *lines, end_delimiter(ident)])


def _is_hidden(relative: Path) -> bool:
    return any(part.startswith(".") or part in SKIPPED_DIRECTORIES for part in relative.parts)


class ContextCollector:
    """Runs ``list_directory``, ``search_content`` and ``read_file`` operations.

    Relative paths are resolved against ``root`` (the working directory by
    default). Files matched by the ignore filter are skipped in searches.
    """

    def __init__(self, root: Path | None = None, ignore_filter: IgnoreFilter | None = None):
        self.root = root or Path.cwd()
        self.ignore_filter = ignore_filter

    def _resolve(self, path: str) -> Path:
        return (self.root / path).resolve()

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.root)
        except ValueError:
            return str(path)

    def list_directory(self, op: ListDirectoryOperation) -> str:
        recursive = bool(op.recursive)
        max_depth = op.max_depth if op.max_depth is not None else DEFAULT_MAX_DEPTH
        base = self._resolve(op.path)

        if not base.is_dir():
            return _result_block("LIST_DIRECTORY_RESULT", f"path: {op.path}", f"error: Not a directory: {base}")

        entries = []
        for entry in base.glob("**/*" if recursive else "*"):
            relative = entry.relative_to(base)
            if _is_hidden(relative):
                continue
            if recursive and len(relative.parts) > max_depth:
                continue
            entries.append(relative.as_posix())

        listing = "\n".join(f"  {name}" for name in sorted(entries)[:MAX_LISTED_ENTRIES])
        return _result_block("LIST_DIRECTORY_RESULT", f"path: {op.path}", "files:", listing)

    def search_content(self, op: SearchContentOperation) -> str:
        file_pattern = op.file_pattern or DEFAULT_FILE_PATTERN
        context_lines = op.context_lines if op.context_lines is not None else DEFAULT_CONTEXT_LINES
        base = self._resolve(op.path)

        try:
            regex = re.compile(op.pattern, re.IGNORECASE)
        except re.error as e:
            return _result_block("SEARCH_CONTENT_RESULT", f"pattern: {op.pattern}", f"error: {e}")

        try:
            candidates = sorted(
                p for p in base.glob(file_pattern)
                if p.is_file() and not _is_hidden(p.relative_to(base))
            )
        except (OSError, ValueError, NotImplementedError) as e:
            return _result_block("SEARCH_CONTENT_RESULT", f"pattern: {op.pattern}", f"error: {e}")

        results: list[str] = []
        total_matches = 0
        for file in candidates[:MAX_SEARCHED_FILES]:
            if self.ignore_filter is not None and self.ignore_filter.is_ignored(file):
                continue
            try:
                lines = read_text(file).split("\n")
            except (OSError, UnicodeDecodeError):
                continue

            matches: list[tuple[int, list[str]]] = []
            for index, line in enumerate(lines):
                if total_matches >= MAX_SEARCH_MATCHES:
                    break
                if regex.search(line):
                    start = max(0, index - context_lines)
                    end = min(len(lines), index + context_lines + 1)
                    matches.append((index + 1, lines[start:end]))
                    total_matches += 1

            if matches:
                match_ranges = ", ".join(str(line_no) for line_no, _ in matches)
                content = "\n...\n\n".join("\n".join(context) for _, context in matches)
                results.append(format_file_block(
                    self._relative(file),
                    content,
                    comment=f'Search "{op.pattern}" found {len(matches)} match(es)',
                    match_ranges=match_ranges,
                ))

        if not results:
            return _result_block("SEARCH_CONTENT_RESULT", f"pattern: {op.pattern}", "matches: 0", "No matches found")
        return "\n\n".join(results)

    def read_file(self, op: ReadFileOperation) -> str:
        path = self._resolve(op.path)
        try:
            lines = read_text(path).split("\n")
        except (OSError, UnicodeDecodeError) as e:
            return format_file_block(op.path, f"error: {e}")

        if op.start is None:
            return format_file_block(op.path, "\n".join(lines), comment=op.comment)

        end = min(op.end, len(lines)) if op.end is not None else len(lines)
        selected = lines[max(op.start, 1) - 1:end]
        range_desc = f"{op.start}-{op.end if op.end is not None else 'end'}"
        return format_file_block(op.path, "\n".join(selected), range_desc, op.comment)

    def execute(self, op: ContextOperation) -> str:
        logger.info(f"Gathering context: {op.type} {op.comment or ''}".rstrip())
        if isinstance(op, ListDirectoryOperation):
            return self.list_directory(op)
        if isinstance(op, SearchContentOperation):
            return self.search_content(op)
        if isinstance(op, ReadFileOperation):
            return self.read_file(op)
        return _result_block("CONTEXT_RESULT", f"error: Unsupported context operation: {op.type}")

    def execute_all(self, operations: Sequence[ContextOperation]) -> str:
        return "\n\n".join(self.execute(op) for op in operations)
