"""Tests for delimiter escaping and operation block serialization."""

import pytest

from aiplan.application.delimited_parser import find_operation_blocks, parse_operation_block
from aiplan.application.delimiters import (
    escape_delimiters,
    format_block,
    format_operation_block,
    unescape_delimiters,
)
from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    ListDirectoryOperation,
    MoveOperation,
    ReadFileOperation,
    ResponseOperation,
    SearchContentOperation,
    coerce_operation,
)


class TestEscaping:
    def test_marker_lines_are_escaped(self):
        content = "--- content end ---"

        assert escape_delimiters(content) == "\\--- content end ---\\"

    def test_plain_text_is_untouched(self):
        content = "a --- b\n---\nnothing here"

        assert escape_delimiters(content) == content

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "plain",
            "--- OPERATION start ---",
            "\\--- already escaped ---\\",
            "\\\\--- twice ---\\\\",
            "--- x",
            "x ---",
            "line one\r\n--- FILE end ---\r\nline three",
            "--- a ---\n\n--- b ---\n",
        ],
    )
    def test_round_trip_is_exact(self, content):
        assert unescape_delimiters(escape_delimiters(content)) == content

    def test_escaped_content_never_matches_a_marker(self):
        escaped = escape_delimiters("--- content end ---\n--- OPERATION end ---")

        assert all(not line.startswith("--- ") for line in escaped.split("\n"))

    def test_crlf_keeps_carriage_return_last(self):
        assert escape_delimiters("x ---\r") == "x ---\\\r"


class TestFormatOperationBlock:
    def test_layout(self):
        op = EditOperation(file_path="/repo/a.py", comment="fix", find="old", content="new")

        assert format_operation_block(op) == "\n".join([
            "--- OPERATION start ---",
            "type: edit",
            "comment: fix",
            "filePath: /repo/a.py",
            "--- find start ---",
            "old",
            "--- find end ---",
            "--- content start ---",
            "new",
            "--- content end ---",
            "--- OPERATION end ---",
        ])

    def test_booleans_are_lowercase(self):
        block = format_operation_block(ListDirectoryOperation(path="src", recursive=True, max_depth=3))

        assert "recursive: true" in block
        assert "maxDepth: 3" in block

    def test_format_block_escapes(self):
        assert format_block("content", "--- x ---") == (
            "--- content start ---\n\\--- x ---\\\n--- content end ---"
        )

    @pytest.mark.parametrize(
        "op",
        [
            ResponseOperation(content="# Title\n\n--- content end ---\ntext"),
            CreateOperation(file_path="/repo/new.md", comment="doc", content="--- OPERATION end ---\nbody\n"),
            EditOperation(file_path="/repo/a.py", find="x = 1\n", content="x = 2\n"),
            EditOperation(file_path="/repo/a.py", content="whole file"),
            MoveOperation(old_path="/repo/a.py", new_path="/repo/b.py"),
            DeleteOperation(file_path="/repo/gone.py", comment="unused"),
            ListDirectoryOperation(path="src", recursive=False),
            SearchContentOperation(path="src", pattern="def main", file_pattern="**/*.py", context_lines=1),
            ReadFileOperation(path="src/app.py", start=2, end=8),
            ResponseOperation(comment="multi\nline comment", content="x"),
        ],
    )
    def test_parsing_a_formatted_block_returns_the_operation(self, op):
        blocks = find_operation_blocks(format_operation_block(op))

        assert len(blocks) == 1
        assert coerce_operation(parse_operation_block(blocks[0])) == op
