"""Delimited block grammar: markers, escaping and serialization.

A block is bounded by ``--- NAME start ---`` and ``--- NAME end ---`` marker
lines. Content that itself contains marker-looking lines is escaped line by
line: a line beginning with ``--- `` (after any run of backslashes) gains one
leading backslash, and a line ending with `` ---`` (before any run of
backslashes) gains one trailing backslash. Unescaping removes exactly one, so
``unescape_delimiters(escape_delimiters(s)) == s`` for every string.

Bare ``---`` lines and mid-line markers are left alone.
"""

import re
from typing import Any

from aiplan.domain.models.operation import BaseOperation


ESCAPE_CHAR = "\\"
OPERATION_IDENT = "OPERATION"

START_DELIMITER_RE = re.compile(r"^--- ([A-Za-z0-9_]+) start ---$")
END_DELIMITER_RE = re.compile(r"^--- ([A-Za-z0-9_]+) end ---$")

# Closing markers accepted for any open content block in loose mode
LOOSE_END_MARKERS = ("--- end ---", "--- end content ---")

_ESCAPE_PREFIX_RE = re.compile(r"^(\\*)--- ")
_ESCAPE_SUFFIX_RE = re.compile(r" ---(\\*)(\r?)$")
_UNESCAPE_PREFIX_RE = re.compile(r"^\\(\\*)--- ")
_UNESCAPE_SUFFIX_RE = re.compile(r" ---(\\*)\\(\r?)$")

# Wire fields rendered as sub-blocks, in emission order
BLOCK_FIELDS = ("find", "content")


def start_delimiter(ident: str = OPERATION_IDENT) -> str:
    return f"--- {ident} start ---"


def end_delimiter(ident: str = OPERATION_IDENT) -> str:
    return f"--- {ident} end ---"


def _map_lines(content: str, prefix: re.Pattern, prefix_repl: str,
               suffix: re.Pattern, suffix_repl: str) -> str:
    lines = content.split("\n")
    return "\n".join(
        suffix.sub(suffix_repl, prefix.sub(prefix_repl, line, count=1), count=1)
        for line in lines
    )


def escape_delimiters(content: str) -> str:
    return _map_lines(
        content,
        _ESCAPE_PREFIX_RE, r"\\\1--- ",
        _ESCAPE_SUFFIX_RE, r" ---\1\\\2",
    )


def unescape_delimiters(content: str) -> str:
    return _map_lines(
        content,
        _UNESCAPE_PREFIX_RE, r"\1--- ",
        _UNESCAPE_SUFFIX_RE, r" ---\1\2",
    )


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_block(ident: str, content: str) -> str:
    """Render one escaped sub-block."""
    return f"{start_delimiter(ident)}\n{escape_delimiters(content)}\n{end_delimiter(ident)}"


def format_operation_block(op: BaseOperation) -> str:
    """Serialize a typed operation as a delimited OPERATION block.

    ``type`` comes first, then scalar fields in model order, then block
    fields (``find`` before ``content``). Scalar values spanning several
    lines are emitted as sub-blocks so the block parses back to the same
    operation.
    """
    wire = op.to_wire()
    lines = [start_delimiter(), f"type: {wire.pop('type')}"]
    blocks = []

    for key, value in wire.items():
        if key in BLOCK_FIELDS:
            continue
        text = _format_scalar(value)
        if "\n" in text:
            blocks.append(format_block(key, text))
        else:
            lines.append(f"{key}: {text}")

    for key in BLOCK_FIELDS:
        if key in wire:
            blocks.append(format_block(key, wire[key]))

    lines.extend(blocks)
    lines.append(end_delimiter())
    return "\n".join(lines)
