"""Filesystem primitives used by the plan pipeline.

Engine owns file I/O: reachability checks, the executor and the context
collector all go through this module. Text is read and written as UTF-8 with
newline translation disabled so CRLF files round-trip unchanged.
"""

import logging
import os
import re
from pathlib import Path

import pathspec

from aiplan.domain.constants import IGNORE_FILENAME, REPO_ROOT_MARKERS


logger = logging.getLogger(__name__)

_BARE_LF = re.compile(r"(?<!\r)\n")


def read_text(path: str | Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_text(path: str | Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def find_repo_root(start_dir: str | Path | None = None) -> Path:
    """Walk upward to the nearest directory holding a repository marker.

    Falls back to ``start_dir`` (or cwd) when no marker is found.
    """
    start = Path(start_dir or os.getcwd()).resolve()
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in REPO_ROOT_MARKERS):
            return candidate
    return start


def to_absolute_path(file_path: str, root: str | Path | None = None) -> str:
    """Resolve a path the way operations expect it.

    Order: already absolute, then relative to cwd if that exists, then
    relative to the repository root.
    """
    if os.path.isabs(file_path):
        return os.path.normpath(file_path)

    cwd_resolved = os.path.normpath(os.path.join(os.getcwd(), file_path))
    if os.path.exists(cwd_resolved):
        return cwd_resolved

    repo_root = Path(root) if root is not None else find_repo_root()
    return os.path.normpath(os.path.join(repo_root, file_path))


def adapt_line_endings(original: str, text: str) -> str:
    """Convert bare LF in ``text`` to CRLF when ``original`` uses CRLF."""
    if "\r\n" in original:
        return _BARE_LF.sub("\r\n", text)
    return text


def count_matches(original: str, find: str) -> int:
    """Count non-overlapping occurrences of ``find`` after line-ending adaptation."""
    return original.count(adapt_line_endings(original, find))


def replace_in_content(original: str, content: str, find: str | None = None) -> str:
    """Return the new file content for an edit.

    Without ``find`` the content replaces the whole file. With ``find`` the
    text must occur exactly once.

    Raises:
        ValueError: If ``find`` matches zero or several times
    """
    if not find:
        return content

    adapted_find = adapt_line_endings(original, find)
    replacement = adapt_line_endings(original, content)
    match_count = original.count(adapted_find)

    if match_count == 0:
        raise ValueError(f"No match found for: {adapted_find!r}")
    if match_count > 1:
        raise ValueError(
            f"Found {match_count} matches for: {adapted_find!r}, a more specific find text is required"
        )
    return original.replace(adapted_find, replacement, 1)


def create_file(file_path: str | Path, content: str) -> None:
    """Create a file, making parent directories as needed."""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    write_text(file_path, content)


def write_with_replace(file_path: str | Path, content: str, find: str | None = None) -> None:
    original = read_text(file_path)
    write_text(file_path, replace_in_content(original, content, find))


def move_file(old_path: str | Path, new_path: str | Path) -> None:
    source = Path(old_path)
    if not source.exists():
        raise FileNotFoundError(f"Source file does not exist: {old_path}")
    Path(new_path).parent.mkdir(parents=True, exist_ok=True)
    source.rename(new_path)


def delete_file(file_path: str | Path) -> None:
    Path(file_path).unlink()


class IgnoreFilter:
    """Gitignore-style matcher over ``.aiplanignore`` and optionally ``.gitignore``.

    Patterns are read once from the repository root. Paths are matched
    relative to that root; paths outside it are never ignored.
    """

    def __init__(self, root: str | Path | None = None, follow_gitignore: bool = True):
        self.root = Path(root).resolve() if root is not None else find_repo_root()
        self.follow_gitignore = follow_gitignore

        lines = self._read_patterns(self.root / IGNORE_FILENAME)
        if follow_gitignore:
            lines.extend(self._read_patterns(self.root / ".gitignore"))
        self._spec = pathspec.GitIgnoreSpec.from_lines(lines) if lines else None

    @staticmethod
    def _read_patterns(path: Path) -> list[str]:
        if not path.is_file():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read ignore file {path}: {e}")
            return []
        return [
            line.strip()
            for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]

    def is_ignored(self, file_path: str | Path) -> bool:
        if self._spec is None:
            return False

        path = Path(file_path)
        if path.is_absolute():
            try:
                path = path.resolve().relative_to(self.root)
            except ValueError:
                return False
        return self._spec.match_file(path.as_posix())
