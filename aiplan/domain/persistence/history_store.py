import json
import re
import time
from pathlib import Path
from typing import Any

from aiplan.domain.constants import HISTORY_TEMP_SUFFIX
from aiplan.domain.errors import HistoryError
from aiplan.domain.models.history_entry import HistoryEntry


_INDEX_REF = re.compile(r"^~(\d+)$")


class HistoryStore:
    """Handles persistence of the request history.

    Entries are stored newest first as a single JSON list.
    """

    def __init__(self, history_file: Path):
        """
        Initialize the history store.

        Args:
            history_file: Path to the history JSON file (created on first save)
        """
        self.history_file = history_file

    def load(self) -> list[HistoryEntry]:
        """
        Load all history entries, newest first.

        Returns:
            List of entries (empty if the file does not exist yet)

        Raises:
            HistoryError: If the file exists but is not a valid history list
        """
        if not self.history_file.exists():
            return []

        try:
            with open(self.history_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise HistoryError(f"Cannot read history file {self.history_file}: {e}") from e

        if not isinstance(data, list):
            raise HistoryError(f"History file {self.history_file} must contain a list")

        return [self._deserialize(item) for item in data]

    def save(self, entries: list[HistoryEntry]) -> Path:
        """
        Persist the full list of entries atomically.

        Returns:
            Path to the saved history file
        """
        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.history_file.with_suffix(HISTORY_TEMP_SUFFIX)

        data = [self._serialize(entry) for entry in entries]

        # Write atomically - write to temp, then rename
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        temp_file.replace(self.history_file)
        return self.history_file

    def new_id(self) -> str:
        """Millisecond timestamp id, bumped past ids already in the store."""
        taken = {entry.id for entry in self.load()}
        candidate = int(time.time() * 1000)
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def append(self, entry: HistoryEntry) -> None:
        """Insert an entry at the front (newest first)."""
        entries = self.load()
        entries.insert(0, entry)
        self.save(entries)

    def find(self, id_or_name: str) -> tuple[HistoryEntry, int]:
        """
        Look up an entry by id, name, or ``~n`` (1-based, newest first).

        Returns:
            Tuple of (entry, zero-based index)

        Raises:
            HistoryError: If nothing matches or the index is out of range
        """
        entries = self.load()
        return self._find_in(entries, id_or_name)

    def delete(self, id_or_name: str) -> HistoryEntry:
        entries = self.load()
        entry, index = self._find_in(entries, id_or_name)
        del entries[index]
        self.save(entries)
        return entry

    def clear(self) -> None:
        self.save([])

    def recent(self, depth: int) -> list[HistoryEntry]:
        """Return the ``depth`` most recent entries (none when depth < 1)."""
        if depth < 1:
            return []
        return self.load()[:depth]

    @staticmethod
    def _find_in(entries: list[HistoryEntry], id_or_name: str) -> tuple[HistoryEntry, int]:
        match = _INDEX_REF.match(id_or_name)
        if match:
            position = int(match.group(1))
            if 0 < position <= len(entries):
                return entries[position - 1], position - 1
            raise HistoryError(
                f"Index {id_or_name} is out of range (valid range: 1-{len(entries)})"
            )

        for index, entry in enumerate(entries):
            if entry.id == id_or_name or entry.name == id_or_name:
                return entry, index

        raise HistoryError(f"History entry not found: {id_or_name}")

    def _serialize(self, entry: HistoryEntry) -> dict[str, Any]:
        return entry.model_dump(mode="json", by_alias=True, exclude_none=True)

    def _deserialize(self, data: Any) -> HistoryEntry:
        try:
            return HistoryEntry.model_validate(data)
        except Exception as e:
            raise HistoryError(f"Invalid history entry: {e}") from e
