"""Undo and redo of recorded plans."""

import logging

import click

from aiplan.application.plan_reviewer import PlanReviewer, ReviewOutcome
from aiplan.domain.models.history_entry import HistoryEntry
from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    MoveOperation,
    Operation,
    is_file_operation,
)
from aiplan.domain.persistence.history_store import HistoryStore


logger = logging.getLogger(__name__)


def build_undo_operations(entry: HistoryEntry) -> list[Operation]:
    """Invert the entry's file operations, newest first.

    - create -> delete
    - delete -> create with the recorded original content
    - move   -> move back
    - edit   -> whole-file edit restoring the recorded original content

    Operations whose original content was not recorded are skipped.
    """
    originals = entry.original_file_contents
    undo: list[Operation] = []

    for op in reversed([op for op in entry.operations if is_file_operation(op)]):
        if isinstance(op, CreateOperation):
            undo.append(DeleteOperation(file_path=op.file_path, comment=f"Undo create: {op.file_path}"))
        elif isinstance(op, DeleteOperation):
            if op.file_path in originals:
                undo.append(CreateOperation(
                    file_path=op.file_path,
                    content=originals[op.file_path],
                    comment=f"Undo delete: restore {op.file_path}",
                ))
        elif isinstance(op, MoveOperation):
            undo.append(MoveOperation(
                old_path=op.new_path,
                new_path=op.old_path,
                comment=f"Undo move: {op.new_path} -> {op.old_path}",
            ))
        elif isinstance(op, EditOperation):
            if op.file_path in originals:
                undo.append(EditOperation(
                    file_path=op.file_path,
                    content=originals[op.file_path],
                    comment=f"Undo edit: restore original content of {op.file_path}",
                ))
    return undo


def build_redo_operations(entry: HistoryEntry) -> list[Operation]:
    return [op for op in entry.operations if is_file_operation(op)]


class HistoryService:
    """Replays recorded plans forwards or backwards through the reviewer.

    Entries are kept after undo so they can be redone.
    """

    def __init__(self, store: HistoryStore, reviewer: PlanReviewer):
        self.store = store
        self.reviewer = reviewer

    def undo(self, id_or_name: str, auto_apply: bool = False) -> tuple[HistoryEntry, ReviewOutcome]:
        """
        Raises:
            HistoryError: If the entry cannot be found
        """
        entry, _ = self.store.find(id_or_name)
        operations = build_undo_operations(entry)
        logger.info(f"Undo of {entry.id}: {len(operations)} operation(s)")
        if not operations:
            click.echo(f"Nothing to undo for entry {entry.id}.")
            return entry, ReviewOutcome(applied=False)
        outcome = self.reviewer.review_and_execute_plan(
            operations, "Review the undo plan:", entry.prompt, auto_apply
        )
        return entry, outcome

    def redo(self, id_or_name: str, auto_apply: bool = False) -> tuple[HistoryEntry, ReviewOutcome]:
        entry, _ = self.store.find(id_or_name)
        operations = build_redo_operations(entry)
        logger.info(f"Redo of {entry.id}: {len(operations)} operation(s)")
        if not operations:
            click.echo(f"Nothing to redo for entry {entry.id}.")
            return entry, ReviewOutcome(applied=False)
        outcome = self.reviewer.review_and_execute_plan(
            operations, "Review the redo plan:", entry.prompt, auto_apply
        )
        return entry, outcome
