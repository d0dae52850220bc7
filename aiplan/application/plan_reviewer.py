"""Interactive plan review loop.

States: display the plan, then one of apply / review / export / cancel.
``review`` and a successful auto-fix produce a new plan and return to the
display state. ``apply`` is the only gated transition: schema failure offers a
force-apply, reachability failure offers an auto-fix first, and an execution
failure offers an auto-fix of the failed operations before giving up.

User interaction goes through two seams so the loop can run headless in tests:
``Prompter`` (menu, confirm, free text) and ``DiffViewer`` (show and edit a
proposed file content).
"""

import difflib
import json
import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import click

from aiplan.application.operation_validator import OperationValidator
from aiplan.application.plan_executor import PlanExecutor
from aiplan.application.plan_fixer import PlanFixer
from aiplan.domain.constants import DEFAULT_EXPORT_FILENAME, DEFAULT_PLAN_DESCRIPTION
from aiplan.domain.errors import PlanExecutionError, PlanValidationError
from aiplan.domain.models.execution import ExecutionSummary, FailedOperation, OperationResult
from aiplan.domain.models.operation import (
    CreateOperation,
    EditOperation,
    MoveOperation,
    Operation,
)
from aiplan.engine.file_io import read_text, replace_in_content


logger = logging.getLogger(__name__)

REVIEW_CHOICES = ("apply", "review", "export", "cancel")


class Prompter(ABC):
    """User interaction seam for the review loop."""

    @abstractmethod
    def choose(self, message: str, choices: Sequence[str]) -> str:
        ...

    @abstractmethod
    def confirm(self, message: str, default: bool = False) -> bool:
        ...

    @abstractmethod
    def ask(self, message: str, default: str | None = None) -> str:
        ...


class ClickPrompter(Prompter):
    """Terminal prompts through click."""

    def choose(self, message: str, choices: Sequence[str]) -> str:
        return click.prompt(message, type=click.Choice(list(choices)), default=choices[0])

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(message, default=default)

    def ask(self, message: str, default: str | None = None) -> str:
        return click.prompt(message, default=default)


class DiffViewer(ABC):
    @abstractmethod
    def show_diff(self, original: str, proposed: str, file_name_hint: str | None = None) -> str | None:
        """Show original vs proposed content and let the user edit the proposal.

        Returns:
            The edited proposal if the user changed it, otherwise None
        """
        ...


class ExternalDiffViewer(DiffViewer):
    """Opens both versions in an external diff editor and waits for it to close.

    The command is invoked as ``<command> --diff --wait <original> <proposed>``,
    which matches VS Code and compatible editors. A unified diff is echoed
    first so the change is visible even if the editor cannot be started.
    """

    def __init__(self, command: str = "code"):
        self.command = command

    def show_diff(self, original: str, proposed: str, file_name_hint: str | None = None) -> str | None:
        hint = Path(file_name_hint) if file_name_hint else Path("plan.tmp")
        label = file_name_hint or "file"

        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            proposed.splitlines(keepends=True),
            fromfile=f"a/{label}",
            tofile=f"b/{label}",
        )
        click.echo("".join(diff))

        with tempfile.TemporaryDirectory(prefix="aiplan-diff-") as temp_dir:
            original_path = Path(temp_dir) / f"{hint.stem}-original{hint.suffix}"
            proposed_path = Path(temp_dir) / f"{hint.stem}-new{hint.suffix}"
            try:
                with open(original_path, "w", encoding="utf-8", newline="") as f:
                    f.write(original)
                with open(proposed_path, "w", encoding="utf-8", newline="") as f:
                    f.write(proposed)

                subprocess.run(
                    [self.command, "--diff", "--wait", str(original_path), str(proposed_path)],
                    check=True,
                )

                with open(proposed_path, "r", encoding="utf-8", newline="") as f:
                    edited = f.read()
            except (OSError, subprocess.CalledProcessError) as e:
                click.echo(f"Error opening diff viewer: {e}", err=True)
                return None

        if edited != proposed:
            click.echo("Changes from the diff review were saved.")
            return edited
        click.echo("No changes detected in the diff review.")
        return None


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    """Result of a review session.

    ``operations`` lists every operation that reached the disk, including
    ones applied before an execution failure was auto-fixed. A plan that was
    cancelled after such a failure is not ``applied`` but still lists them.
    ``summary`` carries the merged backups needed to undo them.
    """

    applied: bool
    operations: list[Operation] = field(default_factory=list)
    summary: ExecutionSummary | None = None


def partial_outcome(summary: ExecutionSummary) -> ReviewOutcome:
    """Outcome of a plan whose execution stopped at a failure."""
    done = [r.operation for r in summary.execution_results if r.success]
    return ReviewOutcome(applied=False, operations=done, summary=summary)


def _carry_over(
    summary: ExecutionSummary | None, applied_before: list[Operation], backups: dict[str, str]
) -> ExecutionSummary:
    """Fold operations applied in earlier attempts into ``summary``."""
    earlier = [OperationResult(operation=op, success=True) for op in applied_before]
    if summary is None:
        return ExecutionSummary(
            execution_results=earlier,
            file_original_contents=dict(backups),
            successful_ops=len(earlier),
        )
    failed = [r for r in summary.execution_results if not r.success]
    return summary.model_copy(update={
        "execution_results": earlier + failed,
        "file_original_contents": dict(backups),
        "successful_ops": len(earlier),
    })


def _operation_target(op: Operation) -> str:
    if isinstance(op, MoveOperation):
        return f"{op.old_path} -> {op.new_path}"
    return getattr(op, "file_path", None) or getattr(op, "path", "")


class PlanReviewer:
    """Drives display, review, export and application of a plan.

    Args:
        validator: Schema and reachability checks
        executor: Applies the plan
        fixer: Auto-fix loop; None disables auto-fix offers
        prompter: User interaction seam (defaults to terminal prompts)
        diff_viewer: Content review seam (defaults to VS Code)
        max_fix_retries: Retry bound passed to the fixer
    """

    def __init__(
        self,
        validator: OperationValidator,
        executor: PlanExecutor,
        fixer: PlanFixer | None = None,
        prompter: Prompter | None = None,
        diff_viewer: DiffViewer | None = None,
        max_fix_retries: int = 3,
    ):
        self.validator = validator
        self.executor = executor
        self.fixer = fixer
        self.prompter = prompter or ClickPrompter()
        self.diff_viewer = diff_viewer or ExternalDiffViewer()
        self.max_fix_retries = max_fix_retries

    def display_plan(self, operations: Sequence[Operation]) -> None:
        """Print the plan summary with reachability warnings. Never blocks."""
        click.echo("\n--- Proposed file plan ---")
        if not operations:
            click.echo("No file operations proposed.")
            click.echo("--------------------------\n")
            return

        validation = self.validator.validate_operations(list(operations))
        if not validation.is_valid:
            click.echo("Warning: the plan contains invalid operations.", err=True)
            click.echo(f"Errors: {', '.join(validation.errors or [])}", err=True)
            return

        reachability = self.validator.validate_operations_reachability(operations)
        if reachability.is_valid:
            click.echo("All operations are reachable.")
        else:
            click.echo("Warning: some operations are not reachable, the plan is shown anyway.")
            for error in reachability.errors or []:
                click.echo(f"  {error}")

        for op in operations:
            click.echo(f"{op.type}: {_operation_target(op)}")
            if op.comment:
                click.echo(f"   {op.comment}")
        click.echo("--------------------------\n")

    def review_and_execute_plan(
        self,
        operations: Sequence[Operation],
        prompt_message: str = "",
        user_prompt: str | None = None,
        auto_apply: bool = False,
    ) -> ReviewOutcome:
        """Run the review loop and apply the plan if the user chooses to.

        Raises:
            PlanValidationError: In auto-apply mode when the plan is invalid
                or unreachable
            PlanExecutionError: When execution fails and is not auto-fixed
        """
        if not operations:
            return ReviewOutcome(applied=False)

        current = list(operations)
        description = user_prompt or DEFAULT_PLAN_DESCRIPTION

        initial = self.validator.validate_operations(current)
        if not initial.is_valid:
            click.echo("Initial validation failed, the plan is shown but may not be executable.", err=True)
            click.echo(f"Errors: {', '.join((initial.errors or [])[:3])}", err=True)

        if auto_apply:
            return self._auto_apply(current, description)

        message = prompt_message
        applied_before: list[Operation] = []
        backups: dict[str, str] = {}
        outcome: ReviewOutcome | None = None

        while outcome is None:
            if message:
                click.echo(message)
            self.display_plan(current)

            choice = self.prompter.choose("Choose an action", REVIEW_CHOICES)
            logger.debug(f"Review choice: {choice}")

            if choice == "apply":
                if not current:
                    click.echo("There are no file operations to apply.")
                    outcome = self._not_applied(applied_before, backups)
                    continue

                if not self._confirm_schema(current):
                    continue

                reachability = self.validator.validate_operations_reachability(current)
                if not reachability.is_valid:
                    click.echo("The plan contains unreachable operations.", err=True)
                    for error in reachability.errors or []:
                        click.echo(f"  {error}", err=True)

                    fixed = self._offer_reachability_fix(current)
                    if fixed:
                        current = fixed
                        message = "The plan was auto-fixed, please review:"
                        continue
                    if not self.prompter.confirm("Force apply the original plan?", False):
                        continue
                else:
                    click.echo("All operations are reachable.")

                try:
                    summary = self.executor.execute_plan(current, description)
                except PlanExecutionError as e:
                    click.echo(f"\nFailed to apply plan: {e}", err=True)
                    applied_before.extend(
                        r.operation for r in e.summary.execution_results if r.success
                    )
                    for path, content in e.summary.file_original_contents.items():
                        backups.setdefault(path, content)
                    fixed = self._offer_execution_fix(e.summary.failed_operations or [])
                    if fixed is None:
                        e.summary = _carry_over(e.summary, applied_before, backups)
                        raise
                    current = fixed
                    message = "The plan was auto-fixed, please review and apply again:"
                    continue
                except PlanValidationError as e:
                    click.echo(f"\nFailed to apply plan: {e}", err=True)
                    raise

                for path, content in summary.file_original_contents.items():
                    backups.setdefault(path, content)
                merged = summary.model_copy(update={"file_original_contents": backups})
                outcome = ReviewOutcome(applied=True, operations=applied_before + current, summary=merged)

            elif choice == "review":
                current = self.review_changes(current)
                if not current:
                    click.echo("All operations were removed during review.")
                    outcome = self._not_applied(applied_before, backups)
                else:
                    message = "The plan was updated. Review the new plan:"

            elif choice == "export":
                self.export_plan(current)
                message = "The plan was exported. Continue reviewing:"

            else:
                click.echo("Operation cancelled.")
                outcome = self._not_applied(applied_before, backups)

        if outcome.applied:
            click.echo("The plan was applied successfully.")
        else:
            click.echo("The plan was not applied.")
        return outcome

    def _auto_apply(self, current: list[Operation], description: str) -> ReviewOutcome:
        click.echo("Auto-apply mode: skipping interactive review.")
        self.display_plan(current)

        validation = self.validator.validate_operations(current)
        if not validation.is_valid:
            raise PlanValidationError(
                f"Invalid operations: {'; '.join(validation.errors or [])}", validation.errors
            )

        reachability = self.validator.validate_operations_reachability(current)
        if not reachability.is_valid:
            for error in reachability.errors or []:
                click.echo(f"  {error}", err=True)
            raise PlanValidationError(
                f"Unreachable operations: {'; '.join(reachability.errors or [])}", reachability.errors
            )

        summary = self.executor.execute_plan(current, description)
        click.echo("The plan was applied automatically.")
        return ReviewOutcome(applied=True, operations=current, summary=summary)

    @staticmethod
    def _not_applied(applied_before: list[Operation], backups: dict[str, str]) -> ReviewOutcome:
        if not applied_before:
            return ReviewOutcome(applied=False)
        click.echo(
            f"{len(applied_before)} operation(s) applied before the failure remain on disk "
            "and can be undone from history."
        )
        return ReviewOutcome(
            applied=False,
            operations=list(applied_before),
            summary=_carry_over(None, applied_before, backups),
        )

    def _confirm_schema(self, current: list[Operation]) -> bool:
        validation = self.validator.validate_operations(current)
        if validation.is_valid:
            return True
        click.echo("The plan contains invalid operations.", err=True)
        return self.prompter.confirm("Force apply a possibly invalid plan?", False)

    def _offer_reachability_fix(self, current: list[Operation]) -> list[Operation] | None:
        if self.fixer is None:
            return None
        if not self.prompter.confirm("Try to auto-fix these problems?", True):
            return None

        failed = []
        for op in current:
            result = self.validator.validate_reachability(op)
            error = "; ".join(result.errors or []) if not result.is_valid else "Operation passed reachability checks"
            failed.append(FailedOperation(operation=op, error=error))

        fixed = self.fixer.auto_fix(failed, max_retries=self.max_fix_retries)
        if not fixed:
            click.echo("Auto-fix did not succeed.", err=True)
        return fixed or None

    def _offer_execution_fix(self, failed: list[FailedOperation]) -> list[Operation] | None:
        if self.fixer is None or not failed:
            return None
        if not self.prompter.confirm(f"{len(failed)} operation(s) failed. Try to auto-fix?", True):
            return None
        fixed = self.fixer.auto_fix(failed, max_retries=self.max_fix_retries)
        return fixed or None

    def review_changes(self, operations: Sequence[Operation]) -> list[Operation]:
        """Show create/edit content in the diff viewer and fold user edits back in.

        A cancelled or unchanged diff keeps the operation as it was. A saved
        edit replaces the content; for ``edit`` it becomes a whole-file
        replacement, so ``find`` is dropped.
        """
        validation = self.validator.validate_operations(list(operations))
        if not validation.is_valid:
            click.echo("Operation validation failed, detailed review is not possible.", err=True)
            click.echo(f"Errors: {', '.join(validation.errors or [])}", err=True)
            return list(operations)

        click.echo("\n--- Reviewing file content changes ---")
        reviewed: list[Operation] = []
        for op in operations:
            if not isinstance(op, (CreateOperation, EditOperation)):
                reviewed.append(op)
                continue

            click.echo(f"\nShowing changes for: {op.file_path}")
            try:
                if isinstance(op, CreateOperation):
                    original = ""
                    proposed = op.content
                else:
                    original = read_text(op.file_path)
                    proposed = replace_in_content(original, op.content, op.find)
                edited = self.diff_viewer.show_diff(original, proposed, op.file_path)
            except (OSError, UnicodeDecodeError, ValueError) as e:
                click.echo(f"Error while reviewing {op.file_path}: {e}", err=True)
                reviewed.append(op)
                continue

            if edited is None:
                reviewed.append(op)
                continue

            update: dict = {"content": edited}
            if isinstance(op, EditOperation):
                update["find"] = None
            updated = op.model_copy(update=update)

            result = self.validator.validate_operation(updated)
            if result.is_valid:
                click.echo(f"Updated the planned content of {op.file_path}.")
                reviewed.append(updated)
            else:
                click.echo(f"Warning: the edited operation is invalid: {', '.join(result.errors or [])}")
                reviewed.append(op)

        click.echo("--- Review finished ---\n")
        return reviewed

    def export_plan(self, operations: Sequence[Operation]) -> Path | None:
        """Write the in-memory plan to a user-named JSON file."""
        file_name = self.prompter.ask("Export file name", DEFAULT_EXPORT_FILENAME)
        target = Path(file_name).resolve()
        try:
            with open(target, "w", encoding="utf-8") as f:
                json.dump([op.to_wire() for op in operations], f, indent=2, ensure_ascii=False)
        except OSError as e:
            click.echo(f"\nError exporting plan: {e}", err=True)
            return None
        click.echo(f"Plan exported to {target}")
        return target
