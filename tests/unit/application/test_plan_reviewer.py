"""Tests for the interactive review loop, driven headless through fakes."""

import json
from pathlib import Path

import pytest

from aiplan.application.delimiters import format_operation_block
from aiplan.application.history_service import build_undo_operations
from aiplan.domain.errors import PlanExecutionError, PlanValidationError
from aiplan.domain.models.history_entry import HistoryEntry
from aiplan.domain.models.operation import CreateOperation, DeleteOperation, EditOperation
from tests.fakes import FakeDiffViewer, FakeProvider, ScriptedPrompter, make_reviewer


@pytest.fixture
def target(tmp_path: Path) -> Path:
    path = tmp_path / "a.txt"
    path.write_text("foo\nbaz\n", encoding="utf-8")
    return path


class TestApplyAndCancel:
    def test_apply(self, target: Path):
        op = EditOperation(file_path=str(target), find="foo", content="bar")
        reviewer = make_reviewer(prompter=ScriptedPrompter(choices=["apply"]))

        outcome = reviewer.review_and_execute_plan([op])

        assert outcome.applied is True
        assert outcome.operations == [op]
        assert outcome.summary.file_original_contents == {str(target): "foo\nbaz\n"}
        assert target.read_text(encoding="utf-8") == "bar\nbaz\n"

    def test_cancel_leaves_files_alone(self, target: Path):
        op = EditOperation(file_path=str(target), find="foo", content="bar")
        reviewer = make_reviewer(prompter=ScriptedPrompter(choices=["cancel"]))

        outcome = reviewer.review_and_execute_plan([op])

        assert outcome.applied is False
        assert target.read_text(encoding="utf-8") == "foo\nbaz\n"

    def test_empty_plan_is_not_applied(self):
        assert make_reviewer().review_and_execute_plan([]).applied is False

    def test_unreachable_plan_declined_then_cancelled(self, target: Path):
        op = CreateOperation(file_path=str(target), content="conflict")
        prompter = ScriptedPrompter(choices=["apply", "cancel"], confirms=[False])
        reviewer = make_reviewer(prompter=prompter)

        outcome = reviewer.review_and_execute_plan([op])

        assert outcome.applied is False
        assert "Force apply the original plan?" in prompter.messages

    def test_unreachable_plan_is_auto_fixed(self, target: Path):
        bad = EditOperation(file_path=str(target), find="missing", content="x")
        good = EditOperation(file_path=str(target), find="baz", content="qux")
        provider = FakeProvider(replies=[format_operation_block(good)])
        prompter = ScriptedPrompter(choices=["apply", "apply"], confirms=[True])
        reviewer = make_reviewer(provider=provider, prompter=prompter)

        outcome = reviewer.review_and_execute_plan([bad])

        assert outcome.applied is True
        assert outcome.operations == [good]
        assert target.read_text(encoding="utf-8") == "foo\nqux\n"


class TestExecutionFailure:
    def test_failure_without_fixer_raises(self, target: Path, tmp_path: Path):
        # Both pass reachability up front; the second breaks once the first has run
        ops = [
            DeleteOperation(file_path=str(target)),
            EditOperation(file_path=str(target), content="gone"),
        ]
        reviewer = make_reviewer(prompter=ScriptedPrompter(choices=["apply"]))

        with pytest.raises(PlanExecutionError):
            reviewer.review_and_execute_plan(ops)

        assert not target.exists()

    def test_failure_is_auto_fixed_and_backups_merged(self, target: Path, tmp_path: Path):
        ops = [
            DeleteOperation(file_path=str(target)),
            EditOperation(file_path=str(target), content="gone"),
        ]
        fix = CreateOperation(file_path=str(target), content="recreated")
        provider = FakeProvider(replies=[format_operation_block(fix)])
        prompter = ScriptedPrompter(choices=["apply", "apply"], confirms=[True])
        reviewer = make_reviewer(provider=provider, prompter=prompter)

        outcome = reviewer.review_and_execute_plan(ops)

        assert outcome.applied is True
        assert outcome.operations == [ops[0], fix]
        assert outcome.summary.file_original_contents == {str(target): "foo\nbaz\n"}
        assert target.read_text(encoding="utf-8") == "recreated"

    def test_cancel_after_fix_keeps_backups_of_applied_operations(self, target: Path, tmp_path: Path):
        ops = [
            DeleteOperation(file_path=str(target)),
            EditOperation(file_path=str(target), content="gone"),
        ]
        fix = CreateOperation(file_path=str(tmp_path / "other.txt"), content="other")
        provider = FakeProvider(replies=[format_operation_block(fix)])
        prompter = ScriptedPrompter(choices=["apply", "cancel"], confirms=[True])
        reviewer = make_reviewer(provider=provider, prompter=prompter)

        outcome = reviewer.review_and_execute_plan(ops)

        assert outcome.applied is False
        assert outcome.operations == [ops[0]]
        assert outcome.summary is not None
        assert outcome.summary.file_original_contents == {str(target): "foo\nbaz\n"}
        assert not target.exists()
        assert not (tmp_path / "other.txt").exists()

        entry = HistoryEntry(
            id="1",
            prompt="p",
            operations=outcome.operations,
            original_file_contents=outcome.summary.file_original_contents,
            applied=False,
        )
        assert build_undo_operations(entry) == [
            CreateOperation(file_path=str(target), content="foo\nbaz\n", comment=f"Undo delete: restore {target}")
        ]

    def test_second_failure_carries_earlier_backups(self, target: Path, tmp_path: Path):
        other = tmp_path / "b.txt"
        other.write_text("bee", encoding="utf-8")
        ops = [
            DeleteOperation(file_path=str(target)),
            EditOperation(file_path=str(target), content="gone"),
        ]
        fix = "\n".join([
            format_operation_block(DeleteOperation(file_path=str(other))),
            format_operation_block(EditOperation(file_path=str(other), content="gone")),
        ])
        provider = FakeProvider(replies=[fix])
        prompter = ScriptedPrompter(choices=["apply", "apply"], confirms=[True, False])
        reviewer = make_reviewer(provider=provider, prompter=prompter)

        with pytest.raises(PlanExecutionError) as exc_info:
            reviewer.review_and_execute_plan(ops)

        summary = exc_info.value.summary
        assert summary.file_original_contents == {str(target): "foo\nbaz\n", str(other): "bee"}
        assert [r.operation for r in summary.execution_results if r.success] == [
            ops[0],
            DeleteOperation(file_path=str(other)),
        ]
        assert summary.successful_ops == 2
        assert summary.failed_ops == 1


class TestSchemaFailure:
    def test_declining_force_apply_returns_to_menu(self, tmp_path: Path):
        new_file = tmp_path / "new.txt"
        ops = [{"type": "create"}, CreateOperation(file_path=str(new_file), content="x")]
        prompter = ScriptedPrompter(choices=["apply", "cancel"], confirms=[False])

        outcome = make_reviewer(prompter=prompter).review_and_execute_plan(ops)

        assert outcome.applied is False
        assert outcome.operations == []
        assert prompter.messages == [
            "Choose an action",
            "Force apply a possibly invalid plan?",
            "Choose an action",
        ]
        assert not new_file.exists()

    def test_forced_invalid_plan_is_rejected_before_any_write(self, tmp_path: Path):
        new_file = tmp_path / "new.txt"
        ops = [{"type": "create"}, CreateOperation(file_path=str(new_file), content="x")]
        prompter = ScriptedPrompter(choices=["apply"], confirms=[True, True])

        with pytest.raises(PlanValidationError, match="invalid operations"):
            make_reviewer(prompter=prompter).review_and_execute_plan(ops)

        assert "Force apply a possibly invalid plan?" in prompter.messages
        assert not new_file.exists()


class TestAutoApply:
    def test_applies_without_prompting(self, target: Path):
        op = EditOperation(file_path=str(target), find="foo", content="bar")
        prompter = ScriptedPrompter()

        outcome = make_reviewer(prompter=prompter).review_and_execute_plan([op], auto_apply=True)

        assert outcome.applied is True
        assert prompter.messages == []

    def test_unreachable_plan_raises(self, target: Path):
        op = CreateOperation(file_path=str(target), content="x")

        with pytest.raises(PlanValidationError, match="Unreachable"):
            make_reviewer().review_and_execute_plan([op], auto_apply=True)

        assert target.read_text(encoding="utf-8") == "foo\nbaz\n"

    def test_invalid_plan_raises(self):
        with pytest.raises(PlanValidationError, match="Invalid"):
            make_reviewer().review_and_execute_plan([{"type": "create"}], auto_apply=True)


class TestReviewChanges:
    def test_saved_edit_replaces_whole_file_content(self, target: Path):
        op = EditOperation(file_path=str(target), find="foo", content="bar")
        viewer = FakeDiffViewer(edits=["hand edited\n"])
        reviewer = make_reviewer(diff_viewer=viewer)

        reviewed = reviewer.review_changes([op])

        assert viewer.shown == [("foo\nbaz\n", "bar\nbaz\n", str(target))]
        assert reviewed == [EditOperation(file_path=str(target), content="hand edited\n")]

    def test_unchanged_diff_keeps_operation(self, target: Path, tmp_path: Path):
        ops = [
            CreateOperation(file_path=str(tmp_path / "new.txt"), content="x"),
            DeleteOperation(file_path=str(target)),
        ]

        assert make_reviewer(diff_viewer=FakeDiffViewer()).review_changes(ops) == ops

    def test_review_then_apply(self, target: Path):
        op = EditOperation(file_path=str(target), find="foo", content="bar")
        prompter = ScriptedPrompter(choices=["review", "apply"])
        reviewer = make_reviewer(prompter=prompter, diff_viewer=FakeDiffViewer(edits=["reviewed\n"]))

        outcome = reviewer.review_and_execute_plan([op])

        assert outcome.applied is True
        assert target.read_text(encoding="utf-8") == "reviewed\n"


def test_export_writes_wire_json(target: Path, tmp_path: Path):
    export_path = tmp_path / "exported.json"
    op = EditOperation(file_path=str(target), find="foo", content="bar", comment="swap")
    prompter = ScriptedPrompter(choices=["export", "cancel"], answers=[str(export_path)])

    outcome = make_reviewer(prompter=prompter).review_and_execute_plan([op])

    assert outcome.applied is False
    assert json.loads(export_path.read_text(encoding="utf-8")) == [
        {"type": "edit", "filePath": str(target), "find": "foo", "content": "bar", "comment": "swap"}
    ]
