"""Tests for request handling: conversation assembly, context rounds and history."""

from pathlib import Path
from types import SimpleNamespace

import pytest

from aiplan.application.config_models import AppConfig, AutoContextConfig
from aiplan.application.context_collector import ContextCollector
from aiplan.application.delimiters import format_operation_block
from aiplan.application.request_processor import RequestProcessor, build_summary
from aiplan.domain.errors import PlanExecutionError, ProviderError
from aiplan.domain.models.history_entry import HistoryEntry
from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    ReadFileOperation,
    ResponseOperation,
)
from aiplan.domain.persistence.history_store import HistoryStore
from tests.fakes import FakeProvider, ScriptedPrompter, make_reviewer


@pytest.fixture
def store(tmp_path: Path) -> HistoryStore:
    return HistoryStore(tmp_path / "history" / "history.json")


def _processor(
    provider: FakeProvider,
    tmp_path: Path,
    store: HistoryStore | None = None,
    prompter: ScriptedPrompter | None = None,
    config: AppConfig | None = None,
) -> RequestProcessor:
    return RequestProcessor(
        provider,
        make_reviewer(prompter=prompter),
        config or AppConfig(),
        collector=ContextCollector(tmp_path),
        history_store=store,
    )


def test_build_summary():
    ops = [
        ResponseOperation(content="Explained."),
        CreateOperation(file_path="/r/a.py", content="", comment="add module"),
        EditOperation(file_path="/r/b.py", content=""),
    ]

    assert build_summary(ops) == "Explained.\n\nFile operations:\n- add module"


def test_empty_prompt_does_nothing(tmp_path: Path):
    provider = FakeProvider(replies=[])

    result = _processor(provider, tmp_path).process_request("   ")

    assert result.operations == []
    assert provider.calls == []


def test_messages_include_system_prompt_files_and_request(tmp_path: Path):
    source = tmp_path / "a.txt"
    source.write_text("file body", encoding="utf-8")
    provider = FakeProvider(replies=[format_operation_block(ResponseOperation(content="ok"))])

    _processor(provider, tmp_path).process_request("explain", [str(source)], auto_context=False)

    messages = provider.calls[0]
    assert messages[0].role == "system"
    assert "--- OPERATION start ---" in messages[0].content
    assert messages[1].content == "explain"
    assert "file body" in messages[2].content


def test_custom_system_prompt(tmp_path: Path):
    provider = FakeProvider(replies=["plain text"])

    _processor(provider, tmp_path).process_request("hi", system_prompt="Be terse.", auto_context=False)

    assert provider.calls[0][0].content == "Be terse."


def test_plan_is_applied_and_recorded(tmp_path: Path, store: HistoryStore):
    target = tmp_path / "a.txt"
    target.write_text("foo\nbaz\n", encoding="utf-8")
    reply = "\n".join([
        format_operation_block(ResponseOperation(content="Swapping foo.")),
        format_operation_block(EditOperation(file_path=str(target), find="foo", content="bar", comment="swap")),
    ])
    provider = FakeProvider(replies=[reply])

    result = _processor(provider, tmp_path, store).process_request(
        "replace foo", auto_apply=True, auto_context=False
    )

    assert result.applied is True
    assert target.read_text(encoding="utf-8") == "bar\nbaz\n"

    entry = store.load()[0]
    assert entry.id == result.history_entry.id
    assert entry.prompt == "replace foo"
    assert entry.applied is True
    assert entry.ai_response == reply
    assert entry.original_file_contents == {str(target): "foo\nbaz\n"}
    assert entry.description == "Swapping foo.\n\nFile operations:\n- swap"


def test_cancelled_plan_is_recorded_as_not_applied(tmp_path: Path, store: HistoryStore):
    reply = format_operation_block(CreateOperation(file_path=str(tmp_path / "new.txt"), content="x"))
    provider = FakeProvider(replies=[reply])
    prompter = ScriptedPrompter(choices=["cancel"])

    result = _processor(provider, tmp_path, store, prompter).process_request("make it", auto_context=False)

    assert result.applied is False
    assert not (tmp_path / "new.txt").exists()
    assert store.load()[0].applied is False


def test_response_only_reply_is_recorded_without_applied_flag(tmp_path: Path, store: HistoryStore):
    provider = FakeProvider(replies=[format_operation_block(ResponseOperation(content="Just an answer"))])

    _processor(provider, tmp_path, store).process_request("question?", auto_context=False)

    entry = store.load()[0]
    assert entry.applied is None
    assert entry.description == "Just an answer"


def test_unstructured_reply_is_not_recorded(tmp_path: Path, store: HistoryStore):
    provider = FakeProvider(replies=["I refuse to use the format"])

    result = _processor(provider, tmp_path, store).process_request("anything", auto_context=False)

    assert result.reply == "I refuse to use the format"
    assert store.load() == []


def test_context_round_feeds_results_back(tmp_path: Path):
    (tmp_path / "notes.txt").write_text("remember this", encoding="utf-8")
    provider = FakeProvider(replies=[
        format_operation_block(ReadFileOperation(path="notes.txt")),
        format_operation_block(ResponseOperation(content="Read it")),
    ])

    result = _processor(provider, tmp_path).process_request("read notes")

    assert len(provider.calls) == 2
    follow_up = provider.calls[1]
    assert follow_up[-2].role == "assistant"
    assert follow_up[-1].content.startswith("Context results:")
    assert "remember this" in follow_up[-1].content
    assert result.operations == [ResponseOperation(content="Read it")]


def test_context_rounds_are_bounded(tmp_path: Path):
    read = format_operation_block(ReadFileOperation(path="x.txt"))
    provider = FakeProvider(replies=[read, read, read])
    config = AppConfig(auto_context=AutoContextConfig(max_rounds=2))

    _processor(provider, tmp_path, config=config).process_request("loop forever")

    assert len(provider.calls) == 2


def test_disabled_auto_context_makes_one_call(tmp_path: Path):
    provider = FakeProvider(replies=[format_operation_block(ReadFileOperation(path="x.txt"))])

    _processor(provider, tmp_path).process_request("one shot", auto_context=False)

    assert len(provider.calls) == 1


def test_history_is_replayed_oldest_first(tmp_path: Path, store: HistoryStore):
    store.append(HistoryEntry(id="1", prompt="first", ai_response="r1", applied=True))
    store.append(HistoryEntry(id="2", prompt="second", ai_response="r2"))
    provider = FakeProvider(replies=["plain"])

    _processor(provider, tmp_path, store).process_request("third", history_depth=2, auto_context=False)

    contents = [m.content for m in provider.calls[0][1:]]
    assert contents == ["first", "r1", "The user applied this plan.", "second", "r2", "third"]


def test_history_by_reference(tmp_path: Path, store: HistoryStore):
    store.append(HistoryEntry(id="1", name="setup", prompt="first", ai_response="r1"))
    store.append(HistoryEntry(id="2", prompt="second", ai_response="r2"))
    provider = FakeProvider(replies=["plain"])

    _processor(provider, tmp_path, store).process_request("next", history_ids=["setup"], auto_context=False)

    contents = [m.content for m in provider.calls[0][1:]]
    assert contents == ["first", "r1", "next"]


def test_provider_error_propagates(tmp_path: Path, store: HistoryStore):
    provider = FakeProvider(replies=[ProviderError("timeout")])

    with pytest.raises(ProviderError):
        _processor(provider, tmp_path, store).process_request("hi", auto_context=False)

    assert store.load() == []


def test_partial_execution_failure_is_recorded_for_undo(tmp_path: Path, store: HistoryStore):
    target = tmp_path / "a.txt"
    target.write_text("foo\n", encoding="utf-8")
    reply = "\n".join([
        format_operation_block(DeleteOperation(file_path=str(target))),
        format_operation_block(EditOperation(file_path=str(target), content="gone")),
    ])
    provider = FakeProvider(replies=[reply])

    with pytest.raises(PlanExecutionError):
        _processor(provider, tmp_path, store).process_request("remove it", auto_apply=True, auto_context=False)

    entry = store.load()[0]
    assert entry.applied is False
    assert entry.operations == [DeleteOperation(file_path=str(target))]
    assert entry.original_file_contents == {str(target): "foo\n"}


def test_requests_in_the_same_millisecond_get_distinct_ids(
    tmp_path: Path, store: HistoryStore, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setattr("aiplan.domain.persistence.history_store.time", SimpleNamespace(time=lambda: 42.0))
    provider = FakeProvider(replies=[
        format_operation_block(ResponseOperation(content="one")),
        format_operation_block(ResponseOperation(content="two")),
    ])
    processor = _processor(provider, tmp_path, store)

    first = processor.process_request("first", auto_context=False).history_entry
    second = processor.process_request("second", auto_context=False).history_entry

    assert (first.id, second.id) == ("42000", "42001")
    assert store.find(first.id)[0].prompt == "first"
