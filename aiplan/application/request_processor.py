"""End-to-end handling of one user request.

Builds the conversation (system prompt, replayed history, file context, the
request), then runs a bounded loop of model rounds. Context operations are
executed and fed back while rounds remain; the first reply without pending
context requests (or the last reply once the round limit is hit) is handed
to the reviewer and recorded in history.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

import click

from aiplan.application.config_models import AppConfig
from aiplan.application.context_collector import ContextCollector
from aiplan.application.file_context import collect_file_context
from aiplan.application.plan_reviewer import PlanReviewer, partial_outcome
from aiplan.application.prompts import construct_system_prompt
from aiplan.application.response_parser import parse_response
from aiplan.domain.errors import PlanExecutionError
from aiplan.domain.models.chat_message import ChatMessage
from aiplan.domain.models.history_entry import HistoryEntry
from aiplan.domain.models.operation import (
    Operation,
    ResponseOperation,
    is_context_operation,
    is_file_operation,
)
from aiplan.domain.persistence.history_store import HistoryStore
from aiplan.domain.providers.response_provider import ResponseProvider
from aiplan.engine.file_io import IgnoreFilter


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RequestResult:
    reply: str | None = None
    operations: list[Operation] = field(default_factory=list)
    applied: bool = False
    history_entry: HistoryEntry | None = None


def build_summary(operations: Sequence[Operation]) -> str:
    """Describe a plan from its response texts and file operation comments."""
    parts = []
    responses = [op.content for op in operations if isinstance(op, ResponseOperation)]
    if responses:
        parts.append("\n\n".join(responses))

    comments = [f"- {op.comment}" for op in operations if is_file_operation(op) and op.comment]
    if comments:
        parts.append("File operations:\n" + "\n".join(comments))
    return "\n\n".join(parts)


class RequestProcessor:
    """Runs the model rounds for a request and routes the resulting operations.

    Args:
        provider: Model transport
        reviewer: Review/apply loop for file operations
        config: Effective application configuration
        collector: Executes context operations (None disables them)
        history_store: Where requests are recorded (None disables history)
        ignore_filter: Applied to glob file arguments
    """

    def __init__(
        self,
        provider: ResponseProvider,
        reviewer: PlanReviewer,
        config: AppConfig,
        collector: ContextCollector | None = None,
        history_store: HistoryStore | None = None,
        ignore_filter: IgnoreFilter | None = None,
    ):
        self.provider = provider
        self.reviewer = reviewer
        self.config = config
        self.collector = collector
        self.history_store = history_store
        self.ignore_filter = ignore_filter

    def resolve_system_prompt(self, system_prompt: str | None = None) -> str:
        if system_prompt is not None:
            return system_prompt
        if self.config.system_prompt:
            return self.config.system_prompt
        return construct_system_prompt()

    def _history_entries(self, history_ids: Sequence[str] | None, history_depth: int | None) -> list[HistoryEntry]:
        if self.history_store is None:
            return []
        if history_ids:
            return [self.history_store.find(id_or_name)[0] for id_or_name in history_ids]
        depth = history_depth if history_depth is not None else self.config.history_depth
        return self.history_store.recent(depth)

    def build_messages(
        self,
        user_prompt: str,
        files: Sequence[str] = (),
        history_ids: Sequence[str] | None = None,
        history_depth: int | None = None,
        system_prompt: str | None = None,
    ) -> tuple[list[ChatMessage], list[str]]:
        """Assemble the initial conversation.

        Returns:
            Tuple of (messages, effective file arguments including those
            recorded on replayed history entries)
        """
        messages: list[ChatMessage] = []
        prompt = self.resolve_system_prompt(system_prompt)
        if prompt:
            messages.append(ChatMessage(role="system", content=prompt))

        all_files = list(files)
        entries = self._history_entries(history_ids, history_depth)
        # Oldest first so the conversation reads in order
        for entry in reversed(entries):
            all_files.extend(entry.files)
            messages.append(ChatMessage(role="user", content=entry.prompt))
            messages.append(ChatMessage(role="assistant", content=entry.ai_response or ""))
            if entry.applied is not None:
                choice = "applied" if entry.applied else "discarded"
                messages.append(ChatMessage(role="user", content=f"The user {choice} this plan."))
        if entries:
            logger.info(f"Added {len(entries)} history entries to the conversation")

        messages.append(ChatMessage(role="user", content=user_prompt))

        if all_files:
            file_context = collect_file_context(all_files, self.ignore_filter)
            if file_context:
                messages.append(ChatMessage(role="user", content=file_context))

        return messages, all_files

    def process_request(
        self,
        user_prompt: str,
        files: Sequence[str] = (),
        *,
        history_ids: Sequence[str] | None = None,
        history_depth: int | None = None,
        system_prompt: str | None = None,
        auto_context: bool | None = None,
        auto_apply: bool = False,
        model: str | None = None,
        temperature: float | None = None,
    ) -> RequestResult:
        """Handle one request end to end.

        Raises:
            ProviderError: If a model call fails; the request is aborted
            PlanValidationError / PlanExecutionError: Propagated from the reviewer
        """
        if not user_prompt.strip():
            click.echo("The request is empty, nothing to do.")
            return RequestResult()

        messages, all_files = self.build_messages(
            user_prompt, files, history_ids, history_depth, system_prompt
        )

        gather = self.config.auto_context.enabled if auto_context is None else auto_context
        gather = gather and self.collector is not None
        max_rounds = self.config.auto_context.max_rounds if gather else 1
        max_operations = self.config.auto_context.max_operations
        effective_temperature = temperature if temperature is not None else self.config.temperature

        reply = ""
        operations: list[Operation] = []
        for round_number in range(1, max_rounds + 1):
            if gather:
                click.echo(f"\n=== Context round {round_number}/{max_rounds} ===")

            reply = self.provider.generate(messages, model=model, temperature=effective_temperature)
            operations = parse_response(reply)
            self._show_responses(operations)

            context_ops = [op for op in operations if is_context_operation(op)]
            if not context_ops:
                break
            if not gather or round_number == max_rounds:
                logger.warning(f"Ignoring {len(context_ops)} context operation(s): no rounds left")
                break

            if len(context_ops) > max_operations:
                logger.warning(f"Too many context operations, running the first {max_operations}")
                context_ops = context_ops[:max_operations]

            click.echo(f"Running {len(context_ops)} context operation(s)...")
            results = self.collector.execute_all(context_ops)
            messages.append(ChatMessage(role="assistant", content=reply))
            messages.append(ChatMessage(
                role="user",
                content=f"Context results:\n{results}\n\nContinue the task based on this information.",
            ))

        return self._handle_final(reply, operations, user_prompt, all_files, auto_apply)

    def _show_responses(self, operations: Sequence[Operation]) -> None:
        responses = [op for op in operations if isinstance(op, ResponseOperation)]
        if not responses:
            return
        click.echo("\n--- Model notes ---")
        for op in responses:
            if op.comment:
                click.echo(f"Note: {op.comment}")
            click.echo(op.content)
            click.echo()
        click.echo("--- End of notes ---\n")

    def _handle_final(
        self,
        reply: str,
        operations: list[Operation],
        user_prompt: str,
        files: list[str],
        auto_apply: bool,
    ) -> RequestResult:
        if not operations:
            click.echo("The model did not propose any structured operations.")
            click.echo("\n--- Raw model reply ---")
            click.echo(reply.strip())
            return RequestResult(reply=reply)

        file_ops = [op for op in operations if is_file_operation(op)]
        response_ops = [op for op in operations if isinstance(op, ResponseOperation)]

        if not file_ops:
            entry = self._record(user_prompt, reply, response_ops, {}, None, files)
            return RequestResult(reply=reply, operations=operations, history_entry=entry)

        try:
            outcome = self.reviewer.review_and_execute_plan(file_ops, "", user_prompt, auto_apply)
        except PlanExecutionError as e:
            partial = partial_outcome(e.summary)
            if partial.operations:
                self._record(
                    user_prompt, reply, response_ops + partial.operations,
                    e.summary.file_original_contents, False, files,
                )
            raise

        # Operations already on disk are recorded even when the plan was not applied
        recorded_ops = response_ops + (outcome.operations if outcome.operations else file_ops)
        originals = outcome.summary.file_original_contents if outcome.summary else {}
        entry = self._record(user_prompt, reply, recorded_ops, originals, outcome.applied, files)
        return RequestResult(
            reply=reply, operations=operations, applied=outcome.applied, history_entry=entry
        )

    def _record(
        self,
        user_prompt: str,
        reply: str,
        operations: list[Operation],
        originals: dict[str, str],
        applied: bool | None,
        files: list[str],
    ) -> HistoryEntry | None:
        if self.history_store is None:
            return None

        description = build_summary(operations)
        if not description:
            file_count = sum(1 for op in operations if is_file_operation(op))
            description = f"{file_count} file operation(s)" if file_count else "Model response only"

        entry = HistoryEntry(
            id=self.history_store.new_id(),
            description=description,
            prompt=user_prompt,
            ai_response=reply,
            operations=operations,
            original_file_contents=originals,
            applied=applied,
            files=files,
        )
        self.history_store.append(entry)
        logger.info(f"Saved history entry {entry.id}")
        return entry
