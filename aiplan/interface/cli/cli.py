import click
import logging
import sys
from contextlib import contextmanager, redirect_stdout
from pathlib import Path
from typing import Callable, Iterator
from pydantic import BaseModel

from aiplan.application.config_models import AppConfig
from aiplan.application.config_provider import ConfigProvider
from aiplan.application.context_collector import ContextCollector
from aiplan.application.history_service import HistoryService
from aiplan.application.operation_validator import OperationValidator
from aiplan.application.plan_executor import PlanExecutor
from aiplan.application.plan_fixer import PlanFixer
from aiplan.application.plan_reviewer import ExternalDiffViewer, PlanReviewer, ReviewOutcome, partial_outcome
from aiplan.application.request_processor import RequestProcessor, build_summary
from aiplan.application.response_parser import parse_response
from aiplan.domain.constants import CONFIG_DIR_NAME, HISTORY_FILENAME
from aiplan.domain.errors import PlanExecutionError
from aiplan.domain.models.history_entry import HistoryEntry
from aiplan.domain.models.operation import is_file_operation
from aiplan.domain.persistence.history_store import HistoryStore
from aiplan.domain.providers import ProviderFactory
from aiplan.domain.providers.response_provider import ResponseProvider
from aiplan.engine.file_io import IgnoreFilter, find_repo_root, read_text
from aiplan.interface.cli.output_models import (
    AskOutput,
    BaseOutput,
    ConfigOutput,
    ExecPlanOutput,
    HistoryActionOutput,
    HistoryEntrySummary,
    HistoryListOutput,
)

logger = logging.getLogger(__name__)


def _json_emit(model: BaseModel) -> None:
    # Single-line JSON, omit None fields (e.g., AskOutput.history_id without history).
    click.echo(model.model_dump_json(exclude_none=True), nl=True)


def _get_json_mode(ctx: click.Context) -> bool:
    obj = ctx.obj or {}
    return bool(obj.get("json", False))


def _format_error(e: Exception) -> str:
    """Format exception into user-friendly message."""
    if isinstance(e, FileNotFoundError):
        return f"File not found: {e.filename}" if e.filename else str(e)
    if isinstance(e, KeyError):
        return str(e.args[0]) if e.args else str(e)
    return str(e)


@contextmanager
def _console(ctx: click.Context) -> Iterator[None]:
    """Send interactive output to stderr in JSON mode so stdout holds only the JSON object."""
    if not _get_json_mode(ctx):
        yield
        return
    with redirect_stdout(sys.stderr):
        yield


def _fail(ctx: click.Context, e: Exception, output: Callable[[str], BaseOutput]) -> None:
    """Report a command failure as JSON or as a ClickException."""
    error_msg = _format_error(e)
    logger.debug("Command failed", exc_info=e)
    if _get_json_mode(ctx):
        _json_emit(output(error_msg))
        raise click.exceptions.Exit(1)
    raise click.ClickException(error_msg) from e


def _project_root() -> Path:
    return find_repo_root()


def _load_app_config() -> AppConfig:
    return ConfigProvider(project_root=_project_root(), user_home=Path.home()).get()


def _create_provider(config: AppConfig) -> ResponseProvider:
    return ProviderFactory.create(config.provider, config.provider_config())


def _history_store(config: AppConfig) -> HistoryStore:
    if config.history_scope == "project":
        base = _project_root()
    else:
        base = Path.home()
    return HistoryStore(base / CONFIG_DIR_NAME / HISTORY_FILENAME)


def _ignore_filter(config: AppConfig) -> IgnoreFilter:
    return IgnoreFilter(root=_project_root(), follow_gitignore=config.follow_gitignore)


def _build_reviewer(
    config: AppConfig,
    provider: ResponseProvider,
    validator: OperationValidator,
    model: str | None = None,
    temperature: float | None = None,
) -> PlanReviewer:
    fixer = PlanFixer(
        provider,
        validator,
        model=model,
        temperature=temperature if temperature is not None else config.temperature,
    )
    return PlanReviewer(
        validator,
        PlanExecutor(),
        fixer=fixer,
        diff_viewer=ExternalDiffViewer(config.diff_viewer),
        max_fix_retries=config.auto_fix.max_retries,
    )


def _record_plan(store: HistoryStore, prompt: str, text: str, outcome: ReviewOutcome) -> HistoryEntry | None:
    """Record the operations of a plan that reached the disk, if any."""
    if not outcome.operations:
        return None
    entry = HistoryEntry(
        id=store.new_id(),
        description=build_summary(outcome.operations) or f"{len(outcome.operations)} file operation(s)",
        prompt=prompt,
        ai_response=text,
        operations=outcome.operations,
        original_file_contents=outcome.summary.file_original_contents if outcome.summary else {},
        applied=outcome.applied,
    )
    store.append(entry)
    return entry


@click.group(help="Ask a language model for a file plan, review it and apply it.")
@click.option("--json", "json_output", is_flag=True, help="Emit machine-readable JSON on stdout.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, verbose: bool) -> None:
    ctx.ensure_object(dict)
    ctx.obj["json"] = bool(json_output)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@cli.command("ask")
@click.argument("prompt", type=str)
@click.option("--file", "-f", "files", multiple=True, help="File, glob or 'path:start-end' to include as context.")
@click.option("--history", "history_ids", multiple=True, help="History entry (id, name or ~n) to replay.")
@click.option("--history-depth", type=int, default=None, help="Replay the N most recent history entries.")
@click.option("--auto-apply", is_flag=True, help="Apply the plan without interactive review.")
@click.option("--model", type=str, default=None, help="Model override.")
@click.option("--temperature", type=click.FloatRange(0, 2), default=None, help="Sampling temperature.")
@click.option("--auto-context/--no-auto-context", default=None, help="Let the model gather context first.")
@click.option("--system-prompt", type=str, default=None, help="Replace the default system prompt.")
@click.pass_context
def ask_cmd(
    ctx: click.Context,
    prompt: str,
    files: tuple[str, ...],
    history_ids: tuple[str, ...],
    history_depth: int | None,
    auto_apply: bool,
    model: str | None,
    temperature: float | None,
    auto_context: bool | None,
    system_prompt: str | None,
) -> None:
    """Send PROMPT (or '-' to read it from stdin) to the model."""
    try:
        if prompt == "-":
            prompt = click.get_text_stream("stdin").read()

        config = _load_app_config()
        provider = _create_provider(config)
        validator = OperationValidator(_ignore_filter(config))
        processor = RequestProcessor(
            provider,
            _build_reviewer(config, provider, validator, model, temperature),
            config,
            collector=ContextCollector(ignore_filter=_ignore_filter(config)),
            history_store=_history_store(config),
            ignore_filter=_ignore_filter(config),
        )

        with _console(ctx):
            result = processor.process_request(
                prompt,
                files,
                history_ids=history_ids or None,
                history_depth=history_depth,
                system_prompt=system_prompt,
                auto_context=auto_context,
                auto_apply=auto_apply,
                model=model,
                temperature=temperature,
            )

        if _get_json_mode(ctx):
            _json_emit(
                AskOutput(
                    exit_code=0,
                    applied=result.applied,
                    operation_count=len(result.operations),
                    history_id=result.history_entry.id if result.history_entry else None,
                )
            )
            raise click.exceptions.Exit(0)

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: AskOutput(exit_code=1, error=msg))


@cli.command("exec-plan")
@click.argument("source", type=str)
@click.option("--auto-apply", is_flag=True, help="Apply the plan without interactive review.")
@click.pass_context
def exec_plan_cmd(ctx: click.Context, source: str, auto_apply: bool) -> None:
    """Review and apply a plan read from SOURCE (a file path or '-' for stdin)."""
    try:
        if source == "-":
            text = click.get_text_stream("stdin").read()
        else:
            text = read_text(Path(source))

        config = _load_app_config()
        operations = [op for op in parse_response(text) if is_file_operation(op)]
        if not operations:
            raise click.ClickException(f"No file operations found in {source}")

        provider = _create_provider(config)
        validator = OperationValidator(_ignore_filter(config))
        reviewer = _build_reviewer(config, provider, validator)
        prompt = f"exec-plan {source}"
        store = _history_store(config)
        try:
            with _console(ctx):
                outcome = reviewer.review_and_execute_plan(operations, "", prompt, auto_apply)
        except PlanExecutionError as e:
            _record_plan(store, prompt, text, partial_outcome(e.summary))
            raise

        entry = _record_plan(store, prompt, text, outcome)
        history_id = entry.id if entry else None

        if _get_json_mode(ctx):
            _json_emit(
                ExecPlanOutput(
                    exit_code=0,
                    source=source,
                    applied=outcome.applied,
                    operation_count=len(operations),
                    history_id=history_id,
                )
            )
            raise click.exceptions.Exit(0)

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except click.ClickException as e:
        if _get_json_mode(ctx):
            _json_emit(ExecPlanOutput(exit_code=1, source=source, error=e.message))
            raise click.exceptions.Exit(1)
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: ExecPlanOutput(exit_code=1, source=source, error=msg))


@cli.group("history")
def history_group() -> None:
    """Inspect, undo, redo and prune recorded plans."""


@history_group.command("list")
@click.option("--file-only", is_flag=True, help="Only show entries with file operations.")
@click.pass_context
def history_list_cmd(ctx: click.Context, file_only: bool) -> None:
    try:
        store = _history_store(_load_app_config())
        entries = store.load()
        if file_only:
            entries = [e for e in entries if e.file_operations()]

        if _get_json_mode(ctx):
            _json_emit(
                HistoryListOutput(
                    exit_code=0,
                    entries=[
                        HistoryEntrySummary(
                            id=e.id,
                            name=e.name,
                            timestamp=e.timestamp.isoformat(),
                            prompt=e.prompt,
                            applied=e.applied,
                            file_operations=len(e.file_operations()),
                        )
                        for e in entries
                    ],
                )
            )
            raise click.exceptions.Exit(0)

        if not entries:
            click.echo("No history entries.")
            return

        for position, entry in enumerate(entries, start=1):
            status = {True: "applied", False: "not applied", None: "response"}[entry.applied]
            first_line = entry.prompt.strip().splitlines()[0] if entry.prompt.strip() else ""
            label = f" ({entry.name})" if entry.name else ""
            click.echo(
                f"~{position} {entry.id}{label} {entry.timestamp:%Y-%m-%d %H:%M} "
                f"[{status}] {first_line}"
            )

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: HistoryListOutput(exit_code=1, error=msg))


def _replay(ctx: click.Context, action: str, id_or_name: str, auto_apply: bool) -> None:
    try:
        config = _load_app_config()
        provider = _create_provider(config)
        validator = OperationValidator(_ignore_filter(config))
        service = HistoryService(_history_store(config), _build_reviewer(config, provider, validator))

        with _console(ctx):
            if action == "undo":
                entry, outcome = service.undo(id_or_name, auto_apply)
            else:
                entry, outcome = service.redo(id_or_name, auto_apply)

        if _get_json_mode(ctx):
            _json_emit(
                HistoryActionOutput(exit_code=0, action=action, entry_id=entry.id, applied=outcome.applied)
            )
            raise click.exceptions.Exit(0)

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: HistoryActionOutput(exit_code=1, action=action, error=msg))


@history_group.command("undo")
@click.argument("id_or_name", type=str)
@click.option("--auto-apply", is_flag=True, help="Apply without interactive review.")
@click.pass_context
def history_undo_cmd(ctx: click.Context, id_or_name: str, auto_apply: bool) -> None:
    """Revert the file operations of a recorded plan."""
    _replay(ctx, "undo", id_or_name, auto_apply)


@history_group.command("redo")
@click.argument("id_or_name", type=str)
@click.option("--auto-apply", is_flag=True, help="Apply without interactive review.")
@click.pass_context
def history_redo_cmd(ctx: click.Context, id_or_name: str, auto_apply: bool) -> None:
    """Apply the file operations of a recorded plan again."""
    _replay(ctx, "redo", id_or_name, auto_apply)


@history_group.command("delete")
@click.argument("id_or_name", type=str)
@click.pass_context
def history_delete_cmd(ctx: click.Context, id_or_name: str) -> None:
    try:
        entry = _history_store(_load_app_config()).delete(id_or_name)

        if _get_json_mode(ctx):
            _json_emit(HistoryActionOutput(exit_code=0, action="delete", entry_id=entry.id))
            raise click.exceptions.Exit(0)

        click.echo(f"Deleted history entry {entry.id}.")

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: HistoryActionOutput(exit_code=1, action="delete", error=msg))


@history_group.command("clear")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def history_clear_cmd(ctx: click.Context, yes: bool) -> None:
    try:
        if not yes and not _get_json_mode(ctx):
            click.confirm("Delete all history entries?", abort=True)

        _history_store(_load_app_config()).clear()

        if _get_json_mode(ctx):
            _json_emit(HistoryActionOutput(exit_code=0, action="clear"))
            raise click.exceptions.Exit(0)

        click.echo("History cleared.")

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: HistoryActionOutput(exit_code=1, action="clear", error=msg))


@cli.group("config")
def config_group() -> None:
    """Inspect the effective configuration."""


@config_group.command("show")
@click.pass_context
def config_show_cmd(ctx: click.Context) -> None:
    try:
        config = _load_app_config()

        if _get_json_mode(ctx):
            _json_emit(ConfigOutput(exit_code=0, config=config.model_dump(mode="json")))
            raise click.exceptions.Exit(0)

        for key, value in config.model_dump().items():
            if isinstance(value, dict):
                click.echo(f"{key}:")
                for sub_key, sub_value in value.items():
                    click.echo(f"  {sub_key}: {sub_value}")
            else:
                click.echo(f"{key}: {value}")

    except (click.exceptions.Exit, click.exceptions.Abort):
        raise
    except Exception as e:
        _fail(ctx, e, lambda msg: ConfigOutput(exit_code=1, error=msg))


if __name__ == "__main__":
    cli(prog_name="aiplan")
