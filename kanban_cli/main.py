from __future__ import annotations

import argparse
import sys
from typing import Any

import click
import typer

from . import __version__
from .cli_shared import (
    DEFAULT_STACK,
    KANBAN_API_ENDPOINT,
    KANBAN_STACK,
    GlobalOpts,
    OpError,
    UsageError,
    _bootstrap_env,
    _eprint,
    _env_or_none,
    _rich_error,
)
from .commands import cmd_tasks_delete, cmd_tasks_list, cmd_tasks_put, cmd_tasks_update
from .migrate import cmd_migrate


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kanban {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name="kanban",
    help="Kanban task endpoint helpers.",
    no_args_is_help=True,
    add_completion=False,
)
tasks_app = typer.Typer(
    help="Task CRUD (default: human-readable output; use --json for raw API responses)",
    no_args_is_help=True,
)
app.add_typer(tasks_app, name="tasks")


@app.callback()
def app_callback(
    ctx: typer.Context,
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        help=f"Kanban route URL (env override: {KANBAN_API_ENDPOINT}; default: stack output)",
    ),
    stack: str | None = typer.Option(
        None,
        "--stack",
        help=f"CloudFormation stack name (env override: {KANBAN_STACK}; default: {DEFAULT_STACK})",
    ),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    del version
    ctx.obj = {
        "g": GlobalOpts(
            stack=(stack or _env_or_none(KANBAN_STACK) or DEFAULT_STACK).strip(),
            pretty=not plain_json,
            quiet=quiet,
            endpoint=(endpoint or _env_or_none(KANBAN_API_ENDPOINT) or "").strip(),
        )
    }


@tasks_app.callback()
def tasks_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit raw JSON output for task commands"),
) -> None:
    if not isinstance(ctx.obj, dict):
        ctx.obj = {}
    ctx.obj["tasks_json_output"] = bool(json_output)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    obj = ctx.find_root().obj
    if isinstance(obj, dict) and isinstance(obj.get("g"), GlobalOpts):
        return obj["g"]
    return GlobalOpts(
        stack=_env_or_none(KANBAN_STACK) or DEFAULT_STACK,
        pretty=True,
        quiet=False,
        endpoint=_env_or_none(KANBAN_API_ENDPOINT) or "",
    )


def _render_usage_error_with_help(*, message: str, ctx: click.Context | None = None) -> None:
    _rich_error(message)
    help_text = ""
    if isinstance(ctx, click.Context):
        try:
            help_text = str(ctx.get_help() or "").strip()
        except Exception:
            help_text = ""
    if help_text:
        _eprint("")
        _eprint(help_text)


def _invoke(ctx: typer.Context, func: Any, **kwargs: Any) -> None:
    g = _ctx_global(ctx)
    args = argparse.Namespace(**kwargs)
    try:
        code = int(func(args, g))
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    except OpError as e:
        _rich_error(str(e))
        raise typer.Exit(code=1)

    if code:
        raise typer.Exit(code=code)


def _tasks_json_from_ctx(ctx: typer.Context) -> bool:
    obj = ctx.find_root().obj
    if isinstance(obj, dict):
        return bool(obj.get("tasks_json_output", False))
    return False


def _invoke_tasks(ctx: typer.Context, func: Any, **kwargs: Any) -> None:
    _invoke(ctx, func, json_output=_tasks_json_from_ctx(ctx), **kwargs)


@tasks_app.command("list", help="List all tasks, newest first.")
def tasks_list(ctx: typer.Context) -> None:
    _invoke_tasks(ctx, cmd_tasks_list)


@tasks_app.command("put", help="Create a task, or replace the task with the same task ID.")
def tasks_put(
    ctx: typer.Context,
    task_id: str = typer.Option(..., "--task-id", help="Stable task identifier (e.g. ENG-12)"),
    title: str = typer.Option(..., "--title", help="Task title"),
    assignee: str = typer.Option(..., "--assignee", help="Task owner"),
    status: str = typer.Option(..., "--status", help="icebox|backlog|in_progress|done|blocked"),
    priority: str = typer.Option(..., "--priority", help="high|medium|low"),
    description: str | None = typer.Option(None, "--description", help="Optional description"),
    metadata: str | None = typer.Option(None, "--metadata", help="Optional JSON object"),
) -> None:
    _invoke_tasks(
        ctx,
        cmd_tasks_put,
        task_id=task_id,
        title=title,
        assignee=assignee,
        status=status,
        priority=priority,
        description=description,
        metadata=metadata,
    )


@tasks_app.command("update", help="Update only the supplied fields of an existing task.")
def tasks_update(
    ctx: typer.Context,
    task_id: str = typer.Option(..., "--task-id", help="Task to update"),
    title: str | None = typer.Option(None, "--title", help="New title"),
    description: str | None = typer.Option(None, "--description", help="New description"),
    assignee: str | None = typer.Option(None, "--assignee", help="New owner"),
    status: str | None = typer.Option(None, "--status", help="icebox|backlog|in_progress|done|blocked"),
    priority: str | None = typer.Option(None, "--priority", help="high|medium|low"),
    metadata: str | None = typer.Option(None, "--metadata", help="Replacement JSON object"),
) -> None:
    _invoke_tasks(
        ctx,
        cmd_tasks_update,
        task_id=task_id,
        title=title,
        description=description,
        assignee=assignee,
        status=status,
        priority=priority,
        metadata=metadata,
    )


@tasks_app.command("delete", help="Delete a task by task ID.")
def tasks_delete(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID to delete"),
) -> None:
    _invoke_tasks(ctx, cmd_tasks_delete, task_id=task_id)


@app.command("migrate", help="Migrate a legacy kanban.json board through the task endpoint.")
def migrate(
    ctx: typer.Context,
    path: str = typer.Argument("kanban.json", help="Legacy kanban JSON file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print transformed tasks without sending them"),
) -> None:
    _invoke(ctx, cmd_migrate, path=path, dry_run=dry_run)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    _bootstrap_env()
    try:
        result = app(args=argv, prog_name="kanban", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        if isinstance(e, click.UsageError):
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
            return int(e.exit_code)
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
