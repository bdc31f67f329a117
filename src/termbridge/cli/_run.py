"""termbridge execute / kill — run and stop commands in session tabs."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

from termbridge.cli._common import EngineContext, emit_json, engine_errors, err_console
from termbridge.core.constants import ExitCode
from termbridge.core.session.models import ExecutionMode, ExecutionRequest, FocusMode, KillRequest


def cmd_execute(
    *,
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    command: str,
    background: bool | None,
    lines: int | None,
    timeout: float | None,
    focus_mode: str,
    as_json: bool,
    console: Console,
) -> None:
    with engine_errors(as_json=as_json):
        config = engine.require_config()
        if background is None:
            background = config.default_background_execution
        request = ExecutionRequest(
            tag=tag,
            project_path=project_path,
            command=command,
            mode=ExecutionMode.BACKGROUND if background else ExecutionMode.FOREGROUND,
            line_limit=lines,
            timeout_seconds=timeout,
            focus_mode=FocusMode(focus_mode),
        )
        result = engine.controller().execute(request)

    if as_json:
        emit_json({"ok": not result.timed_out, **result.to_dict()})
    elif result.prepared_only:
        console.print(
            f"[green]Session ready:[/green] {escape(result.session.display_name)} "
            f"[dim]({result.session.terminal_device_path})[/dim]"
        )
    else:
        if result.output:
            click.echo(result.output)
        if result.timed_out:
            err_console.print(
                f"[yellow]Timed out:[/yellow] partial output shown; log kept at {result.output_file}"
            )
        elif result.mode is ExecutionMode.BACKGROUND:
            err_console.print(
                f"[dim]Running in background in {escape(result.session.display_name)}; "
                f"output continues in {result.output_file}[/dim]"
            )

    if result.timed_out:
        raise SystemExit(int(ExitCode.TIMEOUT))


def cmd_kill(
    *,
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    focus_mode: str,
    as_json: bool,
    console: Console,
) -> None:
    with engine_errors(as_json=as_json):
        request = KillRequest(tag=tag, project_path=project_path, focus_mode=FocusMode(focus_mode))
        result = engine.controller().kill(request)

    if as_json:
        emit_json({"ok": result.success, **result.to_dict()})
    else:
        style = "green" if result.success else "red"
        console.print(f"[{style}]{escape(result.message)}[/{style}]")

    if not result.success:
        raise SystemExit(int(ExitCode.ERROR))
