"""termbridge list / info / read / focus — inspect and navigate session tabs."""

from __future__ import annotations

from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from termbridge.cli._common import EngineContext, emit_json, engine_errors, err_console
from termbridge.core.session.models import FocusMode


def _render_listing(listing: dict[str, Any], console: Console) -> None:
    for warning in listing["warnings"]:
        err_console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if not listing["sessions"]:
        console.print("  [dim]No termbridge sessions found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Session")
    table.add_column("Tag")
    table.add_column("TTY")
    table.add_column("Status")
    for index, row in enumerate(listing["sessions"], start=1):
        if row["is_busy"]:
            state = f"[yellow]Busy[/yellow] {escape(row['process'])}"
        else:
            state = "[green]Idle[/green]"
        table.add_row(
            str(index), escape(row["display_name"]), escape(row["tag"]), row["tty"], state
        )
    console.print(table)


def cmd_list(
    *,
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    as_json: bool,
    console: Console,
) -> None:
    with engine_errors(as_json=as_json):
        listing = engine.controller().list_sessions(project_path=project_path, tag=tag)

    if as_json:
        emit_json({"ok": True, **listing.to_dict()})
        return
    console.print("[bold]termbridge sessions[/bold]\n")
    _render_listing(listing.to_dict(), console)


def cmd_info(*, engine: EngineContext, as_json: bool, console: Console) -> None:
    with engine_errors(as_json=as_json):
        info = engine.controller().info()

    if as_json:
        emit_json({"ok": True, **info})
        return

    console.print(f"[bold]termbridge[/bold] {info['version']}  ([cyan]{info['terminal_app']}[/cyan])\n")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in info["configuration"].items():
        table.add_row(key, escape(str(value)))
    console.print(table)
    console.print()
    _render_listing(info, console)


def cmd_read(
    *,
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    lines: int | None,
    focus_mode: str,
    as_json: bool,
) -> None:
    with engine_errors(as_json=as_json):
        result = engine.controller().read(
            project_path, tag, lines=lines, focus_mode=FocusMode(focus_mode)
        )

    if as_json:
        emit_json({"ok": True, **result.to_dict()})
    elif result.output:
        click.echo(result.output)


def cmd_focus(
    *,
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    as_json: bool,
    console: Console,
) -> None:
    with engine_errors(as_json=as_json):
        session = engine.controller().focus(project_path, tag)

    if as_json:
        emit_json({"ok": True, "session": session.to_dict()})
    else:
        console.print(f"[green]Focused[/green] {escape(session.display_name)}")
