"""
termbridge CLI entry point (the engine).

Commands:
  termbridge execute [TAG]   — run a command in a session tab (or just prepare the tab)
  termbridge read [TAG]      — print a session tab's scrollback
  termbridge list            — list session tabs and whether they are busy
  termbridge info            — version, effective configuration, and sessions
  termbridge focus [TAG]     — bring a session tab to the front
  termbridge kill [TAG]      — stop a session's foreground job (the tab stays open)

Every command accepts --project-path and --json.  Exit codes are stable;
see termbridge.core.constants.ExitCode.
"""

from __future__ import annotations

import sys
from typing import Any

import click
from rich.console import Console

from termbridge import __version__
from termbridge.cli._common import EngineContext
from termbridge.core.constants import ExitCode
from termbridge.core.session.models import ExecutionMode, FocusMode

console = Console()

_FOCUS_MODES = click.Choice([m.value for m in FocusMode])
_MODES = click.Choice([m.value for m in ExecutionMode])


class EngineGroup(click.Group):
    """Root group whose usage errors exit with ExitCode.USAGE_ERROR."""

    def main(  # type: ignore[override]
        self,
        args: Any = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        if not standalone_mode:
            return super().main(args, prog_name, complete_var, standalone_mode=False, **extra)
        try:
            rv = super().main(args, prog_name, complete_var, standalone_mode=False, **extra)
        except click.UsageError as exc:
            exc.show()
            sys.exit(int(ExitCode.USAGE_ERROR))
        except click.ClickException as exc:
            exc.show()
            sys.exit(exc.exit_code)
        except click.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(int(ExitCode.ERROR))
        sys.exit(rv if isinstance(rv, int) else int(ExitCode.SUCCESS))


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(cls=EngineGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="termbridge %(version)s")
@click.option("--log-level", default=None, help="Log level (overrides TERMBRIDGE_LOG_LEVEL).")
@click.option("--log-json", is_flag=True, default=False, hidden=True, help="Emit JSON log lines.")
@click.option("--log-dir", default=None, help="Log and command-output directory.")
@click.option(
    "--terminal-app",
    "--app",
    "terminal_app",
    default=None,
    help="Terminal application: Terminal, iTerm, or Ghostty.",
)
@click.option(
    "--grouping",
    type=click.Choice(["off", "project", "smart"]),
    default=None,
    help="Window grouping for new session tabs.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str | None,
    log_json: bool,
    log_dir: str | None,
    terminal_app: str | None,
    grouping: str | None,
) -> None:
    """termbridge — run commands in your visible terminal tabs on behalf of an agent."""
    from termbridge.core.config import load_config
    from termbridge.core.exceptions import ConfigError
    from termbridge.core.logging import configure_logging

    engine = EngineContext()
    overrides = {
        "log_level": log_level,
        "log_json": True if log_json else None,
        "log_dir": log_dir,
        "terminal_app": terminal_app,
        "window_grouping": grouping,
    }
    try:
        engine.config = load_config(overrides=overrides)
    except ConfigError as exc:
        # re-raised by the subcommand
        engine.config_error = exc

    if engine.config is not None:
        configure_logging(
            level=engine.config.log_level,
            json_output=engine.config.log_json,
            log_file=engine.config.log_path,
        )
    else:
        configure_logging(level=log_level or "WARNING", json_output=log_json)

    ctx.obj = engine


# ---------------------------------------------------------------------------
# execute / kill
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("tag", required=False)
@click.option("--project-path", "-p", default=None, help="Project directory the session belongs to.")
@click.option("--command", "-c", default="", help="Shell command. Empty: only prepare the session.")
@click.option(
    "--background/--foreground",
    default=None,
    help="Run detached from the tab, or wait for completion (default: configured).",
)
@click.option("--mode", type=_MODES, default=None, help="foreground or background.")
@click.option("--lines", "-n", type=int, default=None, help="Output lines to return (<= 0: all).")
@click.option(
    "--timeout",
    "-t",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait (foreground) or sample output (background).",
)
@click.option("--focus-mode", type=_FOCUS_MODES, default=FocusMode.DEFAULT.value)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def execute(
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    command: str,
    background: bool | None,
    mode: str | None,
    lines: int | None,
    timeout: float | None,
    focus_mode: str,
    as_json: bool,
) -> None:
    """Run COMMAND in the session tab for TAG, creating the tab if needed."""
    from termbridge.cli._run import cmd_execute

    run_in_background = background
    if run_in_background is None and mode is not None:
        run_in_background = mode == ExecutionMode.BACKGROUND.value

    cmd_execute(
        engine=engine,
        tag=tag,
        project_path=project_path,
        command=command,
        background=run_in_background,
        lines=lines,
        timeout=timeout,
        focus_mode=focus_mode,
        as_json=as_json,
        console=console,
    )


@cli.command()
@click.argument("tag", required=False)
@click.option("--project-path", "-p", default=None, help="Project directory the session belongs to.")
@click.option("--focus-mode", type=_FOCUS_MODES, default=FocusMode.DEFAULT.value)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def kill(
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    focus_mode: str,
    as_json: bool,
) -> None:
    """Stop the foreground job in TAG's tab (INT, then TERM, then KILL)."""
    from termbridge.cli._run import cmd_kill

    cmd_kill(
        engine=engine,
        tag=tag,
        project_path=project_path,
        focus_mode=focus_mode,
        as_json=as_json,
        console=console,
    )


# ---------------------------------------------------------------------------
# read / focus
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("tag", required=False)
@click.option("--project-path", "-p", default=None, help="Project directory the session belongs to.")
@click.option("--lines", "-n", type=int, default=None, help="Lines to return (<= 0: all).")
@click.option("--focus-mode", type=_FOCUS_MODES, default=FocusMode.DEFAULT.value)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def read(
    engine: EngineContext,
    tag: str | None,
    project_path: str | None,
    lines: int | None,
    focus_mode: str,
    as_json: bool,
) -> None:
    """Print the scrollback of TAG's tab."""
    from termbridge.cli._sessions import cmd_read

    cmd_read(
        engine=engine,
        tag=tag,
        project_path=project_path,
        lines=lines,
        focus_mode=focus_mode,
        as_json=as_json,
    )


@cli.command()
@click.argument("tag", required=False)
@click.option("--project-path", "-p", default=None, help="Project directory the session belongs to.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def focus(engine: EngineContext, tag: str | None, project_path: str | None, as_json: bool) -> None:
    """Bring TAG's tab to the front."""
    from termbridge.cli._sessions import cmd_focus

    cmd_focus(
        engine=engine, tag=tag, project_path=project_path, as_json=as_json, console=console
    )


# ---------------------------------------------------------------------------
# list / info
# ---------------------------------------------------------------------------


@cli.command("list")
@click.option("--tag", default=None, help="Only sessions with this tag.")
@click.option("--project-path", "-p", default=None, help="Only sessions for this project.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def list_cmd(engine: EngineContext, tag: str | None, project_path: str | None, as_json: bool) -> None:
    """List session tabs and whether each is busy."""
    from termbridge.cli._sessions import cmd_list

    cmd_list(engine=engine, tag=tag, project_path=project_path, as_json=as_json, console=console)


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def info(engine: EngineContext, as_json: bool) -> None:
    """Show version, effective configuration, and sessions."""
    from termbridge.cli._sessions import cmd_info

    cmd_info(engine=engine, as_json=as_json, console=console)


def main() -> None:
    cli(prog_name="termbridge")


if __name__ == "__main__":
    main()
