"""Shared CLI plumbing: per-invocation context, error reporting, JSON output."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import click
import structlog
from rich.console import Console
from rich.markup import escape

from termbridge.core.config import TermbridgeConfig
from termbridge.core.constants import ExitCode
from termbridge.core.exceptions import BackendError, ConfigError, SessionBusyError, TermbridgeError

if TYPE_CHECKING:
    from termbridge.core.controller import TerminalController

console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger()


@dataclass
class EngineContext:
    """Stored on ``ctx.obj`` by the root group."""

    config: TermbridgeConfig | None = None
    config_error: ConfigError | None = None

    def require_config(self) -> TermbridgeConfig:
        if self.config_error is not None:
            raise self.config_error
        if self.config is None:
            raise ConfigError("Configuration was not loaded")
        return self.config

    def controller(self) -> TerminalController:
        from termbridge.core.controller import TerminalController

        return TerminalController(self.require_config())


def emit_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def error_payload(exc: BaseException, code: ExitCode) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ok": False,
        "error": str(exc),
        "error_type": type(exc).__name__,
        "exit_code": int(code),
    }
    if isinstance(exc, BackendError) and exc.script:
        payload["script"] = exc.script
    if isinstance(exc, SessionBusyError):
        payload["process"] = exc.process
        payload["tty"] = exc.device_path
    return payload


def report_error(exc: BaseException, code: ExitCode, *, as_json: bool) -> None:
    if as_json:
        emit_json(error_payload(exc, code))
    err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
    if isinstance(exc, BackendError) and exc.script:
        err_console.print(f"[dim]Failed script:\n{escape(exc.script.strip())}[/dim]")


@contextmanager
def engine_errors(*, as_json: bool) -> Iterator[None]:
    """Turn termbridge errors into their stable exit codes."""
    try:
        yield
    except TermbridgeError as exc:
        logger.debug("command_failed", error=str(exc), exit_code=int(exc.exit_code))
        report_error(exc, exc.exit_code, as_json=as_json)
        raise SystemExit(int(exc.exit_code)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("internal_error")
        report_error(exc, ExitCode.INTERNAL_ERROR, as_json=as_json)
        raise SystemExit(int(ExitCode.INTERNAL_ERROR)) from exc
