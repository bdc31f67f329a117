"""
The single caller-facing action: translate flattened tool parameters into
an engine invocation and the engine's JSON reply into ``{success, message}``.
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from termbridge.bridge.supervisor import EngineRun, EngineSupervisor, RunOutcome
from termbridge.core.constants import ExitCode

logger = structlog.get_logger()


class Action(StrEnum):
    EXECUTE = "execute"
    READ = "read"
    LIST = "list"
    INFO = "info"
    FOCUS = "focus"
    KILL = "kill"


_ACTION_ALIASES = {"exec": Action.EXECUTE, "run": Action.EXECUTE}

_ERROR_CATEGORIES: dict[int, str] = {
    ExitCode.ERROR: "Error",
    ExitCode.CONFIG_ERROR: "Configuration error",
    ExitCode.BACKEND_ERROR: "Terminal communication error",
    ExitCode.SESSION_NOT_FOUND: "Session not found",
    ExitCode.SESSION_BUSY: "Session busy",
    ExitCode.COMMAND_FAILED: "Command failed",
    ExitCode.INTERNAL_ERROR: "Internal error",
    ExitCode.PERMISSION_ERROR: "Permission denied",
    ExitCode.USAGE_ERROR: "Invalid usage",
}

CANCELLED_MESSAGE = "Terminal action cancelled by request."
UNRESPONSIVE_MESSAGE = (
    "The termbridge engine was unresponsive and was terminated by the wrapper "
    "after {deadline:g}s."
)


class ToolUsageError(ValueError):
    """Raised for parameters rejected before the engine is spawned."""


def parse_action(raw: str | None) -> Action:
    value = (raw or Action.EXECUTE.value).strip().lower()
    if value in _ACTION_ALIASES:
        return _ACTION_ALIASES[value]
    try:
        return Action(value)
    except ValueError:
        allowed = ", ".join(a.value for a in Action)
        raise ToolUsageError(f"Unknown action {raw!r}. Use one of: {allowed}") from None


@dataclass
class ToolRequest:
    action: Action = Action.EXECUTE
    project_path: str | None = None
    tag: str | None = None
    command: str | None = None
    background: bool | None = None
    lines: int | None = None
    timeout: float | None = None
    focus: bool | None = None

    @classmethod
    def from_params(cls, action: str | None = None, **params: Any) -> ToolRequest:
        request = cls(action=parse_action(action), **params)
        if request.project_path:
            expanded = os.path.expanduser(request.project_path)
            if not os.path.isabs(expanded):
                raise ToolUsageError(f"project_path must be absolute: {request.project_path!r}")
            if not os.path.isdir(expanded):
                raise ToolUsageError(f"project_path is not a directory: {request.project_path!r}")
            request.project_path = expanded
        if request.timeout is not None and request.timeout <= 0:
            raise ToolUsageError("timeout must be greater than 0 seconds")
        return request

    @property
    def focus_mode(self) -> str:
        if self.focus is None:
            return "default"
        return "force-focus" if self.focus else "no-focus"


@dataclass
class ToolResult:
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


def build_engine_args(request: ToolRequest) -> list[str]:
    """Engine CLI arguments for *request*; the tag goes after ``--``."""
    args: list[str] = [request.action.value, "--json"]
    if request.project_path and request.action is not Action.INFO:
        args += ["--project-path", request.project_path]

    if request.action is Action.EXECUTE:
        args += ["--command", request.command or ""]
        if request.background is not None:
            args += ["--mode", "background" if request.background else "foreground"]
        if request.lines is not None:
            args += ["--lines", str(request.lines)]
        if request.timeout is not None:
            args += ["--timeout", f"{request.timeout:g}"]
        args += ["--focus-mode", request.focus_mode]
    elif request.action is Action.READ:
        if request.lines is not None:
            args += ["--lines", str(request.lines)]
        args += ["--focus-mode", request.focus_mode]
    elif request.action is Action.KILL:
        args += ["--focus-mode", request.focus_mode]
    elif request.action is Action.LIST and request.tag:
        args += ["--tag", request.tag]

    if request.tag and request.action in (Action.EXECUTE, Action.READ, Action.FOCUS, Action.KILL):
        args += ["--", request.tag]
    return args


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def _parse_payload(stdout: str) -> dict[str, Any] | None:
    text = stdout.strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # Tolerate stray lines before the JSON document.
        start = text.find("{")
        if start < 0:
            return None
        try:
            payload = json.loads(text[start:])
        except json.JSONDecodeError:
            return None
    return payload if isinstance(payload, dict) else None


def _session_name(payload: dict[str, Any]) -> str:
    session = payload.get("session") or {}
    return session.get("display_name") or session.get("tag") or "session"


def format_session_lines(sessions: list[dict[str, Any]]) -> str:
    lines = []
    for index, row in enumerate(sessions, start=1):
        state = "Busy" if row.get("is_busy") else "Idle"
        lines.append(f"{index}. {row.get('display_name', row.get('tag', '?'))} ({state})")
    return "\n".join(lines)


def _format_success(action: Action, payload: dict[str, Any]) -> str:
    if action is Action.EXECUTE:
        name = _session_name(payload)
        output = payload.get("output") or ""
        if payload.get("prepared_only"):
            return f"Session '{name}' is ready."
        if payload.get("mode") == "background":
            head = f"Command started in background in '{name}'."
            return f"{head} Initial output:\n{output}" if output else f"{head} No output yet."
        status = payload.get("exit_status")
        head = f"Command finished in '{name}'"
        head += f" with exit status {status}." if status is not None else "."
        return f"{head}\n{output}" if output else f"{head} No output."
    if action is Action.READ:
        output = payload.get("output") or ""
        return f"Output of '{_session_name(payload)}':\n{output}" if output else "No output."
    if action is Action.FOCUS:
        return f"Focused '{_session_name(payload)}'."
    if action is Action.KILL:
        return payload.get("message") or "Kill finished."

    sessions = payload.get("sessions") or []
    body = format_session_lines(sessions) if sessions else "No termbridge sessions found."
    warnings = payload.get("warnings") or []
    if warnings:
        body += "\nWarnings: " + "; ".join(warnings)
    if action is Action.INFO:
        head = f"termbridge {payload.get('version', '?')} using {payload.get('terminal_app', '?')}."
        return f"{head}\nSessions:\n{body}"
    return body


def interpret(request: ToolRequest, run: EngineRun, *, deadline: float) -> ToolResult:
    """Map one engine run onto the caller-facing result."""
    if run.outcome is RunOutcome.CANCELLED:
        return ToolResult(False, CANCELLED_MESSAGE)
    if run.outcome is RunOutcome.WRAPPER_TIMEOUT:
        return ToolResult(False, UNRESPONSIVE_MESSAGE.format(deadline=deadline))
    if run.outcome is RunOutcome.SPAWN_FAILED:
        return ToolResult(False, f"Could not start the termbridge engine: {run.error}")

    payload = _parse_payload(run.stdout)
    if run.exit_code == ExitCode.SUCCESS and payload is not None:
        return ToolResult(True, _format_success(request.action, payload))

    if run.exit_code == ExitCode.TIMEOUT and payload is not None:
        output = payload.get("output") or ""
        message = f"Command timed out in '{_session_name(payload)}'"
        if payload.get("killed_after_timeout"):
            message += " and was stopped"
        message += "."
        message += f" Partial output:\n{output}" if output else " No output was captured."
        return ToolResult(False, message)

    category = _ERROR_CATEGORIES.get(run.exit_code or 0, f"Engine exit code {run.exit_code}")
    detail = ""
    if payload is not None:
        detail = payload.get("error") or payload.get("message") or ""
    detail = detail or run.stderr.strip() or "no details"
    return ToolResult(False, f"{category}: {detail}")


class TerminalTool:
    """The ``terminal`` action: validate, run the engine once, and report."""

    def __init__(self, supervisor: EngineSupervisor) -> None:
        self.supervisor = supervisor

    async def handle(
        self,
        params: dict[str, Any],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolResult:
        try:
            request = ToolRequest.from_params(**params)
        except (ToolUsageError, TypeError) as exc:
            return ToolResult(False, f"Invalid usage: {exc}")

        args = build_engine_args(request)
        deadline = self.supervisor.outer_deadline(request.timeout)
        logger.info("tool_invoked", action=str(request.action), tag=request.tag)
        run = await self.supervisor.run(
            args, request_timeout=request.timeout, cancel_event=cancel_event
        )
        result = interpret(request, run, deadline=deadline)
        logger.info("tool_finished", action=str(request.action), success=result.success)
        return result
