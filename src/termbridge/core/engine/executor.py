"""
Execution engine — run a command in a session tab and collect its output.

The command is typed into the tab wrapped in a redirection to a private
output file.  A foreground command is followed by a completion marker
line ``<marker>:<exit status>``; the engine polls the file until that line
is the last one, or the deadline passes.  A background command is
detached and the file is only sampled for a short startup window.

Per-request states:

    RESOLVING → IDLE_CHECK → PREPARING_ONLY
                           → DISPATCHING → WAITING_FG  → DONE | TIMED_OUT
                                         → SAMPLING_BG → DONE
"""

from __future__ import annotations

import shlex
import time
import uuid
from pathlib import Path

import structlog

from termbridge.backends.base import TerminalBackend
from termbridge.core.config import TermbridgeConfig
from termbridge.core.constants import MARKER_PREFIX, NEVER_MARKER_PREFIX, OUTPUT_FILE_PREFIX
from termbridge.core.engine.killer import KillEngine
from termbridge.core.engine.preemption import ensure_idle
from termbridge.core.exceptions import CommandExecutionError
from termbridge.core.session.models import (
    ExecutionMode,
    ExecutionRequest,
    ExecutionResult,
    Session,
)
from termbridge.core.session.resolver import SessionResolver
from termbridge.os import process

logger = structlog.get_logger()


def new_marker() -> str:
    return f"{MARKER_PREFIX}{uuid.uuid4().hex}"


def foreground_line(command: str, output_file: Path, marker: str) -> str:
    """Shell line: run *command* into *output_file*, then append the marker and exit status."""
    target = shlex.quote(str(output_file))
    return (
        f"(eval {shlex.quote(command)}) > {target} 2>&1; "
        f"printf '%s:%s\\n' {shlex.quote(marker)} \"$?\" >> {target}"
    )


def background_line(command: str, output_file: Path) -> str:
    """Shell line: run *command* detached from the tab, output into *output_file*."""
    target = shlex.quote(str(output_file))
    return f"(eval {shlex.quote(command)}) > {target} 2>&1 & disown"


class ExecutionEngine:
    def __init__(
        self,
        config: TermbridgeConfig,
        backend: TerminalBackend,
        resolver: SessionResolver,
        killer: KillEngine,
    ) -> None:
        self.config = config
        self.backend = backend
        self.resolver = resolver
        self.killer = killer

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        activate = request.focus_mode.should_focus(self.config.default_focus_on_action)

        session = self.resolver.resolve(request.project_path, request.tag, activate=activate)
        log = logger.bind(tag=session.tag, tty=session.terminal_device_path)

        ensure_idle(session)
        self.backend.clear_screen_and_scrollback(session.handle)

        if request.is_prepare_only:
            if activate:
                self.backend.focus(session.handle)
            log.info("session_prepared", created=session.created)
            return ExecutionResult(session=session, mode=request.mode, prepared_only=True)

        line_limit = self.config.default_lines if request.line_limit is None else request.line_limit
        output_file = self._output_file(session)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CommandExecutionError(
                f"Cannot create output directory {output_file.parent}: {exc}"
            ) from exc

        marker = new_marker()
        if request.mode is ExecutionMode.BACKGROUND:
            timeout = request.timeout_seconds or self.config.background_startup_seconds
            line = background_line(request.command, output_file)
        else:
            timeout = request.timeout_seconds or self.config.foreground_completion_seconds
            line = foreground_line(request.command, output_file, marker)

        if activate:
            self.backend.focus(session.handle)
        self.backend.write_line(session.handle, line)
        log.info("command_dispatched", mode=str(request.mode), output_file=str(output_file))

        if request.mode is ExecutionMode.BACKGROUND:
            return self._sample_background(session, output_file, timeout, line_limit)
        return self._wait_foreground(session, output_file, marker, timeout, line_limit)

    # ------------------------------------------------------------------
    # Output collection
    # ------------------------------------------------------------------

    def _wait_foreground(
        self,
        session: Session,
        output_file: Path,
        marker: str,
        timeout: float,
        line_limit: int,
    ) -> ExecutionResult:
        tail = process.tail_until_marker(
            output_file,
            marker,
            timeout,
            poll_interval=self.config.poll_interval_seconds,
            jitter=self.config.poll_jitter_seconds,
        )
        if tail.found:
            output_file.unlink(missing_ok=True)
            logger.info("command_completed", tag=session.tag, exit_status=tail.exit_status)
            return ExecutionResult(
                session=session,
                mode=ExecutionMode.FOREGROUND,
                output=process.truncate_lines(tail.content, line_limit),
                exit_status=tail.exit_status,
            )

        logger.warning(
            "command_timed_out", tag=session.tag, timeout=timeout, output_file=str(output_file)
        )
        killed = False
        occupant = process.foreground_process(session.terminal_device_path)
        if occupant is not None:
            killed = self.killer.escalate(occupant.pgid).stopped

        # Re-read: the job may have written more (or the marker) while dying.
        content = process.read_output(output_file)
        split = process.split_marker(content, marker)
        if split is not None:
            content = split[0]
        return ExecutionResult(
            session=session,
            mode=ExecutionMode.FOREGROUND,
            output=process.truncate_lines(content, line_limit),
            timed_out=True,
            output_file=output_file,
            killed_after_timeout=killed,
        )

    def _sample_background(
        self,
        session: Session,
        output_file: Path,
        window: float,
        line_limit: int,
    ) -> ExecutionResult:
        never = f"{NEVER_MARKER_PREFIX}{uuid.uuid4().hex}"
        tail = process.tail_until_marker(
            output_file,
            never,
            window,
            poll_interval=self.config.poll_interval_seconds,
            jitter=self.config.poll_jitter_seconds,
        )
        logger.info("background_sampled", tag=session.tag, window=window)
        return ExecutionResult(
            session=session,
            mode=ExecutionMode.BACKGROUND,
            output=process.truncate_lines(tail.content, line_limit),
            output_file=output_file,
        )

    def _output_file(self, session: Session) -> Path:
        tty = process.tty_name(session.terminal_device_path).replace("/", "_")
        name = f"{OUTPUT_FILE_PREFIX}_{tty}_{int(time.time())}_{uuid.uuid4().hex[:8]}.log"
        return self.config.command_outputs_dir / name
