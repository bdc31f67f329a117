"""
EngineSupervisor — runs the termbridge engine CLI as a child process.

Pure Python + asyncio + subprocess.  One child per request; the child
sees only the recognized TERMBRIDGE_* variables, never the caller's full
environment.  An outer deadline, independent of and larger than the
engine's own timeouts, guards against the engine itself hanging.

Exactly one outcome is produced per run.  When several fire together the
precedence is: cancellation, then outer timeout, then normal exit.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

import structlog

from termbridge.core.config import TermbridgeConfig, forwardable_env
from termbridge.core.constants import SUPERVISOR_BUFFER_SECONDS, SUPERVISOR_KILL_GRACE_SECONDS

logger = structlog.get_logger()


class RunOutcome(StrEnum):
    COMPLETED = "completed"
    WRAPPER_TIMEOUT = "wrapper_timeout"
    CANCELLED = "cancelled"
    SPAWN_FAILED = "spawn_failed"


@dataclass
class EngineRun:
    """Result of one engine invocation as seen by the caller."""

    outcome: RunOutcome
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str = ""

    @property
    def completed(self) -> bool:
        return self.outcome is RunOutcome.COMPLETED


async def _drain(stream: asyncio.StreamReader | None, chunks: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        chunks.append(chunk)


class EngineSupervisor:
    """Spawns ``python -m termbridge`` per request and enforces the outer deadline."""

    def __init__(
        self,
        config: TermbridgeConfig,
        *,
        engine_argv: Sequence[str] | None = None,
        buffer_seconds: float = SUPERVISOR_BUFFER_SECONDS,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.engine_argv = list(engine_argv or (sys.executable, "-m", "termbridge"))
        self.buffer_seconds = buffer_seconds
        self._environ = environ

    def outer_deadline(self, request_timeout: float | None = None) -> float:
        """Seconds before the child is considered unresponsive."""
        longest = max(
            self.config.foreground_completion_seconds,
            self.config.background_startup_seconds,
            request_timeout or 0.0,
        )
        return longest + self.buffer_seconds

    def child_env(self) -> dict[str, str]:
        return forwardable_env(self._environ)

    async def run(
        self,
        args: Sequence[str],
        *,
        request_timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> EngineRun:
        """
        Run the engine with *args* and return exactly one outcome.

        If the awaiting task itself is cancelled, the child is killed and
        the cancellation propagates.
        """
        deadline = deadline_seconds or self.outer_deadline(request_timeout)
        argv = [*self.engine_argv, *args]
        log = logger.bind(argv=argv[len(self.engine_argv) :], deadline=deadline)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.child_env(),
                start_new_session=True,
            )
        except OSError as exc:
            log.error("engine_spawn_failed", error=str(exc))
            return EngineRun(outcome=RunOutcome.SPAWN_FAILED, error=str(exc))

        out: list[bytes] = []
        err: list[bytes] = []
        finished = asyncio.ensure_future(self._finish(proc, out, err))
        waiters: set[asyncio.Future] = {finished}
        cancelled_waiter: asyncio.Future | None = None
        if cancel_event is not None:
            cancelled_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled_waiter)

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + deadline
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=deadline, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            log.warning("engine_task_cancelled", pid=proc.pid)
            await self._kill(proc, finished)
            raise
        finally:
            if cancelled_waiter is not None and not cancelled_waiter.done():
                cancelled_waiter.cancel()

        if cancel_event is not None and cancel_event.is_set():
            log.warning("engine_cancelled", pid=proc.pid)
            await self._kill(proc, finished)
            return EngineRun(outcome=RunOutcome.CANCELLED)

        if finished not in done or loop.time() >= expires_at:
            log.error("engine_unresponsive", pid=proc.pid)
            await self._kill(proc, finished)
            return EngineRun(outcome=RunOutcome.WRAPPER_TIMEOUT)

        exit_code = finished.result()
        log.debug("engine_exited", exit_code=exit_code)
        return EngineRun(
            outcome=RunOutcome.COMPLETED,
            exit_code=exit_code,
            stdout=b"".join(out).decode("utf-8", errors="replace"),
            stderr=b"".join(err).decode("utf-8", errors="replace"),
        )

    async def _finish(
        self, proc: asyncio.subprocess.Process, out: list[bytes], err: list[bytes]
    ) -> int:
        await asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err))
        return await proc.wait()

    async def _kill(self, proc: asyncio.subprocess.Process, finished: asyncio.Future) -> None:
        """SIGKILL the child's whole process group and reap it."""
        if proc.returncode is None:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
        finished.cancel()
        try:
            await asyncio.wait_for(proc.wait(), timeout=SUPERVISOR_KILL_GRACE_SECONDS)
        except TimeoutError:
            logger.error("engine_unreaped", pid=proc.pid)
