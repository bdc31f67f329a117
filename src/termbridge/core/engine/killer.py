"""
Kill engine — stop the foreground job of a session without closing its tab.

Escalation against the tab's foreground process group:

    SIGINT  → wait sigint_wait_seconds  → still alive?
    SIGTERM → wait sigterm_wait_seconds → still alive?
    SIGKILL → short settle              → report

When no process group can be identified (idle tab, or ps denied) and no
pre-kill hook is configured, the engine falls back to typing Ctrl+C into
the tab through the backend.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass, field

import structlog

from termbridge.backends.base import TerminalBackend
from termbridge.core.config import TermbridgeConfig
from termbridge.core.constants import PRE_KILL_HOOK_TIMEOUT_SECONDS, SIGKILL_SETTLE_SECONDS
from termbridge.core.exceptions import BackendError
from termbridge.core.session.models import KillRequest, KillResult, Session
from termbridge.core.session.resolver import SessionResolver
from termbridge.os import process

logger = structlog.get_logger()

KEYSTROKE_WARNING = "the terminal may have been brought to the front"


@dataclass
class EscalationOutcome:
    stopped: bool
    signals_sent: list[str] = field(default_factory=list)


class KillEngine:
    def __init__(
        self,
        config: TermbridgeConfig,
        backend: TerminalBackend,
        resolver: SessionResolver,
    ) -> None:
        self.config = config
        self.backend = backend
        self.resolver = resolver

    def escalate(self, pgid: int) -> EscalationOutcome:
        """INT, TERM, KILL against *pgid*, re-checking after each cool-down."""
        steps = (
            (signal.SIGINT, self.config.sigint_wait_seconds),
            (signal.SIGTERM, self.config.sigterm_wait_seconds),
            (signal.SIGKILL, SIGKILL_SETTLE_SECONDS),
        )
        outcome = EscalationOutcome(stopped=False)
        for sig, wait in steps:
            logger.info("kill_escalate", pgid=pgid, signal=sig.name)
            process.signal_group(pgid, sig)
            outcome.signals_sent.append(sig.name)
            time.sleep(wait)
            if not process.group_alive(pgid):
                outcome.stopped = True
                return outcome
        logger.warning("kill_exhausted", pgid=pgid)
        return outcome

    def kill(self, request: KillRequest) -> KillResult:
        session = self.resolver.find(request.project_path, request.tag)
        log = logger.bind(tag=session.tag, tty=session.terminal_device_path)
        hook_configured = self.config.pre_kill_script_path is not None

        hook_ran = self._run_pre_kill_hook(session) if hook_configured else False

        result = KillResult(session=session, success=False, message="", hook_ran=hook_ran)
        occupant = process.foreground_process(session.terminal_device_path)
        if occupant is not None:
            outcome = self.escalate(occupant.pgid)
            result.signals_sent = outcome.signals_sent
            result.success = outcome.stopped
            sent = " → ".join(outcome.signals_sent)
            if outcome.stopped:
                result.message = f"Stopped {occupant.description} ({sent})."
            else:
                result.message = f"{occupant.description} survived {sent}."
        elif hook_configured:
            result.success = True
            result.message = "No foreground process found; pre-kill hook ran."
        else:
            result.success = True
            result.message = "No foreground process group found."

        if not hook_configured and (occupant is None or not result.success):
            log.info("kill_keystroke_fallback")
            self.backend.send_interrupt_keystroke(session.handle)
            result.used_keystroke_fallback = True
            result.message += f" Sent Ctrl+C to the tab ({KEYSTROKE_WARNING})."

        if request.focus_mode.should_focus(self.config.default_focus_on_kill):
            self.backend.focus(session.handle)

        try:
            self.backend.clear_screen_and_scrollback(session.handle)
        except BackendError as exc:
            log.warning("clear_after_kill_failed", error=str(exc))
            result.message += f" (screen not cleared: {exc})"

        log.info("kill_finished", success=result.success, signals=result.signals_sent)
        return result

    def _run_pre_kill_hook(self, session: Session) -> bool:
        script = str(self.config.pre_kill_script_path)
        env = {
            **os.environ,
            "TERMBRIDGE_HOOK_TTY": session.terminal_device_path,
            "TERMBRIDGE_HOOK_TAG": session.tag,
            "TERMBRIDGE_HOOK_PROJECT_HASH": session.project_fingerprint,
        }
        try:
            proc = subprocess.run(  # noqa: S603
                [script],
                env=env,
                capture_output=True,
                text=True,
                timeout=PRE_KILL_HOOK_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("pre_kill_hook_failed", script=script, error=str(exc))
            return False
        if proc.returncode != 0:
            logger.warning(
                "pre_kill_hook_nonzero", script=script, code=proc.returncode, stderr=proc.stderr
            )
        return True
