"""
AppleScript bridge: run scripts through ``osascript`` and parse their output.

Scripts return records joined with ASCII record/unit separators
(character ids 30 and 31) so titles containing commas or quotes parse
unambiguously.
"""

from __future__ import annotations

import shutil
import subprocess

import structlog

from termbridge.backends.base import TerminalBackend
from termbridge.core.constants import APPLESCRIPT_TIMEOUT_SECONDS, OSASCRIPT_PATH
from termbridge.core.exceptions import BackendError, BackendPermissionError

logger = structlog.get_logger()

UNIT_SEP = "\x1f"
RECORD_SEP = "\x1e"

# AppleScript prologue defining the separators used by every listing script.
SEPARATORS = "set US to character id 31\nset RS to character id 30\n"

# osascript error numbers
_NOT_AUTHORIZED = "-1743"
_NO_ASSISTIVE_ACCESS = "-1719"
_APP_NOT_RUNNING = "-600"
_TAB_NOT_FOUND = "1404"


def quote_applescript(text: str) -> str:
    """Return *text* as an AppleScript string literal."""
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_records(output: str) -> list[list[str]]:
    return [record.split(UNIT_SEP) for record in output.split(RECORD_SEP) if record.strip("\n")]


def run_applescript(script: str, *, timeout: float = APPLESCRIPT_TIMEOUT_SECONDS) -> str:
    """Run *script* with osascript and return its stdout.  Raises BackendError."""
    osascript = shutil.which("osascript") or OSASCRIPT_PATH
    try:
        proc = subprocess.run(  # noqa: S603
            [osascript, "-"],
            input=script,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise BackendError("osascript is not available on this system", script=script) from exc
    except subprocess.TimeoutExpired as exc:
        raise BackendError(f"AppleScript timed out after {timeout:g}s", script=script) from exc

    if proc.returncode != 0:
        stderr = proc.stderr.strip()
        logger.debug("applescript_failed", code=proc.returncode, stderr=stderr)
        if _NOT_AUTHORIZED in stderr:
            raise BackendPermissionError(
                "Automation permission denied. Allow this program to control the terminal "
                "in System Settings > Privacy & Security > Automation.",
                script=script,
                stderr=stderr,
            )
        if _NO_ASSISTIVE_ACCESS in stderr:
            raise BackendPermissionError(
                "Accessibility permission denied. Allow this program in System Settings > "
                "Privacy & Security > Accessibility (needed for keystrokes).",
                script=script,
                stderr=stderr,
            )
        if _APP_NOT_RUNNING in stderr:
            raise BackendError("Terminal application is not running", script=script, stderr=stderr)
        if _TAB_NOT_FOUND in stderr:
            raise BackendError(
                "Tab disappeared before it could be scripted", script=script, stderr=stderr
            )
        raise BackendError(f"AppleScript failed: {stderr}", script=script, stderr=stderr)

    return proc.stdout.rstrip("\n")


class AppleScriptBackend(TerminalBackend):
    """Shared plumbing for backends scripted through osascript."""

    def _run(self, script: str) -> str:
        return run_applescript(script)

    def _records(self, script: str) -> list[list[str]]:
        return parse_records(self._run(SEPARATORS + script))
