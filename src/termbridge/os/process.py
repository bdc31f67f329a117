"""
Process-table queries, process-group signalling, and output-file tailing.

There is no pipe to a command running inside a terminal tab, so the
engine learns everything from two sources only:

  * ``ps -t <tty>`` — which process group holds the tab's foreground
  * the command's redirected output file — polled until the completion marker
    appears or a deadline passes
"""

from __future__ import annotations

import os
import random
import re
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from termbridge.core.constants import PS_PATH, PS_TIMEOUT_SECONDS, SHELL_PROCESS_NAMES

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProcessEntry:
    """One row of ``ps -o pgid=,pid=,stat=,comm=``."""

    pgid: int
    pid: int
    stat: str
    command: str

    @property
    def name(self) -> str:
        return os.path.basename(self.command).lstrip("-")

    @property
    def is_foreground(self) -> bool:
        return "+" in self.stat

    @property
    def is_session_leader(self) -> bool:
        return "s" in self.stat

    @property
    def is_shell(self) -> bool:
        return self.name in SHELL_PROCESS_NAMES

    @property
    def description(self) -> str:
        return f"{self.name} (pid {self.pid}, pgid {self.pgid})"


# ---------------------------------------------------------------------------
# Process table
# ---------------------------------------------------------------------------


def tty_name(device_path: str) -> str:
    """``/dev/ttys004`` -> ``ttys004``; ``/dev/pts/3`` -> ``pts/3``."""
    return device_path[len("/dev/") :] if device_path.startswith("/dev/") else device_path


def parse_ps_output(text: str) -> list[ProcessEntry]:
    entries: list[ProcessEntry] = []
    for line in text.splitlines():
        parts = line.split(None, 3)
        if len(parts) < 4:
            continue
        try:
            entries.append(
                ProcessEntry(pgid=int(parts[0]), pid=int(parts[1]), stat=parts[2], command=parts[3])
            )
        except ValueError:
            logger.debug("ps_line_unparsed", line=line)
    return entries


def list_tty_processes(device_path: str) -> list[ProcessEntry]:
    """All processes attached to *device_path*; empty when the query fails."""
    ps = shutil.which("ps") or PS_PATH
    argv = [ps, "-t", tty_name(device_path), "-o", "pgid=,pid=,stat=,comm="]
    try:
        proc = subprocess.run(  # noqa: S603
            argv,
            capture_output=True,
            text=True,
            timeout=PS_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("ps_failed", tty=device_path, error=str(exc))
        return []

    # ps exits 1 with no output when nothing is attached to the tty
    if proc.returncode != 0 and proc.stdout.strip():
        logger.warning("ps_nonzero_exit", tty=device_path, code=proc.returncode, stderr=proc.stderr)
    return parse_ps_output(proc.stdout)


def foreground_process(device_path: str) -> ProcessEntry | None:
    """
    Return the non-shell process holding the foreground of *device_path*.

    A process qualifies when ps marks it foreground (``+``), it is not a
    session leader (the tab's login shell), and its name is not a known
    shell.
    """
    for entry in list_tty_processes(device_path):
        if entry.is_foreground and not entry.is_session_leader and not entry.is_shell:
            return entry
    return None


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def signal_group(pgid: int, sig: signal.Signals) -> bool:
    """Send *sig* to process group *pgid*.  False when it could not be delivered."""
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        return False
    except PermissionError:
        logger.warning("signal_denied", pgid=pgid, signal=sig.name)
        return False
    logger.debug("signal_sent", pgid=pgid, signal=sig.name)
    return True


def group_alive(pgid: int) -> bool:
    """True while any process in *pgid* exists (EPERM counts as alive)."""
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


# ---------------------------------------------------------------------------
# Output files
# ---------------------------------------------------------------------------


@dataclass
class TailResult:
    content: str
    found: bool
    exit_status: int | None = None


def read_output(path: Path) -> str:
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


def split_marker(content: str, marker: str) -> tuple[str, int] | None:
    """
    Split ``<output><marker>:<status>\\n`` into (output, status).

    The marker is appended right after the command's output, which need
    not end in a newline.  Only a marker ending the stream counts; the same
    text earlier is ordinary output.  One newline before the marker belongs
    to the output's last line and is dropped.
    """
    match = re.search(rf"{re.escape(marker)}:(-?\d+)\n?\Z", content)
    if match is None:
        return None
    return content[: match.start()].removesuffix("\n"), int(match.group(1))


def tail_until_marker(
    path: Path,
    marker: str,
    timeout_seconds: float,
    *,
    poll_interval: float,
    jitter: float = 0.0,
) -> TailResult:
    """Poll *path* until it ends with *marker* or *timeout_seconds* elapse."""
    deadline = time.monotonic() + timeout_seconds
    while True:
        content = read_output(path)
        split = split_marker(content, marker)
        if split is not None:
            return TailResult(content=split[0], found=True, exit_status=split[1])

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return TailResult(content=content, found=False)
        time.sleep(min(remaining, poll_interval + random.uniform(0, jitter)))  # noqa: S311


def truncate_lines(text: str, limit: int) -> str:
    """Keep the last *limit* whole lines of *text*; ``limit <= 0`` keeps all."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    if limit > 0:
        lines = lines[-limit:]
    return "\n".join(lines)
