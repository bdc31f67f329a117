"""
Session domain models.

A Session is a terminal tab whose title termbridge owns and can re-find.
Its identity is the ``(project_fingerprint, tag)`` pair encoded in that
title; everything else is re-read from the terminal application on every
invocation.  Session objects live for exactly one engine invocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class ExecutionMode(StrEnum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class FocusMode(StrEnum):
    FORCE_FOCUS = "force-focus"
    NO_FOCUS = "no-focus"
    AUTO_BEHAVIOR = "auto-behavior"
    DEFAULT = "default"

    def should_focus(self, default: bool) -> bool:
        """Resolve the preference against the configured default."""
        if self is FocusMode.FORCE_FOCUS:
            return True
        if self is FocusMode.NO_FOCUS:
            return False
        return default


@dataclass(frozen=True)
class TabHandle:
    """Opaque backend references to one tab.  Valid for one invocation only."""

    window_ref: str
    tab_ref: str


@dataclass(frozen=True)
class TabInfo:
    """One tab as reported by a backend's enumeration."""

    handle: TabHandle
    title: str
    device_path: str


@dataclass
class Session:
    """A terminal tab carrying a termbridge identity."""

    display_name: str
    project_fingerprint: str
    tag: str
    terminal_device_path: str
    handle: TabHandle
    project_path: str | None = None
    creator_pid: int | None = None
    created: bool = False  # True when this invocation opened the tab

    @property
    def window_ref(self) -> str:
        return self.handle.window_ref

    @property
    def tab_ref(self) -> str:
        return self.handle.tab_ref

    def to_dict(self, *, is_busy: bool | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "display_name": self.display_name,
            "project_fingerprint": self.project_fingerprint,
            "tag": self.tag,
            "tty": self.terminal_device_path,
            "window_ref": self.window_ref,
            "tab_ref": self.tab_ref,
        }
        if is_busy is not None:
            data["is_busy"] = is_busy
        return data


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class ExecutionRequest:
    tag: str | None = None
    project_path: str | None = None
    command: str = ""  # empty: resolve/prepare the session only
    mode: ExecutionMode = ExecutionMode.FOREGROUND
    line_limit: int | None = None  # None: configured default
    timeout_seconds: float | None = None  # None: configured default for the mode
    focus_mode: FocusMode = FocusMode.DEFAULT

    @property
    def is_prepare_only(self) -> bool:
        return not self.command.strip()


@dataclass
class KillRequest:
    tag: str | None = None
    project_path: str | None = None
    focus_mode: FocusMode = FocusMode.DEFAULT


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ExecutionResult:
    session: Session
    mode: ExecutionMode
    output: str = ""
    timed_out: bool = False
    prepared_only: bool = False
    exit_status: int | None = None
    output_file: Path | None = None  # retained on timeout / background
    killed_after_timeout: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "mode": str(self.mode),
            "output": self.output,
            "timed_out": self.timed_out,
            "prepared_only": self.prepared_only,
            "exit_status": self.exit_status,
            "output_file": str(self.output_file) if self.output_file else None,
            "killed_after_timeout": self.killed_after_timeout,
        }


@dataclass
class ReadResult:
    session: Session
    output: str
    line_limit: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "output": self.output,
            "line_limit": self.line_limit,
        }


@dataclass
class KillResult:
    session: Session
    success: bool
    message: str
    signals_sent: list[str] = field(default_factory=list)
    used_keystroke_fallback: bool = False
    hook_ran: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "success": self.success,
            "message": self.message,
            "signals_sent": list(self.signals_sent),
            "used_keystroke_fallback": self.used_keystroke_fallback,
            "hook_ran": self.hook_ran,
        }


@dataclass
class SessionStatus:
    """A session plus its busy state at the moment it was listed."""

    session: Session
    is_busy: bool
    process: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = self.session.to_dict(is_busy=self.is_busy)
        data["process"] = self.process
        return data


@dataclass
class SessionListing:
    sessions: list[SessionStatus] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": [s.to_dict() for s in self.sessions],
            "warnings": list(self.warnings),
        }
