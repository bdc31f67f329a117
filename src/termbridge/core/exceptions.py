"""termbridge exception hierarchy.

Every exception carries the :class:`ExitCode` the engine CLI exits with
when it escapes a command.
"""

from __future__ import annotations

from termbridge.core.constants import ExitCode


class TermbridgeError(Exception):
    """Base exception for all termbridge errors."""

    exit_code: ExitCode = ExitCode.ERROR


class ConfigError(TermbridgeError):
    """Raised when the configuration is invalid or cannot be read."""

    exit_code = ExitCode.CONFIG_ERROR


class UnsupportedTerminalAppError(ConfigError):
    """Raised when the configured terminal application is not known."""


class InvalidTagError(TermbridgeError):
    """Raised when a session tag is empty or uses characters outside [A-Za-z0-9_-]."""

    exit_code = ExitCode.USAGE_ERROR


class BackendError(TermbridgeError):
    """Raised when the terminal application cannot be driven.

    ``script`` holds the script or command that failed, when there is one.
    """

    exit_code = ExitCode.BACKEND_ERROR

    def __init__(self, message: str, *, script: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.script = script
        self.stderr = stderr


class BackendPermissionError(BackendError):
    """Raised when macOS denies automation access to the terminal application."""

    exit_code = ExitCode.PERMISSION_ERROR


class UnsupportedOperationError(BackendError):
    """Raised by a backend for an operation its application cannot perform."""

    exit_code = ExitCode.CONFIG_ERROR


class SessionError(TermbridgeError):
    """Raised when session resolution fails."""


class SessionNotFoundError(SessionError):
    """Raised when no tab carries the requested (project, tag) identity."""

    exit_code = ExitCode.SESSION_NOT_FOUND


class SessionBusyError(SessionError):
    """Raised when a session's device is still occupied after preemption."""

    exit_code = ExitCode.SESSION_BUSY

    def __init__(self, message: str, *, device_path: str = "", process: str = "") -> None:
        super().__init__(message)
        self.device_path = device_path
        self.process = process


class CommandExecutionError(TermbridgeError):
    """Raised when a command could not be dispatched or its output collected."""

    exit_code = ExitCode.COMMAND_FAILED
