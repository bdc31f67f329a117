"""termbridge constants: exit codes, filesystem layout, title format, timings."""

from __future__ import annotations

import os
import sys
import tempfile
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    """Stable engine exit codes.  Callers branch on these; never renumber."""

    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    BACKEND_ERROR = 3
    SESSION_NOT_FOUND = 4
    SESSION_BUSY = 5
    COMMAND_FAILED = 6
    TIMEOUT = 7
    INTERNAL_ERROR = 8
    PERMISSION_ERROR = 9
    USAGE_ERROR = 64


# ---------------------------------------------------------------------------
# Platform-specific log directory
# ---------------------------------------------------------------------------

SYSTEM_TEMP_SENTINEL = "SYSTEM_TEMP"


def _default_log_dir() -> Path:
    """
    Return the platform-appropriate termbridge log directory.

    macOS : ~/Library/Logs/termbridge
    Linux : ~/.local/state/termbridge  (or $XDG_STATE_HOME/termbridge)
    Other : ~/.termbridge/logs
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Logs" / "termbridge"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state")))
        return xdg / "termbridge"
    return Path.home() / ".termbridge" / "logs"


def _system_temp_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "termbridge"


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

LOG_FILENAME = "termbridge.log"
COMMAND_OUTPUTS_DIR_NAME = "command_outputs"
OUTPUT_FILE_PREFIX = "termbridge_output"

# ---------------------------------------------------------------------------
# Session titles
# ---------------------------------------------------------------------------

TITLE_PREFIX = "::TERMBRIDGE_SESSION_V1::"
TITLE_DELIMITER = "::"
NO_PROJECT_FINGERPRINT = "NO_PROJECT"
GLOBAL_LABEL = "Global"
DEFAULT_TAG = "default"
MAX_TAG_LENGTH = 64

# ---------------------------------------------------------------------------
# Completion markers
# ---------------------------------------------------------------------------

MARKER_PREFIX = "TERMBRIDGE_DONE_"
NEVER_MARKER_PREFIX = "TERMBRIDGE_BG_NEVER_"

# ---------------------------------------------------------------------------
# Timeouts and limits
# ---------------------------------------------------------------------------

DEFAULT_LINES = 100
DEFAULT_FOREGROUND_SECONDS = 60
DEFAULT_BACKGROUND_SECONDS = 5
DEFAULT_SIGINT_WAIT_SECONDS = 2.0
DEFAULT_SIGTERM_WAIT_SECONDS = 2.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.2
DEFAULT_POLL_JITTER_SECONDS = 0.05
PREEMPT_SETTLE_SECONDS = 1.0  # fixed: bounds worst-case preemption latency
SIGKILL_SETTLE_SECONDS = 0.2
PRE_KILL_HOOK_TIMEOUT_SECONDS = 10.0
APPLESCRIPT_TIMEOUT_SECONDS = 15.0
PS_TIMEOUT_SECONDS = 5.0

# Supervisor: outer deadline = max(engine timeouts) + buffer
SUPERVISOR_BUFFER_SECONDS = 60.0
SUPERVISOR_KILL_GRACE_SECONDS = 2.0

# ---------------------------------------------------------------------------
# Process table
# ---------------------------------------------------------------------------

PS_PATH = "/bin/ps"
OSASCRIPT_PATH = "/usr/bin/osascript"

# Foreground processes with these names are the interactive shell, not a job.
SHELL_PROCESS_NAMES = frozenset(
    {"bash", "zsh", "fish", "sh", "tcsh", "csh", "ksh", "dash", "login", "script"}
)
