"""termbridge configuration: Pydantic model, TOML file, and TERMBRIDGE_* overlay.

The configuration is built once per process by :func:`load_config` and
passed into every component constructor.  Nothing else reads the
environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from termbridge.core.constants import (
    COMMAND_OUTPUTS_DIR_NAME,
    DEFAULT_BACKGROUND_SECONDS,
    DEFAULT_FOREGROUND_SECONDS,
    DEFAULT_LINES,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_JITTER_SECONDS,
    DEFAULT_SIGINT_WAIT_SECONDS,
    DEFAULT_SIGTERM_WAIT_SECONDS,
    LOG_FILENAME,
    SYSTEM_TEMP_SENTINEL,
    _default_log_dir,
    _system_temp_log_dir,
)
from termbridge.core.exceptions import ConfigError, UnsupportedTerminalAppError


class TerminalApp(StrEnum):
    APPLE_TERMINAL = "Terminal"
    ITERM = "iTerm"
    GHOSTTY = "Ghostty"


class PlacementPolicy(StrEnum):
    """Where a new session tab goes when no reusable session exists."""

    OFF = "off"
    PROJECT = "project"
    SMART = "smart"


_APP_ALIASES: dict[str, TerminalApp] = {
    "terminal": TerminalApp.APPLE_TERMINAL,
    "terminal.app": TerminalApp.APPLE_TERMINAL,
    "apple_terminal": TerminalApp.APPLE_TERMINAL,
    "iterm": TerminalApp.ITERM,
    "iterm2": TerminalApp.ITERM,
    "iterm.app": TerminalApp.ITERM,
    "ghostty": TerminalApp.GHOSTTY,
    "ghostty.app": TerminalApp.GHOSTTY,
}

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})


class TermbridgeConfig(BaseModel):
    """Root termbridge configuration model."""

    model_config = {"extra": "forbid"}

    terminal_app: TerminalApp = TerminalApp.APPLE_TERMINAL
    log_level: str = "WARNING"
    log_json: bool = False
    log_dir: Path = Field(default_factory=_default_log_dir)
    window_grouping: PlacementPolicy = PlacementPolicy.SMART

    default_lines: int = DEFAULT_LINES
    """Lines of output returned by default; <= 0 means unlimited."""
    background_startup_seconds: float = DEFAULT_BACKGROUND_SECONDS
    foreground_completion_seconds: float = DEFAULT_FOREGROUND_SECONDS

    default_focus_on_action: bool = True
    default_focus_on_kill: bool = False
    default_background_execution: bool = False

    sigint_wait_seconds: float = DEFAULT_SIGINT_WAIT_SECONDS
    sigterm_wait_seconds: float = DEFAULT_SIGTERM_WAIT_SECONDS
    pre_kill_script_path: Path | None = None

    reuse_busy_sessions: bool = False
    iterm_profile_name: str | None = None

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    poll_jitter_seconds: float = DEFAULT_POLL_JITTER_SECONDS

    @field_validator("terminal_app", mode="before")
    @classmethod
    def canonical_terminal_app(cls, v: Any) -> Any:
        if isinstance(v, TerminalApp):
            return v
        app = _APP_ALIASES.get(str(v).strip().lower())
        if app is None:
            raise ValueError(
                f"Unsupported terminal application {v!r}. "
                f"Must be one of: {[a.value for a in TerminalApp]}"
            )
        return app

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {sorted(_VALID_LOG_LEVELS)}")
        return v.upper()

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_log_dir(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().upper() == SYSTEM_TEMP_SENTINEL:
            return _system_temp_log_dir()
        return Path(v).expanduser()

    @field_validator("window_grouping", mode="before")
    @classmethod
    def lower_grouping(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("background_startup_seconds", "foreground_completion_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than 0 seconds")
        return v

    @field_validator("sigint_wait_seconds", "sigterm_wait_seconds", "poll_jitter_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_interval_seconds must be greater than 0")
        return v

    @field_validator("pre_kill_script_path", "iterm_profile_name", mode="before")
    @classmethod
    def empty_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # Computed paths

    @property
    def command_outputs_dir(self) -> Path:
        return self.log_dir / COMMAND_OUTPUTS_DIR_NAME

    @property
    def log_path(self) -> Path:
        return self.log_dir / LOG_FILENAME

    def summary(self) -> dict[str, Any]:
        """JSON-safe view of the effective configuration (for ``info``)."""
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Environment mapping
# ---------------------------------------------------------------------------

_ENV_FIELDS: dict[str, str] = {
    "TERMBRIDGE_APP": "terminal_app",
    "TERMBRIDGE_LOG_LEVEL": "log_level",
    "TERMBRIDGE_LOG_JSON": "log_json",
    "TERMBRIDGE_LOG_DIR": "log_dir",
    "TERMBRIDGE_WINDOW_GROUPING": "window_grouping",
    "TERMBRIDGE_DEFAULT_LINES": "default_lines",
    "TERMBRIDGE_BACKGROUND_STARTUP_SECONDS": "background_startup_seconds",
    "TERMBRIDGE_FOREGROUND_COMPLETION_SECONDS": "foreground_completion_seconds",
    "TERMBRIDGE_DEFAULT_FOCUS_ON_ACTION": "default_focus_on_action",
    "TERMBRIDGE_DEFAULT_FOCUS_ON_KILL": "default_focus_on_kill",
    "TERMBRIDGE_DEFAULT_BACKGROUND_EXECUTION": "default_background_execution",
    "TERMBRIDGE_SIGINT_WAIT_SECONDS": "sigint_wait_seconds",
    "TERMBRIDGE_SIGTERM_WAIT_SECONDS": "sigterm_wait_seconds",
    "TERMBRIDGE_PRE_KILL_SCRIPT_PATH": "pre_kill_script_path",
    "TERMBRIDGE_REUSE_BUSY_SESSIONS": "reuse_busy_sessions",
    "TERMBRIDGE_ITERM_PROFILE_NAME": "iterm_profile_name",
    "TERMBRIDGE_POLL_INTERVAL_SECONDS": "poll_interval_seconds",
    "TERMBRIDGE_POLL_JITTER_SECONDS": "poll_jitter_seconds",
}

CONFIG_PATH_ENV = "TERMBRIDGE_CONFIG"

# The only variables the supervisor forwards to the engine child.
RECOGNIZED_ENV_VARS: tuple[str, ...] = (CONFIG_PATH_ENV, *_ENV_FIELDS)


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def load_config(
    path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> TermbridgeConfig:
    """
    Build the configuration for this process.

    Priority (highest to lowest):
      1. *overrides* (CLI flags; ``None`` values are ignored)
      2. Environment variables (TERMBRIDGE_*)
      3. TOML file (*path*, or $TERMBRIDGE_CONFIG when set)
      4. Model defaults
    """
    import tomllib

    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    cfg_path: Path | None = None
    if path is not None:
        cfg_path = Path(path)
    elif env_path := env.get(CONFIG_PATH_ENV, ""):
        cfg_path = Path(env_path).expanduser()

    if cfg_path is not None:
        if not cfg_path.exists():
            raise ConfigError(f"Config file not found: {cfg_path}")
        try:
            with open(cfg_path, "rb") as f:
                data.update(tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    _apply_env_overrides(data, env)

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return TermbridgeConfig.model_validate(data)
    except ValidationError as exc:
        if any(err["loc"][:1] == ("terminal_app",) for err in exc.errors()):
            raise UnsupportedTerminalAppError(
                f"Unsupported terminal application: {data.get('terminal_app')!r}"
            ) from exc
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str] | None = None) -> None:
    """Overlay recognized TERMBRIDGE_* environment variables onto *data*."""
    env = os.environ if environ is None else environ
    for name, field_name in _ENV_FIELDS.items():
        value = env.get(name, "")
        if value:
            data[field_name] = value


def forwardable_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return only the recognized configuration variables from *environ*."""
    env = os.environ if environ is None else environ
    return {name: env[name] for name in RECOGNIZED_ENV_VARS if env.get(name)}
