"""
Terminal backend interface.

A backend is the only thing that touches the terminal application: it
lists tabs with their titles and devices, opens tabs, writes lines as if
typed, reads scrollback, focuses, and clears.  The resolver and engines
depend on this interface alone.

Concrete implementations:
  AppleTerminalBackend — Terminal.app via AppleScript
  ITermBackend         — iTerm2 via AppleScript
  GhosttyBackend       — no scripting dictionary; every operation unsupported
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from termbridge.core.config import TermbridgeConfig, TerminalApp
from termbridge.core.session.models import TabHandle, TabInfo

# Typed into a tab to wipe the screen and the scrollback (ESC[3J).
CLEAR_SCREEN_LINE = "clear && printf '\\033[3J'"


@dataclass(frozen=True)
class Placement:
    """Where ``create_tab`` should put the new tab."""

    window_ref: str | None = None  # None: open a new window
    activate: bool = False
    working_directory: str | None = None


class TerminalBackend(ABC):
    """Capability interface for one terminal application."""

    app: TerminalApp

    def __init__(self, config: TermbridgeConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return str(self.app)

    @abstractmethod
    def enumerate_tabs(self) -> list[TabInfo]:
        """Every tab in every window, in the application's order."""

    @abstractmethod
    def create_tab(self, placement: Placement) -> TabInfo:
        """Open a tab (or a new window) and return it untitled."""

    @abstractmethod
    def set_title(self, tab: TabHandle, title: str) -> None: ...

    @abstractmethod
    def write_line(self, tab: TabHandle, text: str) -> None:
        """Inject *text* followed by Return, as if typed."""

    @abstractmethod
    def read_scrollback(self, tab: TabHandle) -> str: ...

    @abstractmethod
    def focus(self, tab: TabHandle) -> None: ...

    @abstractmethod
    def clear_screen_and_scrollback(self, tab: TabHandle) -> None: ...

    @abstractmethod
    def send_interrupt_keystroke(self, tab: TabHandle) -> None:
        """Deliver Ctrl+C to the tab.  May bring the application to the front."""


class _BackendRegistryMeta(type):
    _registry: dict[TerminalApp, type[TerminalBackend]] = {}


class BackendRegistry(metaclass=_BackendRegistryMeta):
    """Registry of backend classes keyed by terminal application."""

    @classmethod
    def register(cls, app: TerminalApp) -> Any:
        """Decorator: @BackendRegistry.register(TerminalApp.ITERM)"""

        def decorator(backend_cls: type[TerminalBackend]) -> type[TerminalBackend]:
            backend_cls.app = app
            cls._registry[app] = backend_cls
            return backend_cls

        return decorator

    @classmethod
    def get(cls, app: TerminalApp) -> type[TerminalBackend]:
        if app not in cls._registry:
            available = ", ".join(sorted(str(a) for a in cls._registry)) or "(none)"
            raise KeyError(f"No backend for {app!r}. Available: {available}")
        return cls._registry[app]
