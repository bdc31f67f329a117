"""Ghostty backend.  Ghostty has no scripting dictionary, so nothing is supported."""

from __future__ import annotations

from termbridge.backends.base import BackendRegistry, Placement, TerminalBackend
from termbridge.core.config import TerminalApp
from termbridge.core.exceptions import UnsupportedOperationError
from termbridge.core.session.models import TabHandle, TabInfo


@BackendRegistry.register(TerminalApp.GHOSTTY)
class GhosttyBackend(TerminalBackend):
    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{operation} is not supported for {self.name}; use Terminal or iTerm"
        )

    def enumerate_tabs(self) -> list[TabInfo]:
        raise self._unsupported("Listing tabs")

    def create_tab(self, placement: Placement) -> TabInfo:
        raise self._unsupported("Creating tabs")

    def set_title(self, tab: TabHandle, title: str) -> None:
        raise self._unsupported("Setting titles")

    def write_line(self, tab: TabHandle, text: str) -> None:
        raise self._unsupported("Writing to tabs")

    def read_scrollback(self, tab: TabHandle) -> str:
        raise self._unsupported("Reading scrollback")

    def focus(self, tab: TabHandle) -> None:
        raise self._unsupported("Focusing tabs")

    def clear_screen_and_scrollback(self, tab: TabHandle) -> None:
        raise self._unsupported("Clearing tabs")

    def send_interrupt_keystroke(self, tab: TabHandle) -> None:
        raise self._unsupported("Sending keystrokes")
