"""Shared fixtures: an in-memory terminal backend and a quiet configuration."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from termbridge.backends.base import Placement, TerminalBackend
from termbridge.core.config import TermbridgeConfig, TerminalApp
from termbridge.core.session.models import TabHandle, TabInfo


class FakeBackend(TerminalBackend):
    """
    Terminal application simulated in memory.

    Tabs are kept in enumeration order.  Every call is recorded in
    ``calls`` as ``(method, tab_ref, *args)``.  ``on_write`` lets a test
    act as the shell that receives typed lines.
    """

    app = TerminalApp.APPLE_TERMINAL

    def __init__(self, config: TermbridgeConfig) -> None:
        super().__init__(config)
        self.tabs: list[TabInfo] = []
        self.scrollback: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.on_write: Callable[[TabHandle, str], None] | None = None
        self.fail_create_in_window: Exception | None = None
        self._next_tty = 1
        self._next_window = 1

    # test helpers

    def add_tab(self, title: str, *, window: str = "w1", tty: str | None = None) -> TabInfo:
        if tty is None:
            tty = self._allocate_tty()
        tab = TabInfo(handle=TabHandle(window_ref=window, tab_ref=tty), title=title, device_path=tty)
        self.tabs.append(tab)
        return tab

    def written(self) -> list[str]:
        return [call[2] for call in self.calls if call[0] == "write_line"]

    def _allocate_tty(self) -> str:
        tty = f"/dev/ttys{self._next_tty:03d}"
        self._next_tty += 1
        return tty

    # TerminalBackend

    def enumerate_tabs(self) -> list[TabInfo]:
        return list(self.tabs)

    def create_tab(self, placement: Placement) -> TabInfo:
        self.calls.append(("create_tab", None, placement))
        if placement.window_ref is not None and self.fail_create_in_window is not None:
            raise self.fail_create_in_window
        window = placement.window_ref
        if window is None:
            window = f"new{self._next_window}"
            self._next_window += 1
        return self.add_tab("", window=window)

    def set_title(self, tab: TabHandle, title: str) -> None:
        self.calls.append(("set_title", tab.tab_ref, title))
        for index, existing in enumerate(self.tabs):
            if existing.handle == tab:
                self.tabs[index] = TabInfo(handle=tab, title=title, device_path=existing.device_path)

    def write_line(self, tab: TabHandle, text: str) -> None:
        self.calls.append(("write_line", tab.tab_ref, text))
        if self.on_write is not None:
            self.on_write(tab, text)

    def read_scrollback(self, tab: TabHandle) -> str:
        self.calls.append(("read_scrollback", tab.tab_ref))
        return self.scrollback.get(tab.tab_ref, "")

    def focus(self, tab: TabHandle) -> None:
        self.calls.append(("focus", tab.tab_ref))

    def clear_screen_and_scrollback(self, tab: TabHandle) -> None:
        self.calls.append(("clear", tab.tab_ref))

    def send_interrupt_keystroke(self, tab: TabHandle) -> None:
        self.calls.append(("interrupt_keystroke", tab.tab_ref))


@pytest.fixture
def config(tmp_path: Path) -> TermbridgeConfig:
    return TermbridgeConfig(
        log_dir=tmp_path / "logs",
        poll_interval_seconds=0.01,
        poll_jitter_seconds=0.0,
        sigint_wait_seconds=0.01,
        sigterm_wait_seconds=0.01,
    )


@pytest.fixture
def backend(config: TermbridgeConfig) -> FakeBackend:
    return FakeBackend(config)
