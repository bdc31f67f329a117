"""
Terminal.app backend.

Terminal tabs have no stable scripting id, so a tab is addressed by its
tty (unique while the tab exists) and its window by ``id of window``.
Opening a tab inside an existing window has no scripting verb; it is done
with a Cmd+T keystroke through System Events, which needs Accessibility
permission and brings Terminal to the front.
"""

from __future__ import annotations

import shlex

from termbridge.backends.applescript import (
    SEPARATORS,
    AppleScriptBackend,
    parse_records,
    quote_applescript,
)
from termbridge.backends.base import CLEAR_SCREEN_LINE, BackendRegistry, Placement
from termbridge.core.config import TerminalApp
from termbridge.core.exceptions import BackendError
from termbridge.core.session.models import TabHandle, TabInfo

_ENUMERATE = """
if application "Terminal" is not running then return ""
set out to ""
tell application "Terminal"
    repeat with w in windows
        set wid to (id of w) as text
        repeat with t in tabs of w
            set ttl to ""
            try
                set ttl to custom title of t
            end try
            if ttl is missing value then set ttl to ""
            set out to out & wid & US & (tty of t) & US & ttl & RS
        end repeat
    end repeat
end tell
return out
"""


def _locate(tty: str) -> str:
    """Script fragment binding targetWindow/targetTab for the tab on *tty*."""
    return f"""
    set targetTab to missing value
    set targetWindow to missing value
    repeat with w in windows
        repeat with t in tabs of w
            if (tty of t) is {quote_applescript(tty)} then
                set targetTab to contents of t
                set targetWindow to contents of w
                exit repeat
            end if
        end repeat
        if targetTab is not missing value then exit repeat
    end repeat
    if targetTab is missing value then error "termbridge: tab not found" number 1404
"""


@BackendRegistry.register(TerminalApp.APPLE_TERMINAL)
class AppleTerminalBackend(AppleScriptBackend):
    """Drives Terminal.app."""

    def _on_tab(self, tab: TabHandle, body: str) -> str:
        script = f'tell application "Terminal"\n{_locate(tab.tab_ref)}\n{body}\nend tell\n'
        return self._run(script)

    def enumerate_tabs(self) -> list[TabInfo]:
        tabs = []
        for record in self._records(_ENUMERATE):
            if len(record) < 3:
                continue
            wid, tty, title = record[0], record[1], record[2]
            tabs.append(TabInfo(handle=TabHandle(wid, tty), title=title, device_path=tty))
        return tabs

    def create_tab(self, placement: Placement) -> TabInfo:
        cd_line = ""
        if placement.working_directory:
            cd_line = f"cd {shlex.quote(placement.working_directory)}"

        if placement.window_ref is None:
            script = f"""
tell application "Terminal"
    set newTab to do script {quote_applescript(cd_line)}
    {"activate" if placement.activate else ""}
    set newTty to tty of newTab
    set wid to ""
    repeat with w in windows
        repeat with t in tabs of w
            if (tty of t) is newTty then set wid to (id of w) as text
        end repeat
    end repeat
    return wid & US & newTty
end tell
"""
        else:
            run_cd = f"do script {quote_applescript(cd_line)} in newTab" if cd_line else ""
            script = f"""
tell application "Terminal"
    activate
    set index of window id {int(placement.window_ref)} to 1
end tell
delay 0.2
tell application "System Events" to tell process "Terminal" to keystroke "t" using command down
delay 0.4
tell application "Terminal"
    set newTab to selected tab of window id {int(placement.window_ref)}
    {run_cd}
    return ({int(placement.window_ref)} as text) & US & (tty of newTab)
end tell
"""
        records = parse_records(self._run(SEPARATORS + script))
        if not records or len(records[0]) < 2 or not records[0][1]:
            raise BackendError("Terminal did not report the new tab", script=script)
        wid, tty = records[0][0], records[0][1]
        return TabInfo(handle=TabHandle(wid, tty), title="", device_path=tty)

    def set_title(self, tab: TabHandle, title: str) -> None:
        self._on_tab(
            tab,
            f"set custom title of targetTab to {quote_applescript(title)}\n"
            "set title displays custom title of targetTab to true",
        )

    def write_line(self, tab: TabHandle, text: str) -> None:
        self._on_tab(tab, f"do script {quote_applescript(text)} in targetTab")

    def read_scrollback(self, tab: TabHandle) -> str:
        return self._on_tab(tab, "return history of targetTab")

    def focus(self, tab: TabHandle) -> None:
        self._on_tab(
            tab,
            "activate\nset selected of targetTab to true\nset index of targetWindow to 1",
        )

    def clear_screen_and_scrollback(self, tab: TabHandle) -> None:
        self._on_tab(tab, f"do script {quote_applescript(CLEAR_SCREEN_LINE)} in targetTab")

    def send_interrupt_keystroke(self, tab: TabHandle) -> None:
        self.focus(tab)
        self._run(
            'tell application "System Events" to tell process "Terminal" '
            'to keystroke "c" using control down'
        )
