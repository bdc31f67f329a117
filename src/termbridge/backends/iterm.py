"""iTerm2 backend.  A tab is addressed by its session's unique id."""

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
if application "iTerm" is not running then return ""
set out to ""
tell application "iTerm"
    repeat with w in windows
        set wid to (id of w) as text
        repeat with t in tabs of w
            repeat with s in sessions of t
                set out to out & wid & US & (id of s) & US & (tty of s) & US & (name of s) & RS
            end repeat
        end repeat
    end repeat
end tell
return out
"""


def _locate(session_id: str) -> str:
    return f"""
    set targetSession to missing value
    set targetTab to missing value
    set targetWindow to missing value
    repeat with w in windows
        repeat with t in tabs of w
            repeat with s in sessions of t
                if (id of s) is {quote_applescript(session_id)} then
                    set targetSession to contents of s
                    set targetTab to contents of t
                    set targetWindow to contents of w
                end if
            end repeat
        end repeat
    end repeat
    if targetSession is missing value then error "termbridge: tab not found" number 1404
"""


@BackendRegistry.register(TerminalApp.ITERM)
class ITermBackend(AppleScriptBackend):
    """Drives iTerm2."""

    def _profile_clause(self) -> str:
        if self.config.iterm_profile_name:
            return f"profile {quote_applescript(self.config.iterm_profile_name)}"
        return "default profile"

    def _on_session(self, tab: TabHandle, body: str) -> str:
        script = f'tell application "iTerm"\n{_locate(tab.tab_ref)}\n{body}\nend tell\n'
        return self._run(script)

    def enumerate_tabs(self) -> list[TabInfo]:
        tabs = []
        for record in self._records(_ENUMERATE):
            if len(record) < 4:
                continue
            wid, sid, tty, title = record[:4]
            tabs.append(TabInfo(handle=TabHandle(wid, sid), title=title, device_path=tty))
        return tabs

    def create_tab(self, placement: Placement) -> TabInfo:
        profile = self._profile_clause()
        if placement.window_ref is None:
            create = f"set newWindow to (create window with {profile})"
        else:
            create = (
                f"set newWindow to window id {int(placement.window_ref)}\n"
                f"    tell newWindow to create tab with {profile}"
            )
        cd = ""
        if placement.working_directory:
            cd_line = f"cd {shlex.quote(placement.working_directory)}"
            cd = f"tell newSession to write text {quote_applescript(cd_line)}"

        script = f"""
tell application "iTerm"
    {"activate" if placement.activate else ""}
    {create}
    set newSession to current session of newWindow
    {cd}
    return ((id of newWindow) as text) & US & (id of newSession) & US & (tty of newSession)
end tell
"""
        records = parse_records(self._run(SEPARATORS + script))
        if not records or len(records[0]) < 3 or not records[0][2]:
            raise BackendError("iTerm did not report the new session", script=script)
        wid, sid, tty = records[0][:3]
        return TabInfo(handle=TabHandle(wid, sid), title="", device_path=tty)

    def set_title(self, tab: TabHandle, title: str) -> None:
        self._on_session(tab, f"tell targetSession to set name to {quote_applescript(title)}")

    def write_line(self, tab: TabHandle, text: str) -> None:
        self._on_session(tab, f"tell targetSession to write text {quote_applescript(text)}")

    def read_scrollback(self, tab: TabHandle) -> str:
        return self._on_session(tab, "return contents of targetSession")

    def focus(self, tab: TabHandle) -> None:
        self._on_session(
            tab,
            "activate\nselect targetWindow\ntell targetTab to select\ntell targetSession to select",
        )

    def clear_screen_and_scrollback(self, tab: TabHandle) -> None:
        self._on_session(
            tab, f"tell targetSession to write text {quote_applescript(CLEAR_SCREEN_LINE)}"
        )

    def send_interrupt_keystroke(self, tab: TabHandle) -> None:
        self._on_session(tab, "tell targetSession to write text (character id 3) newline no")
