"""
Unit tests for the AppleScript backends.

osascript is never run: run_applescript is exercised against a patched
subprocess.run, and the backends against a patched ``_run``.
"""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

import termbridge.backends  # noqa: F401
from termbridge.backends import get_backend
from termbridge.backends.applescript import parse_records, quote_applescript, run_applescript
from termbridge.backends.apple_terminal import AppleTerminalBackend
from termbridge.backends.base import BackendRegistry, Placement, TerminalBackend
from termbridge.backends.iterm import ITermBackend
from termbridge.core.config import TerminalApp
from termbridge.core.exceptions import BackendError, BackendPermissionError
from termbridge.core.session.models import TabHandle

US = "\x1f"
RS = "\x1e"


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_all_apps_registered(self) -> None:
        for app in TerminalApp:
            assert issubclass(BackendRegistry.get(app), TerminalBackend)

    def test_get_backend(self, config) -> None:
        config.terminal_app = TerminalApp.ITERM
        assert isinstance(get_backend(config), ITermBackend)
        config.terminal_app = TerminalApp.APPLE_TERMINAL
        assert isinstance(get_backend(config), AppleTerminalBackend)


# ---------------------------------------------------------------------------
# osascript plumbing
# ---------------------------------------------------------------------------


class TestRunAppleScript:
    def test_script_on_stdin(self) -> None:
        with patch(
            "termbridge.backends.applescript.subprocess.run", return_value=_completed(stdout="ok\n")
        ) as run:
            assert run_applescript('return "ok"') == "ok"
        assert run.call_args.args[0][-1] == "-"
        assert run.call_args.kwargs["input"] == 'return "ok"'

    @pytest.mark.parametrize(
        "stderr,exc_type,text",
        [
            ("execution error: Not authorized to send Apple events (-1743)", BackendPermissionError, "Automation"),
            ("System Events got an error: not allowed assistive access. (-1719)", BackendPermissionError, "Accessibility"),
            ("Application isn’t running. (-600)", BackendError, "not running"),
            ("termbridge: tab not found (1404)", BackendError, "disappeared"),
            ("syntax error", BackendError, "AppleScript failed"),
        ],
    )
    def test_error_mapping(self, stderr: str, exc_type: type, text: str) -> None:
        with patch(
            "termbridge.backends.applescript.subprocess.run",
            return_value=_completed(returncode=1, stderr=stderr),
        ):
            with pytest.raises(exc_type, match=text) as excinfo:
                run_applescript("beep")
        assert excinfo.value.script == "beep"

    def test_timeout(self) -> None:
        with patch(
            "termbridge.backends.applescript.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="osascript", timeout=15),
        ):
            with pytest.raises(BackendError, match="timed out"):
                run_applescript("delay 100", timeout=15)

    def test_missing_osascript(self) -> None:
        with patch("termbridge.backends.applescript.subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(BackendError, match="not available"):
                run_applescript("beep")

    def test_quote(self) -> None:
        assert quote_applescript('say "hi" \\ bye') == '"say \\"hi\\" \\\\ bye"'

    def test_parse_records(self) -> None:
        out = f"1{US}/dev/ttys001{US}title, with comma{RS}2{US}/dev/ttys002{US}{RS}"
        assert parse_records(out) == [
            ["1", "/dev/ttys001", "title, with comma"],
            ["2", "/dev/ttys002", ""],
        ]
        assert parse_records("") == []


# ---------------------------------------------------------------------------
# Terminal.app
# ---------------------------------------------------------------------------


class TestAppleTerminal:
    def test_enumerate(self, config) -> None:
        backend = AppleTerminalBackend(config)
        out = f"101{US}/dev/ttys001{US}::TERMBRIDGE_SESSION_V1::x{RS}101{US}/dev/ttys002{US}{RS}"
        with patch.object(backend, "_run", return_value=out):
            tabs = backend.enumerate_tabs()
        assert [t.device_path for t in tabs] == ["/dev/ttys001", "/dev/ttys002"]
        assert tabs[0].handle == TabHandle("101", "/dev/ttys001")

    def test_create_new_window(self, config) -> None:
        backend = AppleTerminalBackend(config)
        with patch.object(backend, "_run", return_value=f"55{US}/dev/ttys009") as run:
            tab = backend.create_tab(Placement(working_directory="/Users/dev/my api"))
        assert tab.device_path == "/dev/ttys009"
        assert tab.handle.window_ref == "55"
        assert "cd '/Users/dev/my api'" in run.call_args.args[0]

    def test_create_in_window_uses_keystroke(self, config) -> None:
        backend = AppleTerminalBackend(config)
        with patch.object(backend, "_run", return_value=f"55{US}/dev/ttys010") as run:
            backend.create_tab(Placement(window_ref="55"))
        assert 'keystroke "t" using command down' in run.call_args.args[0]

    def test_create_without_tty_fails(self, config) -> None:
        backend = AppleTerminalBackend(config)
        with patch.object(backend, "_run", return_value=""):
            with pytest.raises(BackendError):
                backend.create_tab(Placement())

    def test_write_line_targets_tty(self, config) -> None:
        backend = AppleTerminalBackend(config)
        with patch.object(backend, "_run", return_value="") as run:
            backend.write_line(TabHandle("55", "/dev/ttys010"), 'echo "hi"')
        script = run.call_args.args[0]
        assert '"/dev/ttys010"' in script
        assert 'do script "echo \\"hi\\"" in targetTab' in script


# ---------------------------------------------------------------------------
# iTerm2
# ---------------------------------------------------------------------------


class TestITerm:
    def test_enumerate(self, config) -> None:
        backend = ITermBackend(config)
        out = f"7{US}SID-1{US}/dev/ttys003{US}zsh{RS}"
        with patch.object(backend, "_run", return_value=out):
            tabs = backend.enumerate_tabs()
        assert tabs[0].handle == TabHandle("7", "SID-1")
        assert tabs[0].device_path == "/dev/ttys003"
        assert tabs[0].title == "zsh"

    def test_profile(self, config) -> None:
        assert ITermBackend(config)._profile_clause() == "default profile"
        config.iterm_profile_name = "Agents"
        assert ITermBackend(config)._profile_clause() == 'profile "Agents"'

    def test_interrupt_writes_control_c(self, config) -> None:
        backend = ITermBackend(config)
        with patch.object(backend, "_run", return_value="") as run:
            backend.send_interrupt_keystroke(TabHandle("7", "SID-1"))
        assert "character id 3" in run.call_args.args[0]
