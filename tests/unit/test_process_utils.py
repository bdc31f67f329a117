"""Unit tests for termbridge.os.process — ps parsing, signals, output tailing."""

from __future__ import annotations

import signal
import subprocess
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from termbridge.os.process import (
    ProcessEntry,
    foreground_process,
    group_alive,
    list_tty_processes,
    parse_ps_output,
    signal_group,
    split_marker,
    tail_until_marker,
    truncate_lines,
    tty_name,
)

PS_IDLE = """\
  501   501 Ss   -zsh
"""

PS_BUSY = """\
  501   501 Ss   -zsh
  777   777 S+   /usr/local/bin/node
  777   778 S+   /usr/local/bin/node
"""

PS_SUBSHELL = """\
  501   501 Ss   -zsh
  900   900 S+   /bin/bash
"""

# ---------------------------------------------------------------------------
# Process table
# ---------------------------------------------------------------------------


class TestParsePs:
    def test_parses_rows(self) -> None:
        entries = parse_ps_output(PS_BUSY)
        assert entries[1] == ProcessEntry(pgid=777, pid=777, stat="S+", command="/usr/local/bin/node")
        assert entries[1].name == "node"
        assert entries[0].name == "zsh"

    def test_command_with_spaces(self) -> None:
        entries = parse_ps_output("  12 13 R+ /Applications/My App/bin/tool\n")
        assert entries[0].command == "/Applications/My App/bin/tool"

    def test_garbage_lines_skipped(self) -> None:
        assert parse_ps_output("header only\nx y z w\n\n") == []

    def test_tty_name(self) -> None:
        assert tty_name("/dev/ttys004") == "ttys004"
        assert tty_name("/dev/pts/3") == "pts/3"


class TestForegroundProcess:
    def _with_ps(self, output: str) -> ProcessEntry | None:
        with patch("termbridge.os.process.list_tty_processes", return_value=parse_ps_output(output)):
            return foreground_process("/dev/ttys004")

    def test_idle_shell(self) -> None:
        assert self._with_ps(PS_IDLE) is None

    def test_busy(self) -> None:
        entry = self._with_ps(PS_BUSY)
        assert entry is not None
        assert entry.pgid == 777

    def test_interactive_subshell_is_idle(self) -> None:
        assert self._with_ps(PS_SUBSHELL) is None

    def test_ps_failure_means_idle(self) -> None:
        with patch("termbridge.os.process.subprocess.run", side_effect=OSError("no ps")):
            assert list_tty_processes("/dev/ttys004") == []

    def test_ps_timeout_means_idle(self) -> None:
        with patch(
            "termbridge.os.process.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ps", timeout=5),
        ):
            assert list_tty_processes("/dev/ttys004") == []

    def test_ps_invocation(self) -> None:
        done = MagicMock(returncode=0, stdout=PS_IDLE, stderr="")
        with patch("termbridge.os.process.subprocess.run", return_value=done) as run:
            list_tty_processes("/dev/ttys009")
        argv = run.call_args.args[0]
        assert argv[1:] == ["-t", "ttys009", "-o", "pgid=,pid=,stat=,comm="]


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


class TestSignals:
    def test_signal_group(self) -> None:
        with patch("termbridge.os.process.os.killpg") as killpg:
            assert signal_group(777, signal.SIGINT) is True
        killpg.assert_called_once_with(777, signal.SIGINT)

    def test_signal_gone_group(self) -> None:
        with patch("termbridge.os.process.os.killpg", side_effect=ProcessLookupError):
            assert signal_group(777, signal.SIGTERM) is False

    def test_signal_denied(self) -> None:
        with patch("termbridge.os.process.os.killpg", side_effect=PermissionError):
            assert signal_group(777, signal.SIGKILL) is False

    def test_group_alive(self) -> None:
        with patch("termbridge.os.process.os.killpg") as killpg:
            assert group_alive(777) is True
        killpg.assert_called_once_with(777, 0)
        with patch("termbridge.os.process.os.killpg", side_effect=ProcessLookupError):
            assert group_alive(777) is False
        with patch("termbridge.os.process.os.killpg", side_effect=PermissionError):
            assert group_alive(777) is True


# ---------------------------------------------------------------------------
# Markers and tailing
# ---------------------------------------------------------------------------

MARKER = "TERMBRIDGE_DONE_abc123"


class TestSplitMarker:
    def test_marker_on_last_line(self) -> None:
        assert split_marker(f"hello\nworld\n{MARKER}:0\n", MARKER) == ("hello\nworld", 0)

    def test_nonzero_status(self) -> None:
        assert split_marker(f"boom\n{MARKER}:127\n", MARKER) == ("boom", 127)

    def test_empty_output(self) -> None:
        assert split_marker(f"{MARKER}:0\n", MARKER) == ("", 0)

    def test_output_without_trailing_newline(self) -> None:
        assert split_marker(f"hi{MARKER}:0\n", MARKER) == ("hi", 0)
        assert split_marker(f'{{"ok": true}}{MARKER}:2\n', MARKER) == ('{"ok": true}', 2)

    def test_marker_mid_stream_is_output(self) -> None:
        assert split_marker(f"{MARKER}:0\nstill running\n", MARKER) is None

    def test_echoed_marker_without_status(self) -> None:
        assert split_marker(f"printf {MARKER}\n", MARKER) is None

    def test_other_marker_ignored(self) -> None:
        assert split_marker("TERMBRIDGE_DONE_other:0\n", MARKER) is None


class TestTailUntilMarker:
    def test_found(self, tmp_path: Path) -> None:
        out = tmp_path / "out.log"
        out.write_text(f"line\n{MARKER}:3\n")
        tail = tail_until_marker(out, MARKER, 1.0, poll_interval=0.01)
        assert tail.found
        assert tail.content == "line"
        assert tail.exit_status == 3

    def test_missing_file_times_out_empty(self, tmp_path: Path) -> None:
        tail = tail_until_marker(tmp_path / "never.log", MARKER, 0.05, poll_interval=0.01)
        assert not tail.found
        assert tail.content == ""

    def test_marker_text_mid_stream_does_not_complete(self, tmp_path: Path) -> None:
        out = tmp_path / "out.log"
        out.write_text(f"{MARKER}:0\nstill running\n")

        def finish() -> None:
            time.sleep(0.1)
            with out.open("a") as f:
                f.write("more output\n")
                f.write(f"{MARKER}:0\n")

        writer = threading.Thread(target=finish)
        writer.start()
        try:
            tail = tail_until_marker(out, MARKER, 2.0, poll_interval=0.01)
        finally:
            writer.join()
        assert tail.found
        assert tail.content == f"{MARKER}:0\nstill running\nmore output"

    def test_partial_content_on_timeout(self, tmp_path: Path) -> None:
        out = tmp_path / "out.log"
        out.write_text("partial 1\npartial 2\n")
        tail = tail_until_marker(out, MARKER, 0.05, poll_interval=0.01)
        assert not tail.found
        assert tail.content == "partial 1\npartial 2\n"


class TestTruncateLines:
    def test_keeps_last_lines(self) -> None:
        text = "\n".join(f"line {i}" for i in range(150)) + "\n"
        out = truncate_lines(text, 100)
        lines = out.split("\n")
        assert len(lines) == 100
        assert lines[0] == "line 50"
        assert lines[-1] == "line 149"

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_keeps_all(self, limit: int) -> None:
        assert truncate_lines("a\nb\nc\n", limit) == "a\nb\nc"

    def test_empty(self) -> None:
        assert truncate_lines("", 10) == ""
