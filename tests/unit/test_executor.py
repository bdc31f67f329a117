"""
Unit tests for ExecutionEngine.

The fake backend plays the tab's shell: typed lines are run with /bin/sh
(foreground) or simulated by writing the output file directly.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from termbridge.core.engine.executor import (
    ExecutionEngine,
    background_line,
    foreground_line,
)
from termbridge.core.engine.killer import EscalationOutcome, KillEngine
from termbridge.core.exceptions import BackendError, SessionBusyError
from termbridge.core.session.models import ExecutionMode, ExecutionRequest, FocusMode
from termbridge.core.session.resolver import SessionResolver
from termbridge.os.process import ProcessEntry

API = "/Users/dev/api"
NODE = ProcessEntry(pgid=777, pid=777, stat="S+", command="node")


def _shell(tab, text: str) -> None:
    subprocess.run(["/bin/sh", "-c", text], check=False, timeout=10)


def _output_files(config) -> list[Path]:
    return sorted(config.command_outputs_dir.glob("termbridge_output_*.log"))


@pytest.fixture
def engine(config, backend) -> ExecutionEngine:
    resolver = SessionResolver(config, backend)
    return ExecutionEngine(config, backend, resolver, KillEngine(config, backend, resolver))


@pytest.fixture(autouse=True)
def idle_ttys():
    with patch("termbridge.os.process.foreground_process", return_value=None) as fg:
        yield fg


# ---------------------------------------------------------------------------
# Shell lines
# ---------------------------------------------------------------------------


class TestShellLines:
    def test_foreground_line_quotes_everything(self, tmp_path: Path) -> None:
        out = tmp_path / "out dir" / "o.log"
        line = foreground_line("echo 'a b'", out, "TERMBRIDGE_DONE_x")
        assert line.startswith("(eval 'echo '\"'\"'a b'\"'\"'')")
        assert f"'{out}'" in line
        assert 'TERMBRIDGE_DONE_x "$?"' in line

    def test_background_line_detaches(self, tmp_path: Path) -> None:
        line = background_line("npm run dev", tmp_path / "o.log")
        assert line.endswith("& disown")
        assert "'npm run dev'" in line


# ---------------------------------------------------------------------------
# Prepare-only
# ---------------------------------------------------------------------------


class TestPrepareOnly:
    @pytest.mark.parametrize("command", ["", "   "])
    def test_empty_command_never_types(self, engine: ExecutionEngine, backend, command: str) -> None:
        result = engine.execute(ExecutionRequest(tag="server", project_path=API, command=command))
        assert result.prepared_only
        assert result.session.created
        assert backend.written() == []
        assert ("clear", result.session.tab_ref) in backend.calls

    def test_focus_follows_preference(self, engine: ExecutionEngine, backend) -> None:
        result = engine.execute(
            ExecutionRequest(tag="server", project_path=API, focus_mode=FocusMode.NO_FOCUS)
        )
        assert ("focus", result.session.tab_ref) not in backend.calls


# ---------------------------------------------------------------------------
# Foreground
# ---------------------------------------------------------------------------


class TestForeground:
    def test_output_and_exit_status(self, engine: ExecutionEngine, backend, config) -> None:
        backend.on_write = _shell
        result = engine.execute(
            ExecutionRequest(tag="t", project_path=API, command="echo hello; echo world; exit 3")
        )
        assert result.output == "hello\nworld"
        assert result.exit_status == 3
        assert not result.timed_out
        assert _output_files(config) == []

    def test_stderr_captured(self, engine: ExecutionEngine, backend) -> None:
        backend.on_write = _shell
        result = engine.execute(ExecutionRequest(tag="t", command="echo oops >&2"))
        assert result.output == "oops"
        assert result.exit_status == 0

    def test_output_without_trailing_newline(self, engine: ExecutionEngine, backend) -> None:
        backend.on_write = _shell
        result = engine.execute(ExecutionRequest(tag="t", command="printf hi", timeout_seconds=5))
        assert not result.timed_out
        assert result.output == "hi"
        assert result.exit_status == 0

    def test_line_limit(self, engine: ExecutionEngine, backend) -> None:
        backend.on_write = _shell
        result = engine.execute(
            ExecutionRequest(tag="t", command="for i in 1 2 3 4 5; do echo $i; done", line_limit=2)
        )
        assert result.output == "4\n5"

    def test_timeout_returns_partial_output(self, engine: ExecutionEngine, backend, config) -> None:
        def partial(tab, text: str) -> None:
            _output_files(config)[0].write_text("compiling 1/3\ncompiling 2/3\n")

        backend.on_write = partial
        result = engine.execute(
            ExecutionRequest(tag="t", project_path=API, command="make", timeout_seconds=0.1)
        )
        assert result.timed_out
        assert result.output == "compiling 1/3\ncompiling 2/3"
        assert result.output_file is not None and result.output_file.exists()
        assert not result.killed_after_timeout

    def test_timeout_escalates_on_occupant(self, engine: ExecutionEngine, backend, config, idle_ttys) -> None:
        backend.on_write = lambda tab, text: idle_ttys.configure_mock(return_value=NODE)
        engine.killer.escalate = MagicMock(return_value=EscalationOutcome(stopped=True))
        result = engine.execute(ExecutionRequest(tag="t", command="sleep 100", timeout_seconds=0.05))
        engine.killer.escalate.assert_called_once_with(777)
        assert result.timed_out
        assert result.killed_after_timeout

    def test_busy_session_rejected(self, engine: ExecutionEngine, backend, idle_ttys) -> None:
        engine.execute(ExecutionRequest(tag="t", project_path=API))
        idle_ttys.return_value = NODE
        engine.config.reuse_busy_sessions = True
        with (
            patch("termbridge.core.engine.preemption.time.sleep"),
            patch("termbridge.os.process.signal_group") as sig,
        ):
            with pytest.raises(SessionBusyError):
                engine.execute(ExecutionRequest(tag="t", project_path=API, command="ls"))
        assert sig.call_count == 1
        assert backend.written() == []

    def test_clear_failure_is_fatal(self, engine: ExecutionEngine, backend) -> None:
        backend.clear_screen_and_scrollback = MagicMock(side_effect=BackendError("no tab"))
        with pytest.raises(BackendError):
            engine.execute(ExecutionRequest(tag="t", command="ls"))
        assert backend.written() == []


# ---------------------------------------------------------------------------
# Background
# ---------------------------------------------------------------------------


class TestBackground:
    def test_samples_startup_output(self, engine: ExecutionEngine, backend, config) -> None:
        def start_server(tab, text: str) -> None:
            assert text.endswith("& disown")
            _output_files(config)[0].write_text("listening on :3000\n")

        backend.on_write = start_server
        result = engine.execute(
            ExecutionRequest(
                tag="dev",
                project_path=API,
                command="npm run dev",
                mode=ExecutionMode.BACKGROUND,
                timeout_seconds=0.05,
            )
        )
        assert result.mode is ExecutionMode.BACKGROUND
        assert result.output == "listening on :3000"
        assert not result.timed_out
        assert result.output_file is not None and result.output_file.exists()

    def test_silent_background_job(self, engine: ExecutionEngine, backend) -> None:
        result = engine.execute(
            ExecutionRequest(tag="dev", command="sleep 100", mode=ExecutionMode.BACKGROUND, timeout_seconds=0.05)
        )
        assert result.output == ""
        assert len(backend.written()) == 1
