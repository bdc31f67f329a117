"""
TerminalController — one object per engine invocation.

Wires the configured backend into the resolver and engines and exposes
the six engine operations the CLI calls.
"""

from __future__ import annotations

from typing import Any

import structlog

from termbridge import __version__
from termbridge.backends.base import TerminalBackend
from termbridge.core.config import TermbridgeConfig
from termbridge.core.engine.executor import ExecutionEngine
from termbridge.core.engine.killer import KillEngine
from termbridge.core.exceptions import TermbridgeError
from termbridge.core.session.addressing import project_fingerprint
from termbridge.core.session.models import (
    ExecutionRequest,
    ExecutionResult,
    FocusMode,
    KillRequest,
    KillResult,
    ReadResult,
    Session,
    SessionListing,
    SessionStatus,
)
from termbridge.core.session.resolver import SessionResolver
from termbridge.os import process

logger = structlog.get_logger()


class TerminalController:
    def __init__(self, config: TermbridgeConfig, backend: TerminalBackend | None = None) -> None:
        if backend is None:
            from termbridge.backends import get_backend

            backend = get_backend(config)
        self.config = config
        self.backend = backend
        self.resolver = SessionResolver(config, backend)
        self.killer = KillEngine(config, backend, self.resolver)
        self.executor = ExecutionEngine(config, backend, self.resolver, self.killer)

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        return self.executor.execute(request)

    def kill(self, request: KillRequest) -> KillResult:
        return self.killer.kill(request)

    def read(
        self,
        project_path: str | None,
        tag: str | None,
        *,
        lines: int | None = None,
        focus_mode: FocusMode = FocusMode.DEFAULT,
    ) -> ReadResult:
        session = self.resolver.find(project_path, tag)
        limit = self.config.default_lines if lines is None else lines
        scrollback = self.backend.read_scrollback(session.handle)
        if focus_mode.should_focus(self.config.default_focus_on_action):
            self.backend.focus(session.handle)
        return ReadResult(
            session=session,
            output=process.truncate_lines(scrollback, limit),
            line_limit=limit,
        )

    def focus(self, project_path: str | None, tag: str | None) -> Session:
        session = self.resolver.find(project_path, tag)
        self.backend.focus(session.handle)
        return session

    def list_sessions(
        self, *, project_path: str | None = None, tag: str | None = None
    ) -> SessionListing:
        """
        Every owned session with its busy state.

        Backend failures never fail a listing: they become warnings and an
        empty result.
        """
        listing = SessionListing()
        try:
            sessions = self.resolver.discover()
        except TermbridgeError as exc:
            logger.warning("list_sessions_failed", app=self.backend.name, error=str(exc))
            listing.warnings.append(str(exc))
            return listing

        if tag:
            sessions = [s for s in sessions if s.tag == tag]
        if project_path:
            fingerprint = project_fingerprint(project_path)
            sessions = [s for s in sessions if s.project_fingerprint == fingerprint]

        for session in sessions:
            occupant = process.foreground_process(session.terminal_device_path)
            listing.sessions.append(
                SessionStatus(
                    session=session,
                    is_busy=occupant is not None,
                    process=occupant.description if occupant else "",
                )
            )
        return listing

    def info(self) -> dict[str, Any]:
        listing = self.list_sessions()
        return {
            "version": __version__,
            "terminal_app": str(self.config.terminal_app),
            "configuration": self.config.summary(),
            **listing.to_dict(),
        }
