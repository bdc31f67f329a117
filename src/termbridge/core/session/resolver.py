"""
Session resolver — find or create the tab for a (project, tag) identity.

Every call starts from scratch: enumerate the terminal's tabs, decode
their titles, and match.  Nothing is cached between invocations; the tab
titles are the only session table.
"""

from __future__ import annotations

import os

import structlog

from termbridge.backends.base import Placement, TerminalBackend
from termbridge.core.config import PlacementPolicy, TermbridgeConfig
from termbridge.core.engine.preemption import is_busy
from termbridge.core.exceptions import BackendPermissionError, SessionNotFoundError
from termbridge.core.session.addressing import (
    decode_title,
    display_name,
    encode_title,
    normalize_project_path,
    project_fingerprint,
    project_label,
    resolve_tag,
)
from termbridge.core.session.models import Session

logger = structlog.get_logger()


class SessionResolver:
    def __init__(self, config: TermbridgeConfig, backend: TerminalBackend) -> None:
        self.config = config
        self.backend = backend

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> list[Session]:
        """All termbridge-owned sessions, in the backend's enumeration order."""
        sessions: list[Session] = []
        for tab in self.backend.enumerate_tabs():
            decoded = decode_title(tab.title)
            if decoded is None:
                continue
            sessions.append(
                Session(
                    display_name=decoded.display_name,
                    project_fingerprint=decoded.project_fingerprint,
                    tag=decoded.tag,
                    terminal_device_path=tab.device_path,
                    handle=tab.handle,
                    creator_pid=decoded.creator_pid,
                )
            )
        return sessions

    def _matches(self, sessions: list[Session], fingerprint: str, tag: str) -> list[Session]:
        by_tag = [s for s in sessions if s.tag == tag]
        found = [s for s in by_tag if s.project_fingerprint == fingerprint]
        if len(found) > 1:
            logger.warning(
                "session_collision",
                tag=tag,
                fingerprint=fingerprint,
                count=len(found),
                ttys=[s.terminal_device_path for s in found],
            )
        return found

    def find(self, project_path: str | None, tag: str | None) -> Session:
        """Return the existing session for (project, tag); never creates one."""
        tag = resolve_tag(tag, project_path)
        fingerprint = project_fingerprint(project_path)
        found = self._matches(self.discover(), fingerprint, tag)
        if not found:
            raise SessionNotFoundError(
                f"No session with tag {tag!r} for {project_label(project_path)!r}"
            )
        session = found[0]
        session.project_path = normalize_project_path(project_path)
        return session

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, project_path: str | None, tag: str | None, *, activate: bool = False) -> Session:
        """
        Return a session for (project, tag), creating a tab if none qualifies.

        The first idle match wins.  When every match is busy, the first is
        reused if ``reuse_busy_sessions`` is on or the identity already
        collides; otherwise a new tab is opened.
        """
        tag = resolve_tag(tag, project_path)
        fingerprint = project_fingerprint(project_path)
        owned = self.discover()
        found = self._matches(owned, fingerprint, tag)

        chosen: Session | None = None
        for session in found:
            if not is_busy(session):
                chosen = session
                break
        if chosen is None and found and (self.config.reuse_busy_sessions or len(found) > 1):
            chosen = found[0]

        if chosen is not None:
            chosen.project_path = normalize_project_path(project_path)
            logger.info("session_reused", tag=tag, tty=chosen.terminal_device_path)
            return chosen

        project_known = normalize_project_path(project_path) is not None
        window = self._target_window(owned, fingerprint, project_known=project_known)
        return self._create(project_path, fingerprint, tag, window=window, activate=activate)

    def _target_window(
        self, owned: list[Session], fingerprint: str, *, project_known: bool
    ) -> str | None:
        policy = self.config.window_grouping
        if policy is PlacementPolicy.OFF:
            return None
        if policy is PlacementPolicy.PROJECT or project_known:
            pool = [s for s in owned if s.project_fingerprint == fingerprint]
        else:
            pool = owned
        return _most_populated_window(pool)

    def _create(
        self,
        project_path: str | None,
        fingerprint: str,
        tag: str,
        *,
        window: str | None,
        activate: bool,
    ) -> Session:
        normalized = normalize_project_path(project_path)
        placement = Placement(window_ref=window, activate=activate, working_directory=normalized)
        try:
            tab = self.backend.create_tab(placement)
        except BackendPermissionError:
            if window is None:
                raise
            logger.warning("tab_in_window_denied", window=window, fallback="new_window")
            tab = self.backend.create_tab(
                Placement(activate=activate, working_directory=normalized)
            )

        label = project_label(project_path) if normalized else None
        title = encode_title(fingerprint, tag, tab.device_path, os.getpid(), label=label)
        self.backend.set_title(tab.handle, title)

        logger.info(
            "session_created",
            tag=tag,
            tty=tab.device_path,
            window=tab.handle.window_ref,
            placement=str(self.config.window_grouping),
        )
        return Session(
            display_name=display_name(project_path, tag),
            project_fingerprint=fingerprint,
            tag=tag,
            terminal_device_path=tab.device_path,
            handle=tab.handle,
            project_path=normalized,
            creator_pid=os.getpid(),
            created=True,
        )


def _most_populated_window(sessions: list[Session]) -> str | None:
    """Window hosting the most *sessions*; ties go to enumeration order."""
    counts: dict[str, int] = {}
    for session in sessions:
        counts[session.window_ref] = counts.get(session.window_ref, 0) + 1
    if not counts:
        return None
    return max(counts, key=counts.__getitem__)
