"""Busy detection and preemption: make a session's tab free before typing into it."""

from __future__ import annotations

import signal
import time

import structlog

from termbridge.core.constants import PREEMPT_SETTLE_SECONDS
from termbridge.core.exceptions import SessionBusyError
from termbridge.core.session.models import Session
from termbridge.os import process

logger = structlog.get_logger()


def is_busy(session: Session) -> bool:
    return process.foreground_process(session.terminal_device_path) is not None


def ensure_idle(session: Session) -> process.ProcessEntry | None:
    """
    Interrupt whatever holds the session's foreground, once.

    Returns the interrupted process (None when the tab was already idle).
    Raises SessionBusyError when the device is still occupied after one
    SIGINT and a fixed settle delay.
    """
    tty = session.terminal_device_path
    occupant = process.foreground_process(tty)
    if occupant is None:
        return None

    log = logger.bind(tag=session.tag, tty=tty, pgid=occupant.pgid)
    log.info("preempt_interrupt", process=occupant.description)
    process.signal_group(occupant.pgid, signal.SIGINT)
    time.sleep(PREEMPT_SETTLE_SECONDS)

    remaining = process.foreground_process(tty)
    if remaining is not None:
        log.warning("preempt_failed", process=remaining.description)
        raise SessionBusyError(
            f"Session {session.display_name!r} is busy: {remaining.description} "
            f"is still running after an interrupt",
            device_path=tty,
            process=remaining.description,
        )
    log.info("preempt_succeeded")
    return occupant
