"""
Process Probes

psutil-backed checks used to decide whether a PID on disk still belongs to a
running cc-caffeine daemon.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

import psutil

from .config import DAEMON_MARKERS
from .errors import ProcessProbeError

logger = logging.getLogger(__name__)


class ProcessStatus(Enum):
    """Result of probing a recorded PID."""

    DAEMON = "daemon"
    UNRELATED = "unrelated"
    DEAD = "dead"
    UNVERIFIABLE = "unverifiable"


def pid_exists(pid: int) -> bool:
    """Zero-cost existence probe (signal 0). Permission errors count as alive."""
    if pid <= 0:
        return False
    try:
        return psutil.pid_exists(pid)
    except OverflowError:
        # Larger than any pid_t the OS can hand out
        return False


def read_command_line(pid: int) -> str | None:
    """Return the process command line, or None if the process is gone.

    Zombies are reported as gone.

    Raises:
        ProcessProbeError: If the process exists but cannot be inspected.
    """
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return None
        return " ".join(proc.cmdline())
    except psutil.NoSuchProcess:
        return None
    except psutil.AccessDenied as exc:
        raise ProcessProbeError(pid, "access denied") from exc
    except psutil.Error as exc:
        raise ProcessProbeError(pid, str(exc)) from exc


def matches_daemon(command_line: str, markers: Iterable[str] = DAEMON_MARKERS) -> bool:
    """Check whether a command line names the daemon's server role."""
    normalized = " ".join(command_line.lower().split())
    return any(marker in normalized for marker in markers)


def probe_daemon(pid: int, markers: Iterable[str] = DAEMON_MARKERS) -> ProcessStatus:
    """Classify a recorded PID.

    Liveness is checked first; only a live process has its command line
    compared with ``markers``.
    """
    if not pid_exists(pid):
        return ProcessStatus.DEAD
    try:
        command_line = read_command_line(pid)
    except ProcessProbeError as exc:
        logger.warning("%s; assuming it is still running", exc)
        return ProcessStatus.UNVERIFIABLE
    if command_line is None:
        return ProcessStatus.DEAD
    if matches_daemon(command_line, markers):
        return ProcessStatus.DAEMON
    logger.debug("PID %d belongs to an unrelated process: %s", pid, command_line)
    return ProcessStatus.UNRELATED
