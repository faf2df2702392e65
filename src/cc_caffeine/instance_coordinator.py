"""
Instance Coordinator

PID-file protocol that keeps a single daemon running per state directory.

The PID record is meaningful only while the recorded process is alive and its
command line names the daemon's server role. Anything else is stale and is
purged on sight.

Every operation has a ``_locked`` variant that expects the caller to already
hold the PID lock. Public methods take the lock exactly once and only call
``_locked`` helpers inside it, so the lock is never re-entered.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from .capability import SuppressionCapability
from .config import DAEMON_MARKERS, PID_LOCK_RETRIES, PID_LOCK_STALE_SECONDS
from .locked_file import LockedFile, locked_file
from .process_utils import ProcessStatus, probe_daemon
from .session_types import ClaimRole

logger = logging.getLogger(__name__)


def parse_pid(raw: str) -> int | None:
    """Parse a PID record; anything but a positive decimal integer is None."""
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    pid = int(text)
    return pid if pid > 0 else None


class InstanceCoordinator:
    """Single-instance enforcement through a locked PID file."""

    def __init__(
        self,
        pid_file: Path | str,
        capability: SuppressionCapability,
        own_pid: int | None = None,
        markers: Iterable[str] = DAEMON_MARKERS,
        max_retries: int = PID_LOCK_RETRIES,
        stale_after: float = PID_LOCK_STALE_SECONDS,
    ) -> None:
        self.pid_file = Path(pid_file)
        self._capability = capability
        self._own_pid = own_pid if own_pid is not None else os.getpid()
        self._markers = tuple(markers)
        self._max_retries = max_retries
        self._stale_after = stale_after

    @property
    def own_pid(self) -> int:
        return self._own_pid

    def _lock(self):
        return locked_file(
            self.pid_file, max_retries=self._max_retries, stale_after=self._stale_after
        )

    # Lock-held helpers
    def _live_daemon_pid_locked(self, handle: LockedFile) -> int | None:
        raw = handle.read_text(errors="replace")
        pid = parse_pid(raw)
        if pid is None:
            if raw.strip():
                logger.warning("Removing unparseable PID file %s", self.pid_file)
                handle.unlink()
            return None

        status = probe_daemon(pid, self._markers)
        if status in (ProcessStatus.DAEMON, ProcessStatus.UNVERIFIABLE):
            return pid

        logger.warning("Removing stale PID file %s (pid %d, %s)", self.pid_file, pid, status.value)
        handle.unlink()
        return None

    def _write_pid_locked(self, handle: LockedFile) -> None:
        handle.write_atomic(f"{self._own_pid}\n")

    def _release_if_owner_locked(self, handle: LockedFile) -> bool:
        pid = parse_pid(handle.read_text(errors="replace"))
        if pid != self._own_pid:
            if pid is not None:
                logger.info(
                    "PID file %s now belongs to pid %d; leaving it in place",
                    self.pid_file,
                    pid,
                )
            return False
        handle.unlink()
        return True

    # Public operations
    def is_daemon_alive(self) -> bool:
        """Check whether a valid daemon holds the PID record, purging stale ones."""
        return self.get_daemon_pid() is not None

    def get_daemon_pid(self) -> int | None:
        """Return the running daemon's PID, or None if there is none."""
        with self._lock() as handle:
            return self._live_daemon_pid_locked(handle)

    def claim_or_defer(self) -> ClaimRole:
        """Decide, under the PID lock, whether this process becomes the daemon.

        A host process that finds no live daemon records its own PID before
        the lock is released, so concurrent claimants see it.
        """
        with self._lock() as handle:
            if self._live_daemon_pid_locked(handle) is not None:
                return ClaimRole.ALREADY_RUNNING
            if self._capability.is_host_process():
                self._write_pid_locked(handle)
                logger.info("Claimed daemon role (pid %d)", self._own_pid)
                return ClaimRole.BECOME_DAEMON
            return ClaimRole.SPAWN_HOST

    def release_if_owner(self) -> bool:
        """Remove the PID record only if it still names this process."""
        with self._lock() as handle:
            return self._release_if_owner_locked(handle)
