"""
Locked File Accessor

Cross-process exclusive access to a named file, built on filelock.FileLock.

The lock lives in a sidecar file (``<name>.lock``) so the target itself can be
replaced atomically while the lock is held. Acquisition is non-blocking and
retried with exponential backoff. A lock whose sidecar has not been touched for
``stale_after`` seconds is treated as abandoned and broken by unlinking the
sidecar; the next acquisition then locks a fresh inode.

A holder that runs longer than ``stale_after`` loses exclusivity.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from filelock import FileLock, Timeout

from .config import LOCK_BACKOFF_BASE_SECONDS, LOCK_BACKOFF_MAX_SECONDS
from .errors import LockTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 10
DEFAULT_STALE_AFTER_SECONDS = 30.0


def lock_path_for(path: Path | str) -> Path:
    """Return the sidecar lock path guarding ``path``."""
    target = Path(path)
    return target.with_name(target.name + ".lock")


class LockedFile:
    """Handle on a file whose lock is held by the current caller.

    Only valid inside ``locked_file()``; holding on to it afterwards gives no
    exclusivity guarantees.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def read_text(self, errors: str = "strict") -> str:
        """Read the whole file; a missing file reads as empty.

        ``errors`` is passed to the UTF-8 decoder.
        """
        try:
            return self.path.read_text(encoding="utf-8", errors=errors)
        except FileNotFoundError:
            return ""

    def write_atomic(self, text: str) -> None:
        """Replace the file contents in one step (temp file + rename)."""
        fd, temp_path = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            text=True,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def unlink(self) -> bool:
        """Remove the file. Returns False if it was already gone."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True


def _backoff_delay(attempt: int) -> float:
    return min(LOCK_BACKOFF_BASE_SECONDS * (2**attempt), LOCK_BACKOFF_MAX_SECONDS)


def _lock_snapshot(lock_path: Path) -> tuple[int, float] | None:
    try:
        st = lock_path.stat()
    except FileNotFoundError:
        return None
    return st.st_ino, st.st_mtime


def _ensure_target(target: Path) -> None:
    # O_CREAT without O_TRUNC: creates a placeholder, never touches contents.
    target.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(target), os.O_CREAT | os.O_WRONLY, 0o644)
    os.close(fd)


@contextmanager
def locked_file(
    path: Path | str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    stale_after: float = DEFAULT_STALE_AFTER_SECONDS,
) -> Iterator[LockedFile]:
    """Hold an exclusive cross-process lock on ``path`` for the ``with`` body.

    Args:
        path: File to guard. Created empty if absent.
        max_retries: Retries after the first failed attempt before giving up.
        stale_after: Age in seconds after which a held lock is force-broken.

    Raises:
        LockTimeout: If the lock could not be acquired within the retry budget.
    """
    target = Path(path)
    _ensure_target(target)
    lock_path = lock_path_for(target)
    lock = FileLock(str(lock_path))

    attempts = 0
    # A lock is broken only when it looks stale on two consecutive attempts,
    # so a holder that just acquired it has time to refresh the timestamp.
    suspect: tuple[int, float] | None = None
    while True:
        attempts += 1
        try:
            lock.acquire(timeout=0)
            break
        except Timeout:
            pass

        if attempts > max_retries:
            raise LockTimeout(target, attempts)

        snapshot = _lock_snapshot(lock_path)
        if snapshot is not None and time.time() - snapshot[1] >= stale_after:
            if snapshot == suspect:
                logger.warning(
                    "Breaking stale lock %s (held for more than %.1fs)",
                    lock_path,
                    stale_after,
                )
                try:
                    lock_path.unlink()
                except FileNotFoundError:
                    pass
                suspect = None
                continue
            suspect = snapshot
        else:
            suspect = None

        delay = _backoff_delay(attempts - 1)
        logger.debug(
            "Lock %s busy (attempt %d/%d), retrying in %.2fs",
            lock_path,
            attempts,
            max_retries + 1,
            delay,
        )
        time.sleep(delay)

    try:
        try:
            os.utime(lock_path)
        except FileNotFoundError:
            pass
        yield LockedFile(target)
    finally:
        lock.release()


def with_lock(
    path: Path | str,
    fn: Callable[[LockedFile], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    stale_after: float = DEFAULT_STALE_AFTER_SECONDS,
) -> T:
    """Run ``fn`` with an exclusive handle on ``path`` and return its result.

    The lock is released on every exit path before the result or the error
    propagates.
    """
    with locked_file(path, max_retries=max_retries, stale_after=stale_after) as handle:
        return fn(handle)
