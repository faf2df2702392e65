"""
Error Types

Exceptions raised by the coordination layer. Everything derives from
CaffeineError so callers that only care about "the ledger or PID file is
unusable right now" can catch one type.
"""

from __future__ import annotations

from pathlib import Path


class CaffeineError(RuntimeError):
    """Base class for cc-caffeine errors."""


class LockTimeout(CaffeineError):
    """The advisory lock could not be acquired within the retry budget."""

    def __init__(self, path: Path | str, attempts: int) -> None:
        self.path = Path(path)
        self.attempts = attempts
        super().__init__(f"Could not lock {self.path} after {attempts} attempts")


class CorruptLedger(CaffeineError):
    """The ledger file exists but does not hold a valid ledger document."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Corrupt session ledger {self.path}: {reason}")


class ProcessProbeError(CaffeineError):
    """A process exists but its identity could not be verified."""

    def __init__(self, pid: int, reason: str) -> None:
        self.pid = pid
        super().__init__(f"Cannot inspect process {pid}: {reason}")


class CapabilityUnavailable(CaffeineError):
    """The sleep-suppression primitive could not be started or stopped."""
