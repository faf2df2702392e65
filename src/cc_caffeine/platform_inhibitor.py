"""
Platform Sleep Inhibitor

SuppressionCapability backed by each platform's native keep-awake mechanism:

- macOS: a ``caffeinate -i`` child process for as long as suppression lasts
- Linux: a ``systemd-inhibit --what=idle:sleep`` child process holding a block
  inhibitor around ``sleep infinity``
- Windows: SetThreadExecutionState(ES_CONTINUOUS | ES_SYSTEM_REQUIRED)

Child-process handles are the Popen objects; stopping terminates the child.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from typing import Any, Mapping

from .capability import SuppressionCapability
from .config import HOST_ENV_VAR
from .errors import CapabilityUnavailable

logger = logging.getLogger(__name__)

ES_CONTINUOUS = 0x80000000
ES_SYSTEM_REQUIRED = 0x00000001

WINDOWS_HANDLE = "win32-execution-state"

# A helper that exits within this window failed to take the inhibitor.
STARTUP_CHECK_SECONDS = 0.2
STOP_TIMEOUT_SECONDS = 2.0


class PlatformSleepInhibitor(SuppressionCapability):
    """Prevent idle sleep using the current platform's native tooling."""

    def __init__(
        self,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._platform = platform or sys.platform
        self._environ = environ

    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def command_for(self, reason: str) -> list[str] | None:
        """Return the helper command for this platform, or None if not spawned."""
        if self._platform == "darwin":
            return ["caffeinate", "-i"]
        if self._platform.startswith("linux"):
            return [
                "systemd-inhibit",
                "--what=idle:sleep",
                "--who=cc-caffeine",
                f"--why={reason}",
                "--mode=block",
                "sleep",
                "infinity",
            ]
        return None

    def is_supported(self) -> bool:
        if self._platform == "win32":
            return True
        command = self.command_for("probe")
        return command is not None and shutil.which(command[0]) is not None

    def is_host_process(self) -> bool:
        return self._env().get(HOST_ENV_VAR) == "1" and self.is_supported()

    def start_suppression(self, reason: str) -> Any:
        if self._platform == "win32":
            self._set_execution_state(ES_CONTINUOUS | ES_SYSTEM_REQUIRED)
            return WINDOWS_HANDLE

        command = self.command_for(reason)
        if command is None:
            raise CapabilityUnavailable(
                f"Sleep suppression is not supported on {self._platform}"
            )
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise CapabilityUnavailable(f"Failed to run {command[0]}: {exc}") from exc

        try:
            _, stderr = process.communicate(timeout=STARTUP_CHECK_SECONDS)
        except subprocess.TimeoutExpired:
            logger.debug("Started %s (pid %d)", command[0], process.pid)
            return process

        raise CapabilityUnavailable(
            f"{command[0]} exited with {process.returncode}: "
            f"{(stderr or b'').decode(errors='replace').strip()}"
        )

    def stop_suppression(self, handle: Any) -> None:
        if handle is None:
            return
        if handle == WINDOWS_HANDLE:
            self._set_execution_state(ES_CONTINUOUS)
            return
        if not isinstance(handle, subprocess.Popen):
            raise CapabilityUnavailable(f"Unknown suppression handle: {handle!r}")

        if handle.poll() is not None:
            logger.warning(
                "Inhibitor process %d already exited with %s", handle.pid, handle.returncode
            )
            return
        try:
            handle.terminate()
            handle.wait(timeout=STOP_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Inhibitor process %d ignored SIGTERM; killing", handle.pid)
            handle.kill()
            handle.wait()
        except OSError as exc:
            raise CapabilityUnavailable(f"Failed to stop inhibitor: {exc}") from exc

    def _set_execution_state(self, flags: int) -> None:
        try:
            import ctypes

            result = ctypes.windll.kernel32.SetThreadExecutionState(flags)  # type: ignore[attr-defined]
        except (AttributeError, OSError) as exc:
            raise CapabilityUnavailable(f"SetThreadExecutionState unavailable: {exc}") from exc
        if result == 0:
            raise CapabilityUnavailable("SetThreadExecutionState failed")
