"""
Configuration

Build-time constants plus the small set of runtime knobs read from the
environment. Paths are derived from a single state directory shared by the
daemon and every client process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping

# Sessions idle for this long are expired by every ledger operation.
SESSION_TIMEOUT = timedelta(minutes=15)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0

LEDGER_LOCK_RETRIES = 10
LEDGER_LOCK_STALE_SECONDS = 30.0
PID_LOCK_RETRIES = 3
PID_LOCK_STALE_SECONDS = 10.0

LOCK_BACKOFF_BASE_SECONDS = 0.05
LOCK_BACKOFF_MAX_SECONDS = 1.0

SESSIONS_FILENAME = "sessions.json"
PID_FILENAME = "server.pid"
LOG_FILENAME = "server.log"

# Set by the spawn glue on the process that owns the suppression primitive.
HOST_ENV_VAR = "CC_CAFFEINE_HOST"

# Substrings of a daemon's command line, lower-cased.
DAEMON_MARKERS = ("cc_caffeine server", "cc-caffeine server")


def default_config_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Resolve the shared state directory."""
    env = os.environ if environ is None else environ
    explicit = env.get("CC_CAFFEINE_DIR")
    if explicit:
        return Path(explicit).expanduser()
    plugin_root = env.get("CLAUDE_PLUGIN_ROOT")
    if plugin_root:
        return Path(plugin_root).expanduser()
    return Path.home() / ".claude" / "plugins" / "cc-caffeine"


@dataclass(frozen=True)
class CaffeineConfig:
    """Runtime configuration shared by the daemon and clients."""

    config_dir: Path
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    log_level: str = "INFO"

    @property
    def sessions_file(self) -> Path:
        return self.config_dir / SESSIONS_FILENAME

    @property
    def pid_file(self) -> Path:
        return self.config_dir / PID_FILENAME

    @property
    def log_file(self) -> Path:
        return self.config_dir / LOG_FILENAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CaffeineConfig":
        """Build a config from environment variables, tolerating bad values."""
        env = os.environ if environ is None else environ

        interval_str = env.get(
            "CC_CAFFEINE_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL_SECONDS)
        )
        try:
            interval = float(interval_str)
        except ValueError:
            interval = DEFAULT_POLL_INTERVAL_SECONDS
        if interval <= 0:
            interval = DEFAULT_POLL_INTERVAL_SECONDS

        level = env.get("CC_CAFFEINE_LOG_LEVEL", "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            level = "INFO"

        return cls(
            config_dir=default_config_dir(env),
            poll_interval_seconds=interval,
            log_level=level,
        )
