"""
Daemon Bootstrap

Starts the long-lived caffeine server and provides the client-side glue that
launches it when nobody is running.

A process only becomes the daemon when it runs as the capability host
(``CC_CAFFEINE_HOST=1``). Anything else that wants a daemon re-launches
``python -m cc_caffeine server`` with that marker set; the host process then
repeats the claim under the PID lock, which settles any race between clients
that spawned hosts at the same time.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from typing import Any

from .capability import SuppressionCapability
from .config import HOST_ENV_VAR, CaffeineConfig
from .controller import CaffeineController
from .errors import CaffeineError
from .instance_coordinator import InstanceCoordinator
from .platform_inhibitor import PlatformSleepInhibitor
from .session_ledger import SessionLedger
from .session_types import ClaimRole
from .system_utils import configure_logging, log_process_status

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def host_command() -> list[str]:
    return [sys.executable, "-m", "cc_caffeine", "server"]


def host_environment(config: CaffeineConfig) -> dict[str, str]:
    env = dict(os.environ)
    env[HOST_ENV_VAR] = "1"
    env["CC_CAFFEINE_DIR"] = str(config.config_dir)
    return env


def spawn_host(config: CaffeineConfig, detach: bool) -> subprocess.Popen:
    """Launch the capability host running the server command.

    Detached hosts get their own session and no inherited stdio, so the
    client can exit immediately.
    """
    kwargs: dict[str, Any] = {"env": host_environment(config)}
    if detach:
        kwargs.update(
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    process = subprocess.Popen(host_command(), **kwargs)
    logger.info("Spawned caffeine server host (pid %d)", process.pid)
    return process


def ensure_daemon(coordinator: InstanceCoordinator, config: CaffeineConfig) -> ClaimRole:
    """Make sure a daemon is (or is about to be) running. Never waits for it."""
    role = coordinator.claim_or_defer()
    if role is ClaimRole.BECOME_DAEMON:
        # A client is not a daemon even when it inherited the host marker.
        coordinator.release_if_owner()
        role = ClaimRole.SPAWN_HOST
    if role is ClaimRole.SPAWN_HOST:
        spawn_host(config, detach=True)
    return role


def install_signal_handlers(cancel_event: threading.Event) -> dict[int, Any]:
    """Route SIGINT/SIGTERM to ``cancel_event``; returns the previous handlers."""

    def _handler(signum, _frame):
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        cancel_event.set()

    previous = {}
    for sig in SHUTDOWN_SIGNALS:
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def run_server(
    config: CaffeineConfig,
    capability: SuppressionCapability | None = None,
    cancel_event: threading.Event | None = None,
) -> int:
    """Run the caffeine server until cancelled. Returns a process exit code."""
    configure_logging(config.log_level, config.log_file)
    capability = capability or PlatformSleepInhibitor()
    coordinator = InstanceCoordinator(config.pid_file, capability)

    try:
        role = coordinator.claim_or_defer()
    except (CaffeineError, OSError) as exc:
        logger.error("Failed to start caffeine server: %s", exc)
        return 1

    if role is ClaimRole.ALREADY_RUNNING:
        logger.info("Caffeine server is already running")
        return 0

    if role is ClaimRole.SPAWN_HOST:
        if os.environ.get(HOST_ENV_VAR) == "1":
            logger.error("Sleep suppression is not available on this system")
            return 1
        logger.info("Not running as capability host, launching one")
        return spawn_host(config, detach=False).wait()

    token = cancel_event or threading.Event()
    ledger = SessionLedger(config.sessions_file)
    controller = CaffeineController(ledger, capability, coordinator)
    previous_handlers: dict[int, Any] = {}
    try:
        if threading.current_thread() is threading.main_thread():
            previous_handlers = install_signal_handlers(token)
        log_process_status("Caffeine server started")
        controller.start_polling(config.poll_interval_seconds, cancel_event=token)
        while not token.wait(1.0):
            pass
    finally:
        controller.shutdown()
        restore_signal_handlers(previous_handlers)
    logger.info("Caffeine server stopped")
    return 0
