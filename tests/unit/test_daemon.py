"""
Unit tests for daemon bootstrap

run_server is driven with a pre-set cancel event so it performs its startup
tick and shuts down straight away.
"""

import os
import signal
import subprocess
import threading
from unittest.mock import MagicMock, patch

import pytest

from cc_caffeine.daemon import (
    ensure_daemon,
    host_command,
    host_environment,
    install_signal_handlers,
    restore_signal_handlers,
    run_server,
    spawn_host,
)
from cc_caffeine.errors import LockTimeout
from cc_caffeine.process_utils import ProcessStatus
from cc_caffeine.session_ledger import SessionLedger
from cc_caffeine.session_types import ClaimRole
from tests.utils.fakes import RecordingCapability

PROBE = "cc_caffeine.instance_coordinator.probe_daemon"


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("cc_caffeine.daemon.configure_logging"):
        yield


@pytest.fixture
def cancelled():
    event = threading.Event()
    event.set()
    return event


class TestSpawn:
    def test_host_command(self):
        command = host_command()
        assert command[1:] == ["-m", "cc_caffeine", "server"]

    def test_host_environment(self, config):
        env = host_environment(config)
        assert env["CC_CAFFEINE_HOST"] == "1"
        assert env["CC_CAFFEINE_DIR"] == str(config.config_dir)

    def test_detached_spawn(self, config):
        with patch("cc_caffeine.daemon.subprocess.Popen") as mock_popen:
            mock_popen.return_value.pid = 77
            spawn_host(config, detach=True)
        kwargs = mock_popen.call_args.kwargs
        assert kwargs["start_new_session"] is True
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["env"]["CC_CAFFEINE_HOST"] == "1"

    def test_foreground_spawn_inherits_stdio(self, config):
        with patch("cc_caffeine.daemon.subprocess.Popen") as mock_popen:
            mock_popen.return_value.pid = 77
            spawn_host(config, detach=False)
        assert "start_new_session" not in mock_popen.call_args.kwargs


class TestEnsureDaemon:
    def test_spawns_when_nothing_runs(self, config, coordinator):
        with patch("cc_caffeine.daemon.spawn_host") as mock_spawn:
            assert ensure_daemon(coordinator, config) is ClaimRole.SPAWN_HOST
        mock_spawn.assert_called_once_with(config, detach=True)
        assert not config.pid_file.exists()

    def test_running_daemon(self, config, coordinator):
        config.pid_file.write_text("5555")
        with patch(PROBE, return_value=ProcessStatus.DAEMON), patch(
            "cc_caffeine.daemon.spawn_host"
        ) as mock_spawn:
            assert ensure_daemon(coordinator, config) is ClaimRole.ALREADY_RUNNING
        mock_spawn.assert_not_called()


class TestSignals:
    def test_handler_sets_event(self):
        event = threading.Event()
        previous = install_signal_handlers(event)
        try:
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
            assert event.is_set()
        finally:
            restore_signal_handlers(previous)
        assert signal.getsignal(signal.SIGTERM) == previous[signal.SIGTERM]


class TestRunServer:
    def test_daemon_lifecycle(self, config, cancelled):
        capability = RecordingCapability(host=True)
        SessionLedger(config.sessions_file).add_or_renew("abc")

        assert run_server(config, capability, cancel_event=cancelled) == 0

        assert len(capability.start_calls) == 1
        assert capability.stop_calls == ["handle-1"]
        assert not config.pid_file.exists()

    def test_idle_daemon(self, config, cancelled):
        capability = RecordingCapability(host=True)
        assert run_server(config, capability, cancel_event=cancelled) == 0
        assert capability.start_calls == []

    def test_already_running(self, config, cancelled):
        config.pid_file.write_text("5555")
        capability = RecordingCapability(host=True)
        with patch(PROBE, return_value=ProcessStatus.DAEMON):
            assert run_server(config, capability, cancel_event=cancelled) == 0
        assert capability.start_calls == []
        assert config.pid_file.read_text() == "5555"

    def test_launches_host_in_foreground(self, config, cancelled, monkeypatch):
        monkeypatch.delenv("CC_CAFFEINE_HOST", raising=False)
        process = MagicMock()
        process.wait.return_value = 0
        with patch("cc_caffeine.daemon.spawn_host", return_value=process) as mock_spawn:
            assert run_server(config, RecordingCapability(host=False), cancel_event=cancelled) == 0
        mock_spawn.assert_called_once_with(config, detach=False)

    def test_host_without_capability_gives_up(self, config, cancelled, monkeypatch):
        monkeypatch.setenv("CC_CAFFEINE_HOST", "1")
        with patch("cc_caffeine.daemon.spawn_host") as mock_spawn:
            assert run_server(config, RecordingCapability(host=False), cancel_event=cancelled) == 1
        mock_spawn.assert_not_called()

    def test_claim_failure(self, config, cancelled):
        with patch(
            "cc_caffeine.daemon.InstanceCoordinator.claim_or_defer",
            side_effect=LockTimeout(config.pid_file, 4),
        ):
            assert run_server(config, RecordingCapability(), cancel_event=cancelled) == 1

    def test_unwritable_state_dir(self, config, cancelled):
        with patch(
            "cc_caffeine.daemon.InstanceCoordinator.claim_or_defer",
            side_effect=PermissionError(13, "Permission denied"),
        ):
            assert run_server(config, RecordingCapability(), cancel_event=cancelled) == 1

    def test_garbage_pid_record_does_not_block_startup(self, config, cancelled):
        config.pid_file.write_bytes(b"\xff\xfe12")
        capability = RecordingCapability(host=True)
        assert run_server(config, capability, cancel_event=cancelled) == 0
        assert not config.pid_file.exists()

    def test_pid_record_names_this_process(self, config):
        """While running, the PID file holds this process's PID."""
        event = threading.Event()
        seen = []

        def capture_and_stop(*_args, **_kwargs):
            seen.append(config.pid_file.read_text().strip())
            event.set()

        with patch("cc_caffeine.daemon.log_process_status", side_effect=capture_and_stop):
            assert run_server(config, RecordingCapability(host=True), cancel_event=event) == 0
        assert seen == [str(os.getpid())]
