"""Unit tests for psutil-backed process probes."""

import os
from unittest.mock import MagicMock, patch

import psutil
import pytest

from cc_caffeine.errors import ProcessProbeError
from cc_caffeine.process_utils import (
    ProcessStatus,
    matches_daemon,
    pid_exists,
    probe_daemon,
    read_command_line,
)


class TestPidExists:
    def test_current_process_exists(self):
        assert pid_exists(os.getpid()) is True

    def test_non_positive_pids(self):
        assert pid_exists(0) is False
        assert pid_exists(-5) is False

    def test_delegates_to_psutil(self):
        with patch("cc_caffeine.process_utils.psutil.pid_exists", return_value=False) as mock_exists:
            assert pid_exists(123456) is False
            mock_exists.assert_called_once_with(123456)

    def test_oversized_pid_does_not_exist(self):
        assert pid_exists(10**20) is False


class TestCommandLine:
    def test_reads_current_process(self):
        command_line = read_command_line(os.getpid())
        assert command_line

    def test_missing_process(self):
        with patch(
            "cc_caffeine.process_utils.psutil.Process",
            side_effect=psutil.NoSuchProcess(99999),
        ):
            assert read_command_line(99999) is None

    def test_zombie_is_gone(self):
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_ZOMBIE
        with patch("cc_caffeine.process_utils.psutil.Process", return_value=proc):
            assert read_command_line(1234) is None
        proc.cmdline.assert_not_called()

    def test_access_denied_raises_probe_error(self):
        with patch(
            "cc_caffeine.process_utils.psutil.Process",
            side_effect=psutil.AccessDenied(1234),
        ):
            with pytest.raises(ProcessProbeError) as exc_info:
                read_command_line(1234)
        assert exc_info.value.pid == 1234

    @pytest.mark.parametrize(
        "command_line",
        [
            "/usr/bin/python3 -m cc_caffeine server",
            "/home/me/.venv/bin/python /home/me/.venv/bin/cc-caffeine server",
            "PYTHON -M CC_CAFFEINE   SERVER",
        ],
    )
    def test_matches_daemon(self, command_line):
        assert matches_daemon(command_line) is True

    @pytest.mark.parametrize(
        "command_line",
        [
            "/usr/bin/python3 -m cc_caffeine status",
            "vim server.py",
            "caffeinate -i",
            "",
        ],
    )
    def test_rejects_other_processes(self, command_line):
        assert matches_daemon(command_line) is False


class TestProbeDaemon:
    def test_dead_process(self):
        with patch("cc_caffeine.process_utils.psutil.pid_exists", return_value=False):
            assert probe_daemon(4321) is ProcessStatus.DEAD

    def test_unrelated_live_process(self):
        """The test runner itself is alive but is not a daemon."""
        assert probe_daemon(os.getpid()) is ProcessStatus.UNRELATED

    def test_live_daemon(self):
        with patch(
            "cc_caffeine.process_utils.read_command_line",
            return_value="python -m cc_caffeine server",
        ):
            assert probe_daemon(os.getpid()) is ProcessStatus.DAEMON

    def test_custom_markers(self):
        with patch(
            "cc_caffeine.process_utils.read_command_line",
            return_value="node caffeine.js server",
        ):
            assert probe_daemon(os.getpid(), markers=("caffeine.js server",)) is ProcessStatus.DAEMON

    def test_unverifiable_process(self):
        with patch(
            "cc_caffeine.process_utils.read_command_line",
            side_effect=ProcessProbeError(1, "access denied"),
        ):
            assert probe_daemon(os.getpid()) is ProcessStatus.UNVERIFIABLE

    def test_process_exits_between_checks(self):
        with patch("cc_caffeine.process_utils.read_command_line", return_value=None):
            assert probe_daemon(os.getpid()) is ProcessStatus.DEAD
