"""Shared pytest fixtures for cc-caffeine tests."""

import pytest

from cc_caffeine.config import CaffeineConfig
from cc_caffeine.instance_coordinator import InstanceCoordinator
from cc_caffeine.session_ledger import SessionLedger
from tests.utils.fakes import FakeClock, RecordingCapability


@pytest.fixture
def state_dir(tmp_path):
    """A private state directory for one test."""
    path = tmp_path / "cc-caffeine"
    path.mkdir()
    return path


@pytest.fixture
def config(state_dir):
    return CaffeineConfig(config_dir=state_dir, poll_interval_seconds=0.05)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(config, clock):
    """Ledger on a temp file with a controllable clock and fast lock retries."""
    return SessionLedger(config.sessions_file, clock=clock, max_retries=5, stale_after=5.0)


@pytest.fixture
def capability():
    return RecordingCapability()


@pytest.fixture
def coordinator(config, capability):
    return InstanceCoordinator(config.pid_file, capability, own_pid=4242)
