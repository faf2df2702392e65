"""
Client Service

Client-side operations shared by the CLI and the MCP tools: register or drop
a session in the ledger and make sure a daemon is around to act on it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .capability import SuppressionCapability
from .config import SESSION_TIMEOUT, CaffeineConfig
from .daemon import ensure_daemon
from .instance_coordinator import InstanceCoordinator
from .platform_inhibitor import PlatformSleepInhibitor
from .session_ledger import SessionLedger
from .session_types import AddResult, RemoveResult, Session
from .utils.session_utils import validate_session_id
from .utils.status_utils import summarize_status

logger = logging.getLogger(__name__)


@dataclass
class ServiceStatus:
    """Snapshot of daemon and ledger state."""

    daemon_running: bool
    daemon_pid: int | None
    sessions: list[Session] = field(default_factory=list)


class CaffeineService:
    def __init__(
        self,
        config: CaffeineConfig | None = None,
        capability: SuppressionCapability | None = None,
        ledger: SessionLedger | None = None,
        coordinator: InstanceCoordinator | None = None,
    ) -> None:
        self.config = config or CaffeineConfig.from_env()
        self.ledger = ledger or SessionLedger(self.config.sessions_file)
        self.coordinator = coordinator or InstanceCoordinator(
            self.config.pid_file, capability or PlatformSleepInhibitor()
        )

    def caffeinate(self, session_id: str, project_dir: str | None = None) -> AddResult:
        """Add or renew a session, then make sure the daemon runs."""
        session_id = validate_session_id(session_id)
        if project_dir is None:
            project_dir = os.environ.get("CLAUDE_PROJECT_DIR")
        result = self.ledger.add_or_renew(session_id, project_dir)
        logger.debug(
            "%s caffeine session %s",
            "Enabled" if result.created else "Renewed",
            session_id,
        )
        if result.cleaned_count:
            logger.debug("Cleaned up %d expired sessions", result.cleaned_count)
        ensure_daemon(self.coordinator, self.config)
        return result

    def uncaffeinate(self, session_id: str) -> RemoveResult:
        """Remove a session. The daemon notices on its next poll."""
        session_id = validate_session_id(session_id)
        result = self.ledger.remove(session_id)
        logger.debug(
            "Disabled caffeine for session %s%s",
            session_id,
            "" if result.removed else " (not found)",
        )
        if result.cleaned_count:
            logger.debug("Cleaned up %d expired sessions", result.cleaned_count)
        return result

    def status(self) -> ServiceStatus:
        daemon_pid = self.coordinator.get_daemon_pid()
        return ServiceStatus(
            daemon_running=daemon_pid is not None,
            daemon_pid=daemon_pid,
            sessions=self.ledger.list_active(),
        )

    def status_text(self) -> str:
        snapshot = self.status()
        return summarize_status(
            snapshot.daemon_running,
            snapshot.sessions,
            SESSION_TIMEOUT,
            daemon_pid=snapshot.daemon_pid,
        )

    def reset(self) -> int:
        """Explicitly discard the ledger contents."""
        discarded = self.ledger.reset()
        logger.debug("Session ledger reset (%d sessions discarded)", discarded)
        return discarded
