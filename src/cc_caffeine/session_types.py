"""
Session Types and Data Classes

Core data structures for the session ledger and the coordination results
returned to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Accepts the trailing ``Z`` form written by other tooling.
    """
    if not isinstance(raw, str):
        raise ValueError(f"timestamp must be a string, got {type(raw).__name__}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Session:
    """One tracked keep-awake demand."""

    id: str
    created_at: datetime
    last_activity: datetime
    project_dir: str | None = None

    def is_expired(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity >= timeout

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "created_at": format_timestamp(self.created_at),
            "last_activity": format_timestamp(self.last_activity),
        }
        if self.project_dir is not None:
            data["project_dir"] = self.project_dir
        return data

    @classmethod
    def from_dict(cls, session_id: str, data: dict[str, Any]) -> "Session":
        """Build a Session from its ledger entry.

        Raises:
            ValueError: If the entry is missing fields or holds bad timestamps.
        """
        if not isinstance(data, dict):
            raise ValueError(f"session {session_id!r} is not an object")
        try:
            created_at = parse_timestamp(data["created_at"])
            last_activity = parse_timestamp(data["last_activity"])
        except KeyError as exc:
            raise ValueError(f"session {session_id!r} is missing {exc.args[0]}") from exc
        project_dir = data.get("project_dir")
        if project_dir is not None and not isinstance(project_dir, str):
            project_dir = str(project_dir)
        return cls(
            id=session_id,
            created_at=created_at,
            last_activity=last_activity,
            project_dir=project_dir,
        )


@dataclass
class LedgerDocument:
    """In-memory form of the ledger file."""

    sessions: dict[str, Session] = field(default_factory=dict)
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": {sid: s.to_dict() for sid, s in self.sessions.items()},
            "last_updated": format_timestamp(self.last_updated or utc_now()),
        }


@dataclass(frozen=True)
class AddResult:
    """Outcome of SessionLedger.add_or_renew()."""

    cleaned_count: int
    created: bool


@dataclass(frozen=True)
class RemoveResult:
    """Outcome of SessionLedger.remove()."""

    cleaned_count: int
    removed: bool


@dataclass(frozen=True)
class SweepResult:
    """Outcome of SessionLedger.sweep_expired()."""

    cleaned_count: int


class ClaimRole(Enum):
    """What a process should do after InstanceCoordinator.claim_or_defer()."""

    BECOME_DAEMON = "becomeDaemon"
    ALREADY_RUNNING = "alreadyRunning"
    SPAWN_HOST = "spawnHost"
