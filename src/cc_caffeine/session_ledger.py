"""
Session Ledger

Persistent store of active keep-awake sessions, shared by every cc-caffeine
process through a single JSON file.

Design notes:
- Every public operation is one locked critical section spanning
  read-mutate-write, so ledger mutations never interleave across processes.
- Writes are full-file atomic replaces; readers see the old or new document,
  never a mix.
- Every operation first drops sessions idle for SESSION_TIMEOUT or longer.
- A zero-byte file is the placeholder left by the lock layer on first access
  and reads as an empty ledger. Any other unreadable content raises
  CorruptLedger; only reset() rewrites it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from .config import LEDGER_LOCK_RETRIES, LEDGER_LOCK_STALE_SECONDS, SESSION_TIMEOUT
from .errors import CorruptLedger
from .locked_file import LockedFile, locked_file
from .session_types import (
    AddResult,
    LedgerDocument,
    RemoveResult,
    Session,
    SweepResult,
    parse_timestamp,
    utc_now,
)
from .utils.session_utils import validate_session_id

logger = logging.getLogger(__name__)


class SessionLedger:
    """File-backed ledger of sessions keyed by id."""

    def __init__(
        self,
        path: Path | str,
        timeout: timedelta = SESSION_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = LEDGER_LOCK_RETRIES,
        stale_after: float = LEDGER_LOCK_STALE_SECONDS,
    ) -> None:
        self.path = Path(path)
        self._timeout = timeout
        self._clock = clock
        self._max_retries = max_retries
        self._stale_after = stale_after

    # Internal helpers
    def _now(self) -> datetime:
        return self._clock()

    def _lock(self):
        return locked_file(
            self.path, max_retries=self._max_retries, stale_after=self._stale_after
        )

    def _read_locked(self, handle: LockedFile) -> LedgerDocument:
        try:
            raw = handle.read_text()
        except UnicodeDecodeError as exc:
            raise CorruptLedger(self.path, f"not UTF-8 text ({exc.reason})") from exc
        if not raw.strip():
            return LedgerDocument()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptLedger(self.path, f"invalid JSON ({exc})") from exc
        if not isinstance(data, dict):
            raise CorruptLedger(self.path, "document must be a JSON object")

        entries = data.get("sessions", {})
        if not isinstance(entries, dict):
            raise CorruptLedger(self.path, "'sessions' must be an object")

        sessions: dict[str, Session] = {}
        for session_id, entry in entries.items():
            try:
                sessions[session_id] = Session.from_dict(session_id, entry)
            except ValueError as exc:
                raise CorruptLedger(self.path, str(exc)) from exc

        last_updated = None
        if data.get("last_updated"):
            try:
                last_updated = parse_timestamp(data["last_updated"])
            except ValueError as exc:
                raise CorruptLedger(self.path, f"bad last_updated ({exc})") from exc
        return LedgerDocument(sessions=sessions, last_updated=last_updated)

    def _write_locked(self, handle: LockedFile, document: LedgerDocument) -> None:
        document.last_updated = self._now()
        handle.write_atomic(json.dumps(document.to_dict(), indent=2) + "\n")

    def _purge_expired(self, document: LedgerDocument, now: datetime) -> int:
        expired = [
            sid
            for sid, session in document.sessions.items()
            if session.is_expired(now, self._timeout)
        ]
        for sid in expired:
            del document.sessions[sid]
        if expired:
            logger.info("Expired %d idle session(s): %s", len(expired), expired)
        return len(expired)

    # Ledger operations
    def add_or_renew(self, session_id: str, project_dir: str | None = None) -> AddResult:
        """Insert a session or refresh its last_activity.

        ``created`` is decided from the lookup made before the write.
        """
        session_id = validate_session_id(session_id)
        with self._lock() as handle:
            document = self._read_locked(handle)
            now = self._now()
            cleaned = self._purge_expired(document, now)

            existing = document.sessions.get(session_id)
            if existing is not None:
                existing.last_activity = max(now, existing.created_at)
                created = False
            else:
                document.sessions[session_id] = Session(
                    id=session_id,
                    created_at=now,
                    last_activity=now,
                    project_dir=project_dir,
                )
                created = True

            self._write_locked(handle, document)

        logger.debug(
            "%s session %s (cleaned %d)",
            "Added" if created else "Renewed",
            session_id,
            cleaned,
        )
        return AddResult(cleaned_count=cleaned, created=created)

    def remove(self, session_id: str) -> RemoveResult:
        """Delete a session; the file is rewritten only if anything changed."""
        session_id = validate_session_id(session_id)
        with self._lock() as handle:
            document = self._read_locked(handle)
            cleaned = self._purge_expired(document, self._now())
            removed = document.sessions.pop(session_id, None) is not None
            if removed or cleaned:
                self._write_locked(handle, document)
        return RemoveResult(cleaned_count=cleaned, removed=removed)

    def list_active(self) -> list[Session]:
        """Return unexpired sessions without modifying the file."""
        with self._lock() as handle:
            document = self._read_locked(handle)
        now = self._now()
        return [
            session
            for session in document.sessions.values()
            if not session.is_expired(now, self._timeout)
        ]

    def sweep_expired(self) -> SweepResult:
        """Drop expired sessions; the file is rewritten only if any were found."""
        with self._lock() as handle:
            document = self._read_locked(handle)
            cleaned = self._purge_expired(document, self._now())
            if cleaned:
                self._write_locked(handle, document)
        return SweepResult(cleaned_count=cleaned)

    def reset(self) -> int:
        """Rewrite an empty ledger, discarding whatever the file held.

        This is the only operation that replaces unreadable content. Returns
        the number of sessions discarded when the old content was readable.
        """
        with self._lock() as handle:
            try:
                discarded = len(self._read_locked(handle).sessions)
            except CorruptLedger as exc:
                logger.warning("Discarding corrupt ledger: %s", exc.reason)
                discarded = 0
            self._write_locked(handle, LedgerDocument())
        return discarded
