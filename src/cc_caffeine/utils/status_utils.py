from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from ..session_types import Session


def _format_minutes(timeout: timedelta) -> str:
    minutes = int(timeout.total_seconds() // 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def summarize_status(
    daemon_running: bool,
    sessions: Sequence[Session],
    timeout: timedelta,
    daemon_pid: int | None = None,
) -> str:
    """Produce a human-readable status block.

    Pure utility (no side effects), suitable for testing.
    """
    lines: list[str] = []
    lines.append("=== CC-Caffeine Status ===")
    state = "Running" if daemon_running else "Stopped"
    if daemon_running and daemon_pid is not None:
        state += f" (pid {daemon_pid})"
    lines.append(f"Server Status: {state}")
    lines.append(f"Active Sessions: {len(sessions)}")

    if sessions:
        lines.append("")
        lines.append("Active Sessions:")
        ordered = sorted(sessions, key=lambda s: s.created_at)
        for index, session in enumerate(ordered, start=1):
            lines.append(f"  {index}. {session.id}")
            lines.append(f"     Created: {session.created_at.astimezone():%Y-%m-%d %H:%M:%S}")
            lines.append(
                f"     Last Activity: {session.last_activity.astimezone():%Y-%m-%d %H:%M:%S}"
            )
            if session.project_dir:
                lines.append(f"     Project: {session.project_dir}")

    lines.append("")
    lines.append(f"Session timeout: {_format_minutes(timeout)} of inactivity")
    return "\n".join(lines)
