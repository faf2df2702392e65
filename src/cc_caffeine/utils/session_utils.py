from __future__ import annotations

import json
from typing import Any


def validate_session_id(session_id: str | None) -> str:
    """Validate that session_id is a non-empty string and return the stripped value.

    None and "" raise "session_id is required"; other blank or non-string
    values raise "session_id must be a non-empty string".
    """
    if session_id is None or session_id == "":
        raise ValueError("session_id is required")
    if not isinstance(session_id, str):
        raise ValueError("session_id must be a non-empty string")
    cleaned = session_id.strip()
    if not cleaned:
        raise ValueError("session_id must be a non-empty string")
    return cleaned


def parse_hook_input(raw: str) -> dict[str, Any]:
    """Parse the JSON document a hook writes to stdin.

    Returns a dict with a validated ``session_id`` and an optional ``cwd``.
    """
    try:
        data = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"hook input is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ValueError("hook input must be a JSON object")
    parsed: dict[str, Any] = {"session_id": validate_session_id(data.get("session_id"))}
    if isinstance(data.get("cwd"), str):
        parsed["cwd"] = data["cwd"]
    return parsed
