import json
import logging

# FastMCP 2.0 import
from fastmcp import FastMCP

from .service import CaffeineService
from .system_utils import configure_logging

logger = logging.getLogger(__name__)

SERVER_NAME = "CC-Caffeine ☕"

# Create FastMCP instance
mcp = FastMCP(SERVER_NAME)

# Global client service instance
service = CaffeineService()


# === TOOLS ===
@mcp.tool
def caffeinate(session_id: str, project_dir: str | None = None) -> str:
    """Keep this machine awake while the given session is active.

    Args:
        session_id: Session identifier; calling again renews the session
        project_dir: Optional project directory recorded with the session

    Returns:
        Confirmation message
    """
    result = service.caffeinate(session_id, project_dir)
    action = "Enabled" if result.created else "Renewed"
    message = f"{action} caffeine for session: {session_id.strip()}"
    if result.cleaned_count:
        message += f" (cleaned up {result.cleaned_count} expired sessions)"
    return message


@mcp.tool
def uncaffeinate(session_id: str) -> str:
    """Stop keeping this machine awake for the given session.

    Args:
        session_id: Session identifier passed to caffeinate

    Returns:
        Confirmation message
    """
    result = service.uncaffeinate(session_id)
    if not result.removed:
        return f"No active caffeine session: {session_id.strip()}"
    return f"Disabled caffeine for session: {session_id.strip()}"


@mcp.tool
def caffeine_status() -> str:
    """Show whether the caffeine server runs and which sessions are active."""
    return service.status_text()


# === RESOURCES ===
@mcp.resource("caffeine://sessions")
def list_sessions() -> str:
    """Active sessions as JSON."""
    sessions = service.ledger.list_active()
    return json.dumps(
        [{"id": s.id, **s.to_dict()} for s in sessions],
        indent=2,
    )


# === MAIN ENTRY POINT ===
def main():
    """Run the MCP server over stdio."""
    configure_logging(service.config.log_level)
    logger.info("Starting %s MCP server", SERVER_NAME)
    mcp.run()
