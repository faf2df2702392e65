"""Unit tests for the MCP tool surface."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from cc_caffeine import server
from cc_caffeine.session_types import AddResult, RemoveResult, Session


def _call(component, *args, **kwargs):
    """Invoke a decorated tool or resource through its wrapped function."""
    fn = getattr(component, "fn", component)
    return fn(*args, **kwargs)


@pytest.fixture
def mock_service():
    with patch("cc_caffeine.server.service") as service:
        yield service


class TestMCPTools:
    """Test cases for MCP tool functions."""

    def test_server_instance(self):
        assert server.mcp is not None
        assert server.SERVER_NAME.startswith("CC-Caffeine")

    def test_caffeinate_new_session(self, mock_service):
        mock_service.caffeinate.return_value = AddResult(cleaned_count=0, created=True)
        result = _call(server.caffeinate, "abc", "/tmp/project")
        mock_service.caffeinate.assert_called_once_with("abc", "/tmp/project")
        assert result == "Enabled caffeine for session: abc"

    def test_caffeinate_renewal_reports_cleanup(self, mock_service):
        mock_service.caffeinate.return_value = AddResult(cleaned_count=2, created=False)
        result = _call(server.caffeinate, " abc ")
        assert result.startswith("Renewed caffeine for session: abc")
        assert "cleaned up 2 expired sessions" in result

    def test_caffeinate_propagates_validation_error(self, mock_service):
        mock_service.caffeinate.side_effect = ValueError("session_id is required")
        with pytest.raises(ValueError, match="session_id is required"):
            _call(server.caffeinate, "")

    def test_uncaffeinate(self, mock_service):
        mock_service.uncaffeinate.return_value = RemoveResult(cleaned_count=0, removed=True)
        assert _call(server.uncaffeinate, "abc") == "Disabled caffeine for session: abc"

    def test_uncaffeinate_unknown_session(self, mock_service):
        mock_service.uncaffeinate.return_value = RemoveResult(cleaned_count=0, removed=False)
        assert _call(server.uncaffeinate, "ghost") == "No active caffeine session: ghost"

    def test_caffeine_status(self, mock_service):
        mock_service.status_text.return_value = "=== CC-Caffeine Status ==="
        assert _call(server.caffeine_status) == "=== CC-Caffeine Status ==="

    def test_list_sessions_resource(self, mock_service):
        stamp = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        mock_service.ledger = MagicMock()
        mock_service.ledger.list_active.return_value = [
            Session("abc", stamp, stamp, project_dir="/tmp/project")
        ]
        payload = json.loads(_call(server.list_sessions))
        assert payload == [
            {
                "id": "abc",
                "created_at": "2024-01-01T12:00:00+00:00",
                "last_activity": "2024-01-01T12:00:00+00:00",
                "project_dir": "/tmp/project",
            }
        ]

    def test_main_runs_stdio_server(self, mock_service):
        mock_service.config.log_level = "INFO"
        with (
            patch("cc_caffeine.server.configure_logging") as mock_logging,
            patch.object(server.mcp, "run") as mock_run,
        ):
            server.main()
        mock_logging.assert_called_once_with("INFO")
        mock_run.assert_called_once_with()
