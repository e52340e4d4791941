"""Unit tests for health check routes."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException

from routes.health_routes import SERVICE_NAME, health, ready


@pytest.mark.unit
class TestHealthEndpoint:
    """Tests for GET /health."""

    async def test_health_returns_200_healthy(self):
        """Health endpoint returns status=healthy."""
        result = await health()
        assert result.status == "healthy"
        assert result.service == SERVICE_NAME


@pytest.mark.unit
class TestReadyEndpoint:
    """Tests for GET /ready."""

    async def test_ready_returns_200_when_db_reachable(self):
        """Ready returns 200 when the database answers."""
        request = MagicMock()

        with patch(
            "routes.health_routes.check_db_connection",
            autospec=True,
        ) as mock_check:
            result = await ready(request)

        assert result.status == "ready"
        mock_check.assert_awaited_once_with(request.app.state.engine)

    async def test_ready_returns_503_when_db_unreachable(self):
        """Ready returns 503 when the database check fails."""
        request = MagicMock()

        with patch(
            "routes.health_routes.check_db_connection",
            autospec=True,
            side_effect=ConnectionRefusedError("db down"),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await ready(request)

        assert exc_info.value.status_code == 503
        assert exc_info.value.detail == "Database unavailable"
