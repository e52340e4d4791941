"""Tests for Clerk bearer-token authentication."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException

from core.auth import AuthUnavailableError, _bearer_token, authenticate, require_auth

pytestmark = pytest.mark.unit


def _request(authorization: str | None = "Bearer token-123") -> MagicMock:
    request = MagicMock()
    request.headers = {"authorization": authorization} if authorization else {}
    request.state = MagicMock(spec=[])
    return request


class TestBearerToken:
    """Tests for Authorization header parsing."""

    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc", "abc"),
            ("bearer  abc ", "abc"),
            ("Basic abc", None),
            ("Bearer ", None),
            (None, None),
        ],
    )
    def test_parses_header(self, header, expected):
        """Test only non-empty bearer tokens are accepted."""
        assert _bearer_token(_request(header)) == expected


class TestAuthenticate:
    """Tests for authenticate and require_auth."""

    def test_signed_in_returns_subject(self, mock_clerk_auth, test_user_id):
        """Test the Clerk subject is the user id."""
        assert authenticate(_request()) == test_user_id

    def test_no_token_skips_clerk(self, mock_clerk_auth):
        """Test Clerk isn't called without a bearer token."""
        assert authenticate(_request(None)) is None
        mock_clerk_auth.authenticate_request.assert_not_called()

    def test_not_initialized_returns_none(self):
        """Test auth is disabled before init_clerk_client runs."""
        with patch("core.auth._clerk_initialized", False):
            assert authenticate(_request()) is None

    def test_jwks_outage_returns_none(self, mock_clerk_auth):
        """Test a signing-key failure is treated as unauthenticated."""
        with patch(
            "core.auth._verify_request",
            side_effect=AuthUnavailableError("jwk-failed-to-load"),
        ):
            assert authenticate(_request()) is None

    def test_require_auth_sets_request_state(self, mock_clerk_auth, test_user_id):
        """Test the user id is stored for the rate limiter key."""
        request = _request()
        request.state = MagicMock()

        assert require_auth(request) == test_user_id
        assert request.state.user_id == test_user_id

    def test_require_auth_raises_401(self, mock_clerk_auth):
        """Test anonymous requests are rejected."""
        mock_clerk_auth.authenticate_request.return_value.is_signed_in = False

        with pytest.raises(HTTPException) as exc_info:
            require_auth(_request())

        assert exc_info.value.status_code == 401
