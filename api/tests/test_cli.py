"""Tests for CLI argument dispatch."""

from unittest.mock import patch

import pytest

import cli

pytestmark = pytest.mark.unit


class TestMain:
    """Tests for cli.main."""

    def test_migrate(self):
        """Test the migrate command is dispatched."""
        with patch("cli.cmd_migrate", return_value=0) as mock_cmd:
            assert cli.main(["migrate"]) == 0
        mock_cmd.assert_called_once_with()

    def test_process_redemption(self):
        """Test positional ids are passed through."""
        with patch("cli.cmd_process_redemption", return_value=0) as mock_cmd:
            assert cli.main(["process-redemption", "C1", "R1"]) == 0
        mock_cmd.assert_called_once_with("C1", "R1")

    def test_retry_failed_emails_defaults(self):
        """Test retry runs across all classes with the default limit."""
        with patch("cli.cmd_retry_failed_emails", return_value=0) as mock_cmd:
            cli.main(["retry-failed-emails"])
        mock_cmd.assert_called_once_with(None, 100)

    def test_retry_failed_emails_options(self):
        """Test --class-id and --limit are honoured."""
        with patch("cli.cmd_retry_failed_emails", return_value=1) as mock_cmd:
            exit_code = cli.main(
                ["retry-failed-emails", "--class-id", "C1", "--limit", "5"]
            )
        assert exit_code == 1
        mock_cmd.assert_called_once_with("C1", 5)

    def test_grant_creator_revoke(self):
        """Test --revoke clears the flag."""
        with patch("cli.cmd_grant_creator", return_value=0) as mock_cmd:
            cli.main(["grant-creator", "user_1", "--revoke"])
        mock_cmd.assert_called_once_with("user_1", True)

    def test_no_command_prints_help(self, capsys):
        """Test running without a command is an error."""
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestRetryFailedEmailsCommand:
    """Tests for the retry-failed-emails exit code."""

    def test_missing_storage_config_fails(self, monkeypatch):
        """Test the pipeline commands refuse to run without blob storage."""
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "")
        monkeypatch.setenv("DEBUG", "true")

        assert cli.cmd_retry_failed_emails(None, 10) == 1
