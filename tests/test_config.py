"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from config import ConfigError, load_settings


class TestLoadSettings:
    """Tests for load_settings."""

    def test_environment_prefixed_variables(self) -> None:
        """Values come from the *_<ENV> variables of the selected environment."""
        settings = load_settings(
            environ={
                "ENVIRONMENT": "uat",
                "BASE_URL_UAT": "https://uat.example.test",
                "BASE_URL_API_UAT": "https://api.uat.example.test",
                "USERNAME_UAT": "io.user",
                "PASSWORD_UAT": "pw",
                "ROW_CAP": "25",
                "CASE_NAME": "CASE-7",
            }
        )
        assert settings.environment == "UAT"
        assert settings.base_url == "https://uat.example.test"
        assert settings.api_base_url == "https://api.uat.example.test"
        assert settings.has_credentials is True
        assert settings.row_cap == 25
        assert settings.case_name == "CASE-7"

    def test_defaults(self) -> None:
        """QA is the default environment and the API shares the base URL."""
        settings = load_settings(environ={"BASE_URL_QA": "https://qa.example.test"})
        assert settings.environment == "QA"
        assert settings.api_base_url == "https://qa.example.test"
        assert settings.has_credentials is False
        assert settings.action_timeout_ms == 30000
        assert settings.quiet_window_ms == 500
        assert settings.max_pages == 20
        assert settings.viewport == {"width": 1366, "height": 768}

    def test_missing_base_url(self) -> None:
        """The error names the variable to set."""
        with pytest.raises(ConfigError, match="BASE_URL_QA"):
            load_settings(environ={})

    def test_bad_integer(self) -> None:
        """Timing variables must be integers."""
        with pytest.raises(ConfigError, match="QUIET_WINDOW_MS"):
            load_settings(environ={"BASE_URL": "https://x.test", "QUIET_WINDOW_MS": "soon"})

    def test_overrides(self) -> None:
        """Keyword overrides win; None overrides are ignored."""
        settings = load_settings(environ={}, base_url="https://cli.test", headless=False, verbose=None)
        assert settings.base_url == "https://cli.test"
        assert settings.headless is False
        assert settings.verbose is False

    def test_unknown_override(self) -> None:
        """Typos in overrides are rejected."""
        with pytest.raises(ConfigError, match="Unknown setting"):
            load_settings(environ={"BASE_URL": "https://x.test"}, headles=False)

    def test_url_joining(self) -> None:
        """Paths join onto the base URLs with a single slash."""
        settings = load_settings(environ={"BASE_URL": "https://x.test/", "BASE_URL_API": "https://api.x.test"})
        assert settings.url("/dashboard/io") == "https://x.test/dashboard/io"
        assert settings.api_url("v1/count") == "https://api.x.test/v1/count"
        assert settings.url("https://other.test/a") == "https://other.test/a"
