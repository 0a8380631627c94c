"""
Tests for environment-driven configuration.
"""

from __future__ import annotations

import pytest

from report_bot.config import ConfigError, load_config

ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHANNEL_ID",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASSWORD",
    "SMTP_FROM",
    "SMTP_USE_TLS",
    "SMTP_TIMEOUT_SECONDS",
    "ADMIN_EMAIL",
    "SESSION_TTL_MINUTES",
    "ALLOW_ZERO_QUANTITIES",
    "RESTORE_REPORTS",
    "API_ENABLED",
    "API_HOST",
    "API_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from an empty configuration with a token set."""
    monkeypatch.setattr("report_bot.config.load_dotenv", lambda *args, **kwargs: False)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")


class TestLoadConfig:
    """Defaults and validation."""

    def test_defaults(self) -> None:
        config = load_config()
        assert config.telegram_bot_token == "123:abc"
        assert config.telegram_channel_id is None
        assert config.smtp is None
        assert config.session_ttl_minutes == 120
        assert config.allow_zero_quantities is True
        assert config.api_enabled is False

    def test_missing_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN")
        with pytest.raises(ConfigError):
            load_config()

    @pytest.mark.parametrize("channel", ["@field_reports", "-1001234567890"])
    def test_channel_ids(self, monkeypatch: pytest.MonkeyPatch, channel: str) -> None:
        monkeypatch.setenv("TELEGRAM_CHANNEL_ID", channel)
        assert load_config().telegram_channel_id == channel

    def test_bad_channel_id(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEGRAM_CHANNEL_ID", "field reports")
        with pytest.raises(ConfigError):
            load_config()

    def test_smtp(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_USER", "bot@example.com")
        monkeypatch.setenv("ADMIN_EMAIL", "admin@example.com")
        monkeypatch.setenv("SMTP_PORT", "465")

        smtp = load_config().smtp

        assert smtp is not None
        assert smtp.port == 465
        assert smtp.sender == "bot@example.com"
        assert smtp.admin_email == "admin@example.com"

    def test_smtp_requires_admin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        with pytest.raises(ConfigError):
            load_config()

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("SESSION_TTL_MINUTES", "-1"),
            ("SESSION_TTL_MINUTES", "abc"),
            ("API_PORT", "70000"),
            ("ALLOW_ZERO_QUANTITIES", "maybe"),
        ],
    )
    def test_invalid_values(self, monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            load_config()

    def test_flags(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ALLOW_ZERO_QUANTITIES", "false")
        monkeypatch.setenv("API_ENABLED", "yes")
        monkeypatch.setenv("SESSION_TTL_MINUTES", "0")

        config = load_config()

        assert config.allow_zero_quantities is False
        assert config.api_enabled is True
        assert config.session_ttl_minutes == 0
