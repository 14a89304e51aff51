"""Unit tests for configuration module."""

import pytest

from mail_triage_agent.config import Settings, WebhookMode, get_settings, is_placeholder


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that default settings are properly initialized."""
        monkeypatch.delenv("MAIL_TRIAGE_ENABLE_DESTRUCTIVE_ACTIONS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.enable_destructive_actions is False
        assert settings.max_emails_to_process == 30
        assert settings.min_batch_size == 1
        assert settings.context_cache_ttl == 1500
        assert settings.max_context_chars == 50_000
        assert settings.triage_preview_chars == 500
        assert settings.draft_body_chars == 3000
        assert settings.history_message_chars == 800
        assert settings.history_depth == 2
        assert settings.webhook_mode is WebhookMode.JSON
        assert settings.labels.star == "ai_star"
        assert settings.labels.unsure == "ai_unsure"
        assert "zoom.us" in settings.excluded_domains

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("MAIL_TRIAGE_ENABLE_DESTRUCTIVE_ACTIONS", "true")
        monkeypatch.setenv("MAIL_TRIAGE_SOURCE_LABELS", '["label:inbox", "label:support"]')
        monkeypatch.setenv("MAIL_TRIAGE_LABELS__ARCHIVE", "bot/archive")
        monkeypatch.setenv("MAIL_TRIAGE_WEBHOOK_MODE", "URL_PARAM")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.enable_destructive_actions is True
        assert settings.source_labels == ["label:inbox", "label:support"]
        assert settings.labels.archive == "bot/archive"
        assert settings.labels.star == "ai_star"
        assert settings.webhook_mode is WebhookMode.URL_PARAM

        # Clean up
        get_settings.cache_clear()

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()

    def test_placeholder_values_are_unset(self) -> None:
        """Test that bracketed setup placeholders are treated as missing."""
        settings = Settings(
            _env_file=None,
            gemini_api_key="[YOUR GEMINI API KEY]",
            webhook_url=" [YOUR WEBHOOK URL] ",
        )

        assert settings.gemini_api_key == ""
        assert settings.webhook_url == ""

    def test_invalid_batch_cap_rejected(self) -> None:
        """Test that a non-positive batch cap is rejected."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, max_emails_to_process=0)


def test_is_placeholder() -> None:
    assert is_placeholder("[value]") is True
    assert is_placeholder("  [value]  ") is True
    assert is_placeholder("https://hooks.example.com/x") is False
    assert is_placeholder("") is False
    assert is_placeholder(None) is False
