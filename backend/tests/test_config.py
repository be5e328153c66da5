"""Tests for environment-driven settings."""

import pytest

from cbt_diary.core.config import Settings

pytestmark = pytest.mark.unit


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.app_name == "CBT Diary"
    assert settings.saved_drafts_limit == 20
    assert settings.chat_api_timeout_seconds == 10.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SAVED_DRAFTS_LIMIT", "5")
    monkeypatch.setenv("CHAT_API_URL", "http://chat.internal:8080")
    monkeypatch.setenv("CLERK_ALLOWED_ORIGINS", '["https://diary.example"]')

    settings = Settings(_env_file=None)

    assert settings.saved_drafts_limit == 5
    assert settings.chat_api_url == "http://chat.internal:8080"
    assert settings.clerk_allowed_origins == ["https://diary.example"]
