"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from inbox_triage.core.config import DEFAULT_CLEANUP_CATEGORIES, load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.imap.host == "imap.gmail.com"
    assert settings.imap.port == 993
    assert settings.storage.db_path == Path("./inbox_triage.db")
    assert settings.sync.limit == 10
    assert settings.sync.search_criteria == ["UNSEEN"]
    assert settings.sync.operation_timeout_seconds == 30
    assert settings.cleanup.categories == list(DEFAULT_CLEANUP_CATEGORIES)
    assert settings.cleanup.operation_timeout_seconds > settings.sync.operation_timeout_seconds


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "INBOX_TRIAGE_IMAP__HOST=imap.example.com\n"
        "INBOX_TRIAGE_IMAP__USE_SSL=false\n"
        "INBOX_TRIAGE_CLEANUP__CATEGORIES=spam, trash\n"
        "INBOX_TRIAGE_SMTP__FROM_NAME=\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.imap.host == "imap.example.com"
    assert settings.imap.use_ssl is False
    assert settings.cleanup.categories == ["spam", "trash"]
    assert settings.smtp.from_name is None


def test_environment_overrides_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Process environment should win over values from the env file."""

    env_file = tmp_path / "test.env"
    env_file.write_text("INBOX_TRIAGE_SYNC__LIMIT=5\n", encoding="utf-8")
    monkeypatch.setenv("INBOX_TRIAGE_SYNC__LIMIT", "25")
    monkeypatch.setenv("INBOX_TRIAGE_SYNC__SEARCH_CRITERIA", "UNSEEN,FLAGGED")

    settings = load_app_settings(env_file=env_file)
    assert settings.sync.limit == 25
    assert settings.sync.search_criteria == ["UNSEEN", "FLAGGED"]
