"""Tests for environment-driven settings."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from portal_sync.config import Settings, _split_list, task_name


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setenv("PORTAL_BASE_URL", "https://portal.example")
    monkeypatch.setenv("PORTAL_USERNAME", "user")
    monkeypatch.setenv("PORTAL_PASSWORD", "secret")
    return monkeypatch


class TestSettings:
    def test_defaults(self, env) -> None:
        settings = Settings(_env_file=None)

        assert settings.api_url == "https://portal.example/back/rapi2/"
        assert settings.portal_retry_deadline == 600
        assert settings.poll_interval == 30
        assert settings.zip_path == Path("Download/Portal5")
        assert settings.chunk_size == 1048576
        assert settings.notify_mode == "batch"

    def test_lists_and_task_names(self, env) -> None:
        env.setenv("EXCLUDE_TASKS", "54; Zadacha_137,221")
        env.setenv("NOTIFY_SUBSCRIBERS", "Ops@Example.com, audit@example.com")

        settings = Settings(_env_file=None)

        assert settings.exclude_tasks == ["Zadacha_54", "Zadacha_137", "Zadacha_221"]
        assert settings.notify_subscribers == ["ops@example.com", "audit@example.com"]

    def test_zero_chunk_size_means_unlimited(self, env) -> None:
        env.setenv("PORTAL_CHUNK_SIZE", "0")

        assert Settings(_env_file=None).chunk_size is None

    def test_blank_optional_values(self, env) -> None:
        env.setenv("CRYPTO_THUMBPRINT", "  ")
        env.setenv("SMTP_HOST", "")

        settings = Settings(_env_file=None)

        assert settings.crypto_thumbprint is None
        assert settings.smtp_host is None

    def test_negative_cooldown_rejected(self, env) -> None:
        env.setenv("PORTAL_COOLDOWN", "-1")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_unknown_notify_mode_rejected(self, env) -> None:
        env.setenv("NOTIFY_MODE", "sometimes")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestHelpers:
    def test_task_name(self) -> None:
        assert task_name("130") == "Zadacha_130"
        assert task_name(" Zadacha_130 ") == "Zadacha_130"

    def test_split_list(self) -> None:
        assert _split_list("a, B;;c") == ["a", "b", "c"]
        assert _split_list(None) == []
