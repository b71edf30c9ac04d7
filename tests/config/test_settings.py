"""Tests for Settings and the settings loader."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from quotesync.config import Settings, SettingsLoader, load_settings
from quotesync.shared.errors import ApplicationError, ErrorCode


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each test where no default config file or .env exists."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


class TestSettings:
    """Test the Settings model."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.api.base_url == "http://localhost:3001/api"
        assert settings.retry.base_delay_ms == 1000
        assert settings.retry.max_retries == 3
        assert settings.queue.max_retries == 3
        assert settings.queue.storage_key == "offline-queue"
        assert settings.cache.stale_time_ms == 5 * 60 * 1000

    def test_environment_overrides_nested_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUOTESYNC_API__BASE_URL", "https://api.example.com/api/")
        monkeypatch.setenv("QUOTESYNC_QUEUE__MAX_RETRIES", "5")

        settings = Settings()

        assert settings.api.base_url == "https://api.example.com/api"
        assert settings.queue.max_retries == 5

    def test_invalid_timeout_is_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(api={"timeout": 0})

    def test_toml_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "config" / "quotesync.toml"
        original = Settings(api={"base_url": "https://api.example.com/api"}, queue={"auto_drain": False})

        original.to_toml_file(path)
        loaded = Settings.from_toml_file(path)

        assert loaded.api.base_url == "https://api.example.com/api"
        assert loaded.queue.auto_drain is False

    def test_from_toml_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Settings.from_toml_file(tmp_path / "missing.toml")


class TestLoadSettings:
    """Test load_settings file discovery and error reporting."""

    def test_falls_back_to_defaults(self) -> None:
        assert load_settings() == Settings()

    def test_reads_default_location(self, isolated_cwd: Path) -> None:
        config_file = isolated_cwd / "quotesync.toml"
        config_file.write_text('[cache]\nstale_time_ms = 1000\n', encoding="utf-8")

        assert load_settings().cache.stale_time_ms == 1000

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ApplicationError) as exc_info:
            load_settings(tmp_path / "nope.toml")

        assert exc_info.value.code is ErrorCode.CONFIG_ERROR

    def test_invalid_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "broken.toml"
        config_file.write_text("[api\nbase_url = ", encoding="utf-8")

        with pytest.raises(ApplicationError) as exc_info:
            load_settings(config_file)

        assert exc_info.value.code is ErrorCode.CONFIG_ERROR
        assert exc_info.value.original_error is not None

    def test_env_file_is_loaded(self, isolated_cwd: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("QUOTESYNC_LOGGING__LEVEL", raising=False)
        (isolated_cwd / ".env").write_text("QUOTESYNC_LOGGING__LEVEL=DEBUG\n", encoding="utf-8")

        try:
            assert load_settings().logging.level == "DEBUG"
        finally:
            os.environ.pop("QUOTESYNC_LOGGING__LEVEL", None)


class TestSettingsLoader:
    """Test the cached loader."""

    def test_get_config_is_cached(self) -> None:
        loader = SettingsLoader()

        assert loader.get_config() is loader.get_config()

    def test_update_and_save_config(self, tmp_path: Path) -> None:
        path = tmp_path / "saved.toml"
        loader = SettingsLoader()

        def updater(settings: Settings) -> None:
            settings.queue.max_retries = 7

        loader.update_and_save_config(updater, path)

        assert loader.get_config().queue.max_retries == 7
        assert Settings.from_toml_file(path).queue.max_retries == 7

    def test_update_and_save_config_rejects_invalid_values(self, tmp_path: Path) -> None:
        loader = SettingsLoader()

        def updater(settings: Settings) -> None:
            settings.api.timeout = -1

        with pytest.raises(ApplicationError) as exc_info:
            loader.update_and_save_config(updater, tmp_path / "saved.toml")

        assert exc_info.value.code is ErrorCode.CONFIGURATION_ERROR
