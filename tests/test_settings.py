"""Tests for library settings."""

import logging
import os
import sys

import pytest
from loguru import logger
from pydantic import ValidationError

from settings import Settings, get_settings


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a Settings instance with default values."""
    for name in ("VOXELPIPE_MAX_WORKERS", "VOXELPIPE_LOG_LEVEL", "VOXELPIPE_GRID_TOLERANCE"):
        monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None)  # type: ignore


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self, settings: Settings) -> None:
        assert not settings.model_fields_set
        assert settings.max_workers == (os.cpu_count() or 1)
        assert settings.log_level == "INFO"
        assert settings.grid_tolerance == 1e-4

    @pytest.mark.parametrize(
        ("env_var", "env_value", "field_name", "expected_value"),
        [
            pytest.param("VOXELPIPE_MAX_WORKERS", "3", "max_workers", 3, id="max_workers"),
            pytest.param("VOXELPIPE_LOG_LEVEL", "DEBUG", "log_level", "DEBUG", id="log_level"),
            pytest.param("voxelpipe_grid_tolerance", "0.01", "grid_tolerance", 0.01, id="case insensitive"),
        ],
    )
    def test_settings_from_env(
        self,
        monkeypatch: pytest.MonkeyPatch,
        env_var: str,
        env_value: str,
        field_name: str,
        expected_value: int | str | float,
    ) -> None:
        # Arrange
        monkeypatch.setenv(env_var, env_value)
        # Act
        settings = Settings(_env_file=None)  # type: ignore
        # Assert
        assert getattr(settings, field_name) == expected_value
        assert field_name in settings.model_fields_set

    @pytest.mark.parametrize(
        ("env_var", "env_value"),
        [
            pytest.param("VOXELPIPE_MAX_WORKERS", "0", id="empty pool"),
            pytest.param("VOXELPIPE_LOG_LEVEL", "LOUD", id="unknown level"),
            pytest.param("VOXELPIPE_GRID_TOLERANCE", "-1", id="negative tolerance"),
        ],
    )
    def test_invalid_env(self, monkeypatch: pytest.MonkeyPatch, env_var: str, env_value: str) -> None:
        monkeypatch.setenv(env_var, env_value)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore

    def test_settings_are_frozen(self, settings: Settings) -> None:
        with pytest.raises(ValidationError):
            settings.max_workers = 2  # type: ignore[misc]

    def test_library_version_falls_back(self, settings: Settings) -> None:
        assert settings.library_version

    def test_apply_logging_uses_the_configured_level(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        # Arrange
        monkeypatch.setenv("VOXELPIPE_LOG_LEVEL", "WARNING")
        settings = Settings(_env_file=None)  # type: ignore
        # Act
        sink_id = settings.apply_logging()
        try:
            logger.info("routine detail")
            logger.warning("needs attention")
        finally:
            logger.remove(sink_id)
            logger.add(sys.__stderr__)
        # Assert
        stderr = capsys.readouterr().err
        assert "needs attention" in stderr
        assert "routine detail" not in stderr

    def test_log_startup_config(self, settings: Settings, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO):
            settings.log_startup_config()
        assert f"Worker threads: {settings.max_workers}" in caplog.text
        assert "Grid tolerance: 0.0001" in caplog.text


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
