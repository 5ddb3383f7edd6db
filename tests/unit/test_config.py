"""Unit tests for configuration defaults and validation."""

from __future__ import annotations

import platformdirs
import pytest
from pydantic import ValidationError

from afont.config import (
    _DEFAULT_DATA_DIR,
    _DEFAULT_DB_PATH,
    ApiSettings,
    IndexSettings,
    Settings,
)


class TestPlatformDefaults:
    """Verify config defaults use platformdirs instead of hardcoded Unix paths."""

    def test_default_data_dir_matches_platformdirs(self) -> None:
        assert platformdirs.user_data_dir("afont") == _DEFAULT_DATA_DIR

    def test_default_db_path_under_data_dir(self) -> None:
        assert _DEFAULT_DB_PATH.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_DB_PATH.endswith("fonts.sqlite3")

    def test_index_settings_uses_platform_default(self) -> None:
        assert IndexSettings().db_path == _DEFAULT_DB_PATH


class TestDefaults:
    def test_api_defaults(self) -> None:
        api = ApiSettings()
        assert api.timeout_seconds == 25.0
        assert api.max_retries == 2
        assert api.has_token is False

    def test_index_defaults(self) -> None:
        index = IndexSettings()
        assert index.stale_after_hours == 168
        assert index.page_size == 500
        assert index.max_pages == 40
        assert index.concurrency == 4

    def test_blank_token_is_not_a_token(self) -> None:
        assert ApiSettings(token="   ").has_token is False


class TestEnvironment:
    def test_nested_env_var_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AFONT__INDEX__STALE_AFTER_HOURS", "12")
        monkeypatch.setenv("AFONT__API__TOKEN", "from-env")
        settings = Settings()
        assert settings.index.stale_after_hours == 12
        assert settings.api.token == "from-env"

    def test_constructor_beats_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AFONT__API__TOKEN", "from-env")
        settings = Settings(api={"token": "explicit"})
        assert settings.api.token == "explicit"


class TestConfigValidation:
    def test_wrong_type_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            Settings(index={"max_pages": "not-a-number"})  # type: ignore[arg-type]

    def test_out_of_range_retry_budget_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ApiSettings(max_retries=9)

    def test_unknown_top_level_field_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            Settings(completely_unknown_field="oops")  # type: ignore[call-arg]

    def test_unknown_nested_field_raises_validation_error(self) -> None:
        """A typo like 'db_paht' is caught rather than silently ignored."""
        with pytest.raises(ValidationError):
            IndexSettings(db_paht="/intended/path/fonts.sqlite3")  # type: ignore[call-arg]

    def test_settings_are_frozen(self) -> None:
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.index = IndexSettings()  # type: ignore[misc]
