"""Unit tests for catalog_etl.import_settings."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from catalog_etl.import_settings import (
    DEFAULT_TRACK_FETCH_LIMIT,
    ImportSettings,
    SettingsValidationError,
    load_settings,
    validate_settings,
)
from catalog_etl.song_matcher import DEFAULT_CANDIDATE_LIMIT, OTHER_SONG_ID

PROJECT_ROOT = Path(__file__).parent.parent.parent


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "legacy_import.yml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLoadSettings:
    def test_none_gives_defaults(self):
        settings = load_settings(None)
        assert settings == ImportSettings()
        assert settings.candidate_limit == DEFAULT_CANDIDATE_LIMIT
        assert settings.other_song_id == OTHER_SONG_ID
        assert settings.track_fetch_limit == DEFAULT_TRACK_FETCH_LIMIT

    def test_bundled_config_loads(self):
        settings = load_settings(PROJECT_ROOT / "config" / "legacy_import.yml")
        assert settings == ImportSettings(candidate_limit=10, other_song_id="07999999", track_fetch_limit=500)

    def test_partial_file_keeps_other_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, "candidate_limit: 3\n"))
        assert settings.candidate_limit == 3
        assert settings.track_fetch_limit == DEFAULT_TRACK_FETCH_LIMIT

    def test_empty_file_gives_defaults(self, tmp_path):
        assert load_settings(_write(tmp_path, "")) == ImportSettings()

    def test_numeric_other_song_id_kept_as_string(self, tmp_path):
        settings = load_settings(_write(tmp_path, "other_song_id: 7999999\n"))
        assert settings.other_song_id == "7999999"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yml")


class TestValidateSettings:
    def test_root_must_be_mapping(self):
        with pytest.raises(SettingsValidationError, match="mapping"):
            validate_settings(["candidate_limit"])

    def test_unknown_key_rejected(self):
        with pytest.raises(SettingsValidationError, match="Unknown settings keys"):
            validate_settings({"candidate_limt": 5})

    @pytest.mark.parametrize("value", ["10", 1.5, True, None])
    def test_non_integer_limit_rejected(self, value):
        with pytest.raises(SettingsValidationError, match="not an integer"):
            validate_settings({"candidate_limit": value})

    def test_zero_limit_rejected(self):
        with pytest.raises(SettingsValidationError, match=">= 1"):
            validate_settings({"track_fetch_limit": 0})

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_other_song_id_rejected(self, value):
        with pytest.raises(SettingsValidationError, match="other_song_id"):
            validate_settings({"other_song_id": value})

    def test_valid(self):
        validate_settings({"candidate_limit": 5, "other_song_id": "x", "track_fetch_limit": 20})

    def test_error_is_value_error(self, tmp_path):
        with pytest.raises(ValueError):
            load_settings(_write(tmp_path, "candidate_limit: -1\n"))
