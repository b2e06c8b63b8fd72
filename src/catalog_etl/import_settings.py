"""catalog_etl.import_settings

YAML settings for the legacy import (config/legacy_import.yml).

    candidate_limit: 10          # max partial-match candidates per song name
    other_song_id: "07999999"    # catch-all official song for unmatched names
    track_fetch_limit: 500       # bound on tracks fetched per release

Every key is optional; unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from catalog_etl.song_matcher import DEFAULT_CANDIDATE_LIMIT, OTHER_SONG_ID

DEFAULT_TRACK_FETCH_LIMIT = 500

_INT_KEYS = ("candidate_limit", "track_fetch_limit")
_KNOWN_KEYS = frozenset({"candidate_limit", "other_song_id", "track_fetch_limit"})


class SettingsValidationError(ValueError):
    """Raised when the settings YAML fails validation."""


@dataclass(frozen=True)
class ImportSettings:
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT
    other_song_id: str = OTHER_SONG_ID
    track_fetch_limit: int = DEFAULT_TRACK_FETCH_LIMIT


def validate_settings(data: Any) -> None:
    """Raise SettingsValidationError if data does not match the settings schema."""
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise SettingsValidationError(f"Unknown settings keys: {sorted(unknown)}")

    for key in _INT_KEYS:
        if key not in data:
            continue
        val = data[key]
        if isinstance(val, bool) or not isinstance(val, int):
            raise SettingsValidationError(f"'{key}' value {val!r} is not an integer.")
        if val < 1:
            raise SettingsValidationError(f"'{key}' value {val} must be >= 1.")

    if "other_song_id" in data:
        other = data["other_song_id"]
        if other is None or not str(other).strip():
            raise SettingsValidationError("'other_song_id' must not be empty.")


def load_settings(yaml_path: Path | None) -> ImportSettings:
    """Load settings from YAML, or defaults when yaml_path is None.

    Raises:
        SettingsValidationError: If the file content is invalid.
        FileNotFoundError: If yaml_path does not exist.
    """
    if yaml_path is None:
        return ImportSettings()
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    validate_settings(data)
    return ImportSettings(
        candidate_limit=int(data.get("candidate_limit", DEFAULT_CANDIDATE_LIMIT)),
        other_song_id=str(data.get("other_song_id", OTHER_SONG_ID)).strip(),
        track_fetch_limit=int(data.get("track_fetch_limit", DEFAULT_TRACK_FETCH_LIMIT)),
    )
