"""catalog_etl.song_decisions

Operator review file for original-song matches.

The preview mode writes one row per unique original song name, pre-filled
from the matcher.  The operator fills in or corrects official_song_id for
'partial' rows, then the execute mode reads the file back into the
song_mappings / custom_song_names maps the importer consumes.

CSV format (comma-delimited, header row required):
    original_name,official_song_id,custom_song_name,match_type,candidates

Required columns: original_name, official_song_id
Optional:         custom_song_name, match_type, candidates (informational)

A blank official_song_id leaves the name unmapped; its links are skipped.
"""

from __future__ import annotations

import csv
from pathlib import Path

from catalog_etl.song_matcher import SongMatchResult

_FIELDNAMES = ["original_name", "official_song_id", "custom_song_name", "match_type", "candidates"]
_REQUIRED_COLS = frozenset({"original_name", "official_song_id"})


class DecisionsFileError(ValueError):
    """Raised when the decisions CSV is empty or malformed."""


def _format_candidates(match: SongMatchResult) -> str:
    return " | ".join(
        f"{c.id}:{c.name_ja}" + (f" ({c.official_work_name})" if c.official_work_name else "")
        for c in match.candidates
    )


def write_decisions(path: Path, matches: list[SongMatchResult]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=_FIELDNAMES)
        writer.writeheader()
        for match in matches:
            writer.writerow({
                "original_name": match.original_name,
                "official_song_id": match.selected_id or "",
                "custom_song_name": match.custom_song_name or "",
                "match_type": match.match_type,
                "candidates": _format_candidates(match),
            })
    return path


def load_decisions(path: Path | str) -> tuple[dict[str, str], dict[str, str]]:
    """Return (song_mappings, custom_song_names) keyed by original name."""
    path = Path(path)
    song_mappings: dict[str, str] = {}
    custom_song_names: dict[str, str] = {}
    seen: set[str] = set()

    with path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        if reader.fieldnames is None:
            raise DecisionsFileError(f"decisions CSV is empty or has no header: {path}")
        missing = _REQUIRED_COLS - {f.strip() for f in reader.fieldnames}
        if missing:
            raise DecisionsFileError(
                f"decisions CSV missing required columns: {sorted(missing)}"
            )

        for idx, raw_row in enumerate(reader, start=2):
            row = {k.strip(): (v or "").strip() for k, v in raw_row.items() if k}
            name = row.get("original_name", "")
            if not name:
                raise DecisionsFileError(f"row {idx}: original_name is blank")
            if name in seen:
                raise DecisionsFileError(f"row {idx}: duplicate original_name {name!r}")
            seen.add(name)
            song_id = row.get("official_song_id", "")
            if song_id:
                song_mappings[name] = song_id
            custom = row.get("custom_song_name", "")
            if custom:
                custom_song_names[name] = custom

    return song_mappings, custom_song_names
