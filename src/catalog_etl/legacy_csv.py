"""catalog_etl.legacy_csv

Parser for the CSV export of the legacy cataloging tool.

The export is not RFC 4180 clean:
  - the header row is re-inserted at arbitrary points in the body
  - vocalists, arrangers, lyricists and original_songs hold several values
    joined by ':'
  - the circle column joins collaborating circles with '×' or ' x '

Structural problems (no data rows, missing required columns) fail the whole
parse.  A bad track_number only rejects its own row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_COLUMNS = (
    "circle",
    "album",
    "title",
    "track_number",
    "event",
    "vocalists",
    "arrangers",
    "lyricists",
    "original_songs",
)

_CIRCLE_SEPARATOR = re.compile(r"×| x ")
_LEADING_INT = re.compile(r"^[+-]?[0-9]+")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegacyRecord:
    circle: str
    album: str
    title: str
    track_number: int
    event: str
    vocalists: tuple[str, ...] = ()
    arrangers: tuple[str, ...] = ()
    lyricists: tuple[str, ...] = ()
    original_songs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "circle": self.circle,
            "album": self.album,
            "title": self.title,
            "track_number": self.track_number,
            "event": self.event,
            "vocalists": list(self.vocalists),
            "arrangers": list(self.arrangers),
            "lyricists": list(self.lyricists),
            "original_songs": list(self.original_songs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LegacyRecord:
        return cls(
            circle=data["circle"],
            album=data["album"],
            title=data["title"],
            track_number=int(data["track_number"]),
            event=data["event"],
            vocalists=tuple(data.get("vocalists") or ()),
            arrangers=tuple(data.get("arrangers") or ()),
            lyricists=tuple(data.get("lyricists") or ()),
            original_songs=tuple(data.get("original_songs") or ()),
        )


@dataclass(frozen=True)
class ParseError:
    row: int
    message: str


@dataclass
class ParseResult:
    success: bool
    records: list[LegacyRecord] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Multi-value splitting
# ---------------------------------------------------------------------------

def split_colon_values(value: str | None) -> list[str]:
    """Split a ':'-joined cell; blank input gives an empty list."""
    if not value or not value.strip():
        return []
    return [v.strip() for v in value.split(":") if v.strip()]


def split_circles(value: str | None) -> list[str]:
    """Split a collaborative circle cell on '×' or a space-delimited 'x'.

    A bare 'x' inside a name ("Xenon", "fox") is never a separator.
    """
    if not value or not value.strip():
        return []
    return [v.strip() for v in _CIRCLE_SEPARATOR.split(value) if v.strip()]


# ---------------------------------------------------------------------------
# Line-level parsing
# ---------------------------------------------------------------------------

def parse_csv_line(line: str) -> list[str]:
    """Split one line on commas, honouring double-quoted fields.

    Inside quotes a doubled quote is a literal '"'.  Fields are trimmed.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if in_quotes:
            if ch == '"' and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            elif ch == '"':
                in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def _is_repeated_header(values: list[str], headers: list[str]) -> bool:
    if values == headers:
        return True
    return bool(values) and values[0] == "circle" and "track_number" in values


def _parse_int(value: str) -> int | None:
    m = _LEADING_INT.match(value.strip())
    return int(m.group(0)) if m else None


def _parse_row(
    values: list[str],
    headers: list[str],
    row_number: int,
) -> tuple[LegacyRecord | None, ParseError | None]:
    row: dict[str, str] = {}
    for idx, header in enumerate(headers):
        if header:
            row[header] = values[idx] if idx < len(values) else ""

    raw_track = row.get("track_number", "")
    track_number = _parse_int(raw_track)
    if track_number is None:
        return None, ParseError(
            row=row_number,
            message=f"track_number is not an integer: {raw_track!r}",
        )

    record = LegacyRecord(
        circle=row.get("circle", ""),
        album=row.get("album", ""),
        title=row.get("title", ""),
        track_number=track_number,
        event=row.get("event", ""),
        vocalists=tuple(split_colon_values(row.get("vocalists"))),
        arrangers=tuple(split_colon_values(row.get("arrangers"))),
        lyricists=tuple(split_colon_values(row.get("lyricists"))),
        original_songs=tuple(split_colon_values(row.get("original_songs"))),
    )
    return record, None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_legacy_csv(text: str) -> ParseResult:
    """Parse legacy CSV text into records plus row-level errors.

    Row numbers are 1-based with the header on row 1.  Structural failures
    return success=False and no records; row failures return the surviving
    records alongside the errors.
    """
    lines = [line.rstrip("\r") for line in text.strip().split("\n")]
    if len(lines) < 2:
        return ParseResult(
            success=False,
            errors=[ParseError(row=0, message="no data rows")],
        )

    headers = [h.strip() for h in lines[0].lstrip("\ufeff").split(",")]
    missing = [col for col in REQUIRED_COLUMNS if col not in headers]
    if missing:
        return ParseResult(
            success=False,
            errors=[ParseError(
                row=1,
                message=f"missing required columns: {', '.join(missing)}",
            )],
        )

    records: list[LegacyRecord] = []
    errors: list[ParseError] = []

    for idx, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        values = parse_csv_line(line)
        if _is_repeated_header(values, headers):
            continue
        record, error = _parse_row(values, headers, idx)
        if error is not None:
            errors.append(error)
        elif record is not None:
            records.append(record)

    return ParseResult(success=not errors, records=records, errors=errors)
