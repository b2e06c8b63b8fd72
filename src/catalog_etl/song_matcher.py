"""catalog_etl.song_matcher

Match free-text "original song" names from the legacy CSV against the
official song catalog.

Per name, in strict precedence:
  1. blank name              → match_type 'none', nothing selected
  2. 'オリジナル'              → the canonical original record, if one exists
  3. exact search hit         → 'exact', first hit auto-selected
  4. partial search hit       → 'partial', operator must choose
  5. nothing                  → 'none', linked to the "other" sentinel song
                                with the name kept as custom_song_name

The lookups are injected so the matcher itself holds no DB state.

Usage:
    matcher = SongMatcher(lookup.exact_search, lookup.partial_search,
                          lookup.find_original, candidate_limit=10)
    results = matcher.match_songs(["少女綺想曲", "オリジナル"])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from catalog_etl.legacy_csv import LegacyRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ORIGINAL_SONG_NAME = "オリジナル"

# Catch-all official song for names with no catalog match.
OTHER_SONG_ID = "07999999"

DEFAULT_CANDIDATE_LIMIT = 10

MATCH_EXACT = "exact"
MATCH_PARTIAL = "partial"
MATCH_NONE = "none"


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OfficialSongData:
    id: str
    name: str
    name_ja: str
    is_original: bool = False
    official_work_name: str | None = None


@dataclass(frozen=True)
class SongCandidate:
    id: str
    name: str
    name_ja: str
    official_work_name: str | None
    match_type: str

    @classmethod
    def from_song(cls, song: OfficialSongData, match_type: str) -> SongCandidate:
        return cls(
            id=song.id,
            name=song.name,
            name_ja=song.name_ja,
            official_work_name=song.official_work_name,
            match_type=match_type,
        )


@dataclass
class SongMatchResult:
    original_name: str
    is_original: bool
    match_type: str
    candidates: list[SongCandidate] = field(default_factory=list)
    auto_matched: bool = False
    selected_id: str | None = None
    custom_song_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_name": self.original_name,
            "is_original": self.is_original,
            "match_type": self.match_type,
            "candidates": [
                {
                    "id": c.id,
                    "name": c.name,
                    "name_ja": c.name_ja,
                    "official_work_name": c.official_work_name,
                    "match_type": c.match_type,
                }
                for c in self.candidates
            ],
            "auto_matched": self.auto_matched,
            "selected_id": self.selected_id,
            "custom_song_name": self.custom_song_name,
        }


ExactSearchFn = Callable[[str], list[OfficialSongData]]
PartialSearchFn = Callable[[str, int], list[OfficialSongData]]
FindOriginalFn = Callable[[], "OfficialSongData | None"]


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------

_UNSET = object()


class SongMatcher:
    """Tiered exact → partial → sentinel matcher over injected lookups."""

    def __init__(
        self,
        exact_search: ExactSearchFn,
        partial_search: PartialSearchFn,
        find_original: FindOriginalFn,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        other_song_id: str = OTHER_SONG_ID,
    ) -> None:
        self._exact_search = exact_search
        self._partial_search = partial_search
        self._find_original = find_original
        self.candidate_limit = candidate_limit
        self.other_song_id = other_song_id
        self._original: Any = _UNSET

    def _canonical_original(self) -> OfficialSongData | None:
        # Looked up once per matcher, a missing record included.
        if self._original is _UNSET:
            self._original = self._find_original()
        return self._original

    def match_songs(self, names: Iterable[str]) -> list[SongMatchResult]:
        return [self.match_song(name) for name in names]

    def match_song(self, name: str) -> SongMatchResult:
        if not name or not name.strip():
            return SongMatchResult(
                original_name=name,
                is_original=False,
                match_type=MATCH_NONE,
            )

        trimmed = name.strip()

        if trimmed == ORIGINAL_SONG_NAME:
            original = self._canonical_original()
            if original is not None:
                return SongMatchResult(
                    original_name=trimmed,
                    is_original=True,
                    match_type=MATCH_EXACT,
                    candidates=[SongCandidate.from_song(original, MATCH_EXACT)],
                    auto_matched=True,
                    selected_id=original.id,
                )

        exact = self._exact_search(trimmed)
        if exact:
            return SongMatchResult(
                original_name=trimmed,
                is_original=False,
                match_type=MATCH_EXACT,
                candidates=[SongCandidate.from_song(s, MATCH_EXACT) for s in exact],
                auto_matched=True,
                selected_id=exact[0].id,
            )

        partial = self._partial_search(trimmed, self.candidate_limit)
        if partial:
            return SongMatchResult(
                original_name=trimmed,
                is_original=False,
                match_type=MATCH_PARTIAL,
                candidates=[SongCandidate.from_song(s, MATCH_PARTIAL) for s in partial],
                auto_matched=False,
                selected_id=None,
            )

        return SongMatchResult(
            original_name=trimmed,
            is_original=False,
            match_type=MATCH_NONE,
            auto_matched=True,
            selected_id=self.other_song_id,
            custom_song_name=trimmed,
        )


def unique_song_names(records: Iterable[LegacyRecord]) -> list[str]:
    """Distinct non-blank original song names, in first-seen order."""
    seen: dict[str, None] = {}
    for record in records:
        for name in record.original_songs:
            if name.strip():
                seen.setdefault(name, None)
    return list(seen)
