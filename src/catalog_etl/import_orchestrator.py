"""catalog_etl.import_orchestrator

Two-phase legacy CSV import.

preview_import:
  parse the CSV, match every unique original song name, and list events the
  catalog does not have yet.  No writes.

execute_import:
  reconcile parsed records into the catalog inside one transaction.  Per
  record, in dependency order:

    1. event          (by name; new events attach to a series by base name)
    2. circles        (circle cell split on × / " x ")
    3. artists        (union of vocalists, arrangers, lyricists)
    4. release        (keyed by primary circle + album)
    5. track          (keyed by release + track number)
    6. credits        (artist + credit name, plus one role row per role list)
    7. song links     (operator-confirmed song_mappings only)

  Each step reuses what the ImportCache or the store already has before
  inserting.  Each record runs in its own savepoint; a failing record is
  rolled back, recorded as an ImportRowError and the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from catalog_etl.catalog_store import CatalogStore, Entity
from catalog_etl.ids import create_id
from catalog_etl.legacy_csv import LegacyRecord, ParseError, parse_legacy_csv, split_circles
from catalog_etl.normalize import (
    detect_initial,
    generate_name_info,
    generate_sort_name,
    normalize_full_width_symbols,
    parse_event_edition,
)
from catalog_etl.shared import ImportResult, ImportRowError
from catalog_etl.song_matcher import SongMatcher, SongMatchResult, unique_song_names

log = logging.getLogger(__name__)

IdFactory = Callable[[Entity], str]
ProgressFn = Callable[[str, int, int], None]

CREDIT_ROLES = ("vocalist", "arranger", "lyricist")


# ---------------------------------------------------------------------------
# ImportCache
# ---------------------------------------------------------------------------

@dataclass
class ImportCache:
    """Identities resolved during one import, keyed by natural key."""

    events: dict[str, str] = field(default_factory=dict)
    circles: dict[str, str] = field(default_factory=dict)
    artists: dict[str, str] = field(default_factory=dict)
    releases: dict[str, str] = field(default_factory=dict)   # "{primary_circle}:{album}"
    tracks: dict[str, str] = field(default_factory=dict)     # "{release_id}:{track_number}"

    def snapshot(self) -> ImportCache:
        return ImportCache(
            events=dict(self.events),
            circles=dict(self.circles),
            artists=dict(self.artists),
            releases=dict(self.releases),
            tracks=dict(self.tracks),
        )


@dataclass
class _ImportRun:
    store: CatalogStore
    cache: ImportCache
    result: ImportResult
    new_id: IdFactory
    track_fetch_limit: int


def _fold(name: str) -> str:
    return normalize_full_width_symbols(name.strip())


# ---------------------------------------------------------------------------
# Step 1: event
# ---------------------------------------------------------------------------

def _resolve_event(run: _ImportRun, event_name: str) -> str | None:
    name = event_name.strip()
    if not name:
        return None

    cached = run.cache.events.get(name)
    if cached is not None:
        run.result.events.skipped += 1
        return cached

    existing = run.store.find_one(Entity.EVENT, name=name)
    if existing is not None:
        run.cache.events[name] = existing["id"]
        run.result.events.skipped += 1
        return existing["id"]

    edition = parse_event_edition(name)
    series_id = None
    if edition.base_name:
        series = run.store.search(Entity.EVENT_SERIES, "name", edition.base_name, 1)
        if series:
            series_id = series[0]["id"]

    event_id = run.store.insert(Entity.EVENT, {
        "id": run.new_id(Entity.EVENT),
        "event_series_id": series_id,
        "name": name,
        "edition": edition.edition,
    })
    log.debug("created event %s (%r, series=%s)", event_id, name, series_id)
    run.cache.events[name] = event_id
    run.result.events.created += 1
    return event_id


# ---------------------------------------------------------------------------
# Steps 2-3: circles and artists
# ---------------------------------------------------------------------------

def _resolve_circle(run: _ImportRun, name: str) -> str:
    cached = run.cache.circles.get(name)
    if cached is not None:
        run.result.circles.skipped += 1
        return cached

    existing = run.store.find_one(Entity.CIRCLE, name=name)
    if existing is not None:
        run.cache.circles[name] = existing["id"]
        run.result.circles.skipped += 1
        return existing["id"]

    info = generate_name_info(name)
    initial = detect_initial(info.name)
    circle_id = run.store.insert(Entity.CIRCLE, {
        "id": run.new_id(Entity.CIRCLE),
        "name": info.name,
        "name_ja": info.name_ja,
        "name_en": info.name_en,
        "sort_name": generate_sort_name(info.name),
        "initial_script": initial.initial_script,
        "name_initial": initial.name_initial,
    })
    log.debug("created circle %s (%r)", circle_id, name)
    run.cache.circles[name] = circle_id
    run.result.circles.created += 1
    return circle_id


def _resolve_artist(run: _ImportRun, name: str) -> str:
    cached = run.cache.artists.get(name)
    if cached is not None:
        run.result.artists.skipped += 1
        return cached

    existing = run.store.find_one(Entity.ARTIST, name=name)
    if existing is not None:
        run.cache.artists[name] = existing["id"]
        run.result.artists.skipped += 1
        return existing["id"]

    info = generate_name_info(name)
    initial = detect_initial(info.name)
    artist_id = run.store.insert(Entity.ARTIST, {
        "id": run.new_id(Entity.ARTIST),
        "name": info.name,
        "name_ja": info.name_ja,
        "name_en": info.name_en,
        "initial_script": initial.initial_script,
        "name_initial": initial.name_initial,
    })
    log.debug("created artist %s (%r)", artist_id, name)
    run.cache.artists[name] = artist_id
    run.result.artists.created += 1
    return artist_id


def _credited_names(record: LegacyRecord) -> list[str]:
    seen: dict[str, None] = {}
    for names in (record.vocalists, record.arrangers, record.lyricists):
        for name in names:
            folded = _fold(name)
            if folded:
                seen.setdefault(folded, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Step 4: release
# ---------------------------------------------------------------------------

def _find_release(run: _ImportRun, album: str, primary_circle_id: str | None) -> str | None:
    for release in run.store.list_by(Entity.RELEASE, "name", album, run.track_fetch_limit):
        if primary_circle_id is None:
            if run.store.find_one(Entity.RELEASE_CIRCLE, release_id=release["id"]) is None:
                return release["id"]
        elif run.store.find_one(
            Entity.RELEASE_CIRCLE, release_id=release["id"], circle_id=primary_circle_id,
        ) is not None:
            return release["id"]
    return None


def _resolve_release(
    run: _ImportRun,
    album: str,
    circle_names: list[str],
    circle_ids: list[str],
) -> str:
    primary = circle_names[0] if circle_names else ""
    key = f"{primary}:{album.strip()}"

    cached = run.cache.releases.get(key)
    if cached is not None:
        run.result.releases.skipped += 1
        return cached

    info = generate_name_info(album)
    primary_id = circle_ids[0] if circle_ids else None
    existing_id = _find_release(run, info.name, primary_id)
    if existing_id is not None:
        run.cache.releases[key] = existing_id
        run.result.releases.skipped += 1
        return existing_id

    release_id = run.store.insert(Entity.RELEASE, {
        "id": run.new_id(Entity.RELEASE),
        "name": info.name,
        "name_ja": info.name_ja,
        "name_en": info.name_en,
        "release_type": "album",
    })
    for idx, circle_id in enumerate(circle_ids):
        run.store.insert(Entity.RELEASE_CIRCLE, {
            "release_id": release_id,
            "circle_id": circle_id,
            "participation_type": "host" if idx == 0 else "co-host",
            "position": idx + 1,
        })
    log.debug("created release %s (%r, circles=%d)", release_id, album, len(circle_ids))
    run.cache.releases[key] = release_id
    run.result.releases.created += 1
    return release_id


# ---------------------------------------------------------------------------
# Step 5: track
# ---------------------------------------------------------------------------

def _resolve_track(
    run: _ImportRun,
    record: LegacyRecord,
    release_id: str,
    event_id: str | None,
) -> str:
    key = f"{release_id}:{record.track_number}"

    cached = run.cache.tracks.get(key)
    if cached is not None:
        run.result.tracks.skipped += 1
        return cached

    info = generate_name_info(record.title)
    for track in run.store.list_by(Entity.TRACK, "release_id", release_id, run.track_fetch_limit):
        if track["track_number"] != record.track_number:
            continue
        if track["name"] != info.name:
            run.store.update(Entity.TRACK, track["id"], {
                "name": info.name,
                "name_ja": info.name_ja,
                "name_en": info.name_en,
            })
            run.result.tracks.updated += 1
        else:
            run.result.tracks.skipped += 1
        run.cache.tracks[key] = track["id"]
        return track["id"]

    track_id = run.store.insert(Entity.TRACK, {
        "id": run.new_id(Entity.TRACK),
        "release_id": release_id,
        "event_id": event_id,
        "track_number": record.track_number,
        "name": info.name,
        "name_ja": info.name_ja,
        "name_en": info.name_en,
    })
    log.debug("created track %s (%s #%d)", track_id, release_id, record.track_number)
    run.cache.tracks[key] = track_id
    run.result.tracks.created += 1
    return track_id


# ---------------------------------------------------------------------------
# Step 6: credits
# ---------------------------------------------------------------------------

def _upsert_credits(run: _ImportRun, record: LegacyRecord, track_id: str) -> None:
    role_lists = zip(CREDIT_ROLES, (record.vocalists, record.arrangers, record.lyricists))
    for role_code, names in role_lists:
        for position, raw_name in enumerate(names, start=1):
            credit_name = _fold(raw_name)
            artist_id = run.cache.artists.get(credit_name)
            if artist_id is None:
                continue

            existing = run.store.find_one(
                Entity.TRACK_CREDIT,
                track_id=track_id, artist_id=artist_id, credit_name=credit_name,
            )
            if existing is not None:
                credit_id = existing["id"]
                run.result.credits.skipped += 1
            else:
                credit_id = run.store.insert(Entity.TRACK_CREDIT, {
                    "id": run.new_id(Entity.TRACK_CREDIT),
                    "track_id": track_id,
                    "artist_id": artist_id,
                    "credit_name": credit_name,
                    "credit_position": position,
                })
                run.result.credits.created += 1

            role = run.store.find_one(
                Entity.TRACK_CREDIT_ROLE, track_credit_id=credit_id, role_code=role_code,
            )
            if role is None:
                run.store.insert(Entity.TRACK_CREDIT_ROLE, {
                    "track_credit_id": credit_id,
                    "role_code": role_code,
                    "role_position": position,
                })


# ---------------------------------------------------------------------------
# Step 7: official song links
# ---------------------------------------------------------------------------

def _link_official_songs(
    run: _ImportRun,
    record: LegacyRecord,
    track_id: str,
    song_mappings: dict[str, str],
    custom_song_names: dict[str, str],
) -> None:
    for idx, song_name in enumerate(record.original_songs):
        official_song_id = song_mappings.get(song_name)
        if not official_song_id:
            run.result.official_song_links.skipped += 1
            continue

        existing = run.store.find_one(
            Entity.TRACK_OFFICIAL_SONG, track_id=track_id, official_song_id=official_song_id,
        )
        if existing is not None:
            run.result.official_song_links.skipped += 1
            continue

        run.store.insert(Entity.TRACK_OFFICIAL_SONG, {
            "id": run.new_id(Entity.TRACK_OFFICIAL_SONG),
            "track_id": track_id,
            "official_song_id": official_song_id,
            "part_position": idx + 1,
            "custom_song_name": custom_song_names.get(song_name),
        })
        run.result.official_song_links.created += 1


# ---------------------------------------------------------------------------
# Per-record processing
# ---------------------------------------------------------------------------

def _process_record(
    run: _ImportRun,
    record: LegacyRecord,
    song_mappings: dict[str, str],
    custom_song_names: dict[str, str],
) -> None:
    event_id = _resolve_event(run, record.event)

    # one release_circles link per circle, first-seen order
    circle_names = list(dict.fromkeys(
        n for n in (_fold(c) for c in split_circles(record.circle)) if n
    ))
    circle_ids = [_resolve_circle(run, name) for name in circle_names]

    for name in _credited_names(record):
        _resolve_artist(run, name)

    release_id = _resolve_release(run, record.album, circle_names, circle_ids)
    track_id = _resolve_track(run, record, release_id, event_id)
    _upsert_credits(run, record, track_id)
    _link_official_songs(run, record, track_id, song_mappings, custom_song_names)


def execute_import(
    store: CatalogStore,
    records: list[LegacyRecord],
    song_mappings: dict[str, str],
    custom_song_names: dict[str, str],
    *,
    id_factory: IdFactory = create_id,
    track_fetch_limit: int = 500,
    on_progress: ProgressFn | None = None,
) -> ImportResult:
    """Reconcile records into the catalog.  Never raises.

    Row numbers in errors are record index + 2 (header is row 1).  A failure
    of the surrounding transaction adds one error with row 0 and entity
    'transaction'.
    """
    result = ImportResult()
    run = _ImportRun(
        store=store,
        cache=ImportCache(),
        result=result,
        new_id=id_factory,
        track_fetch_limit=track_fetch_limit,
    )
    total = len(records)

    try:
        with store.transaction():
            for idx, record in enumerate(records):
                cache_before = run.cache.snapshot()
                counts_before = result.snapshot_counts()
                try:
                    with store.transaction():
                        _process_record(run, record, song_mappings, custom_song_names)
                except Exception as exc:
                    run.cache = cache_before
                    result.restore_counts(counts_before)
                    row = idx + 2
                    log.warning("row %d import failed: %s", row, exc)
                    result.errors.append(ImportRowError(row=row, entity="record", message=str(exc)))
                if on_progress is not None:
                    on_progress("records", idx + 1, total)
    except Exception as exc:
        log.error("import transaction failed: %s", exc)
        result.errors.append(ImportRowError(row=0, entity="transaction", message=str(exc)))

    result.success = not result.errors
    if on_progress is not None:
        on_progress("complete", total, total)
    return result


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

@dataclass
class PreviewResult:
    success: bool
    records: list[LegacyRecord] = field(default_factory=list)
    song_matches: list[SongMatchResult] = field(default_factory=list)
    new_events_needed: list[dict[str, Any]] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "records": [r.to_dict() for r in self.records],
            "song_matches": [m.to_dict() for m in self.song_matches],
            "new_events_needed": list(self.new_events_needed),
            "errors": [{"row": e.row, "message": e.message} for e in self.errors],
        }


def _missing_events(
    records: Iterable[LegacyRecord],
    event_exists: Callable[[str], bool],
) -> list[dict[str, Any]]:
    missing: list[dict[str, Any]] = []
    seen: set[str] = set()
    for record in records:
        name = record.event.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        if event_exists(name):
            continue
        edition = parse_event_edition(name)
        missing.append({
            "name": name,
            "base_name": edition.base_name,
            "edition": edition.edition,
        })
    return missing


def preview_import(
    text: str,
    matcher: SongMatcher,
    event_exists: Callable[[str], bool],
) -> PreviewResult:
    """Parse and match without writing anything."""
    parsed = parse_legacy_csv(text)
    if not parsed.records:
        return PreviewResult(success=parsed.success, errors=list(parsed.errors))

    return PreviewResult(
        success=parsed.success,
        records=list(parsed.records),
        song_matches=matcher.match_songs(unique_song_names(parsed.records)),
        new_events_needed=_missing_events(parsed.records, event_exists),
        errors=list(parsed.errors),
    )
