"""catalog_etl.import_legacy_csv

CLI entrypoint for the legacy CSV import.

Modes (--mode):
  preview  : parse the CSV, match original song names, list missing events,
             and write a decisions CSV for operator review (no writes)
  execute  : re-parse the CSV, load the reviewed decisions CSV, and
             reconcile every record into the catalog in one transaction

Usage (preview):
    python -m catalog_etl.import_legacy_csv \\
        --mode preview \\
        --db-dsn "$DB_DSN" \\
        --csv-path "legacy/export.csv" \\
        --decisions-path "artifacts/decisions/song_decisions.csv"

Usage (execute):
    python -m catalog_etl.import_legacy_csv \\
        --mode execute \\
        --db-dsn "$DB_DSN" \\
        --csv-path "legacy/export.csv" \\
        --decisions-path "artifacts/decisions/song_decisions.csv" \\
        --dry-run
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path

import click
import psycopg

from catalog_etl.catalog_store import DbSongLookup, Entity, PsycopgCatalogStore
from catalog_etl.import_orchestrator import execute_import, preview_import
from catalog_etl.import_settings import ImportSettings, SettingsValidationError, load_settings
from catalog_etl.legacy_csv import ParseResult, parse_legacy_csv
from catalog_etl.shared import ParseErrorWriter, build_import_report, write_run_report
from catalog_etl.song_decisions import DecisionsFileError, load_decisions, write_decisions
from catalog_etl.song_matcher import SongMatcher


def _read_csv_text(csv_path: Path, run_id: str) -> str:
    if not csv_path.exists():
        click.echo(f"[{run_id}] ERROR: CSV file not found: {csv_path}", err=True)
        sys.exit(1)
    return csv_path.read_text(encoding="utf-8-sig")


def _write_parse_errors(parsed: ParseResult, rejects_path: str, run_id: str) -> None:
    if not parsed.errors:
        return
    writer = ParseErrorWriter(Path(rejects_path))
    try:
        for error in parsed.errors:
            writer.write(error)
    finally:
        writer.close()
    click.echo(
        f"[{run_id}] {len(parsed.errors)} parse error(s) written to {rejects_path}",
        err=True,
    )


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

def _run_preview(
    conn: psycopg.Connection,
    text: str,
    settings: ImportSettings,
    decisions_path: Path,
    rejects_path: str,
    run_id: str,
) -> dict:
    lookup = DbSongLookup(conn)
    store = PsycopgCatalogStore(conn)
    matcher = SongMatcher(
        lookup.exact_search,
        lookup.partial_search,
        lookup.find_original,
        candidate_limit=settings.candidate_limit,
        other_song_id=settings.other_song_id,
    )
    preview = preview_import(
        text, matcher, lambda name: store.find_one(Entity.EVENT, name=name) is not None,
    )
    _write_parse_errors(
        ParseResult(success=preview.success, records=preview.records, errors=preview.errors),
        rejects_path, run_id,
    )

    match_types = Counter(m.match_type for m in preview.song_matches)
    click.echo(
        f"[{run_id}] Parsed {len(preview.records)} record(s), "
        f"{len(preview.song_matches)} unique original song name(s): "
        f"exact={match_types['exact']} partial={match_types['partial']} "
        f"none={match_types['none']}"
    )
    for event in preview.new_events_needed:
        click.echo(
            f"[{run_id}] New event: {event['name']} "
            f"(series={event['base_name']!r}, edition={event['edition']})"
        )

    if preview.records:
        write_decisions(decisions_path, preview.song_matches)
        click.echo(f"[{run_id}] Decisions CSV: {decisions_path}")
        if match_types["partial"]:
            click.echo(
                f"[{run_id}] {match_types['partial']} partial match(es) need an "
                f"official_song_id before execute."
            )

    return {
        "records": len(preview.records),
        "parse_errors": len(preview.errors),
        "song_matches": dict(match_types),
        "new_events_needed": preview.new_events_needed,
    }


# ---------------------------------------------------------------------------
# Execute
# ---------------------------------------------------------------------------

def _run_execute(
    conn: psycopg.Connection,
    parsed: ParseResult,
    settings: ImportSettings,
    song_mappings: dict[str, str],
    custom_song_names: dict[str, str],
    dry_run: bool,
    run_id: str,
) -> dict:
    store = PsycopgCatalogStore(conn)

    def progress(stage: str, current: int, total: int) -> None:
        if stage == "records" and current % 500 == 0:
            click.echo(f"[{run_id}] {current}/{total} records processed")

    if dry_run:
        with conn.transaction() as tx:
            result = execute_import(
                store, parsed.records, song_mappings, custom_song_names,
                track_fetch_limit=settings.track_fetch_limit, on_progress=progress,
            )
            raise psycopg.Rollback(tx)
    else:
        result = execute_import(
            store, parsed.records, song_mappings, custom_song_names,
            track_fetch_limit=settings.track_fetch_limit, on_progress=progress,
        )

    click.echo(build_import_report(result, dry_run=dry_run))
    if dry_run:
        click.echo(f"[{run_id}] DRY RUN: rolled back.")

    summary = result.to_dict()
    summary["parse_errors"] = len(parsed.errors)
    return summary


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="preview",
    type=click.Choice(["preview", "execute"]),
    show_default=True,
    help="Import phase",
)
@click.option("--db-dsn", required=True, envvar="DB_DSN", help="PostgreSQL DSN")
@click.option("--csv-path", required=True, type=click.Path(), help="Legacy CSV export")
@click.option(
    "--decisions-path",
    default=None,
    type=click.Path(),
    help="Song decisions CSV (written by preview, read by execute)",
)
@click.option(
    "--settings-file",
    default=None,
    type=click.Path(),
    help="YAML settings (defaults apply when omitted)",
)
@click.option(
    "--rejects-path",
    default="artifacts/rejects/legacy_csv_parse_errors.csv",
    show_default=True,
    type=click.Path(),
)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--verbose", is_flag=True, default=False, help="Log per-entity detail")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def main(
    mode: str,
    db_dsn: str,
    csv_path: str,
    decisions_path: str | None,
    settings_file: str | None,
    rejects_path: str,
    dry_run: bool,
    verbose: bool,
    run_id: str | None,
) -> None:
    """Legacy CSV import CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    try:
        settings = load_settings(Path(settings_file) if settings_file else None)
    except (SettingsValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] ERROR: invalid settings file: {exc}", err=True)
        sys.exit(1)

    text = _read_csv_text(Path(csv_path), run_id)

    if mode == "preview":
        decisions = Path(decisions_path) if decisions_path else (
            Path("artifacts/decisions") / f"{run_id}_song_decisions.csv"
        )
        conn = psycopg.connect(db_dsn, autocommit=False)
        try:
            summary = _run_preview(conn, text, settings, decisions, rejects_path, run_id)
            conn.rollback()
        finally:
            conn.close()
        source_paths = {"csv_path": csv_path, "decisions_path": str(decisions)}
        success = summary["records"] > 0
    else:
        if not decisions_path:
            click.echo(f"[{run_id}] ERROR: --decisions-path is required for execute", err=True)
            sys.exit(1)
        parsed = parse_legacy_csv(text)
        _write_parse_errors(parsed, rejects_path, run_id)
        if not parsed.records:
            click.echo(f"[{run_id}] FATAL: no importable records", err=True)
            sys.exit(1)
        try:
            song_mappings, custom_song_names = load_decisions(decisions_path)
        except (DecisionsFileError, FileNotFoundError) as exc:
            click.echo(f"[{run_id}] ERROR: {exc}", err=True)
            sys.exit(1)

        conn = psycopg.connect(db_dsn, autocommit=False)
        try:
            summary = _run_execute(
                conn, parsed, settings, song_mappings, custom_song_names, dry_run, run_id,
            )
        finally:
            conn.close()
        source_paths = {"csv_path": csv_path, "decisions_path": decisions_path}
        success = summary["success"]

    report_path = write_run_report(run_id, started_at, mode, dry_run, source_paths, summary)
    click.echo(f"[{run_id}] Run report: {report_path}")

    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
