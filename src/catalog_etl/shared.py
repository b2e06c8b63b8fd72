"""catalog_etl.shared

Result types and reporting shared by the preview and execute modes.
Includes ImportResult with its per-entity counters, the parse-error CSV
writer, and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from catalog_etl.legacy_csv import ParseError

ENTITY_CATEGORIES = (
    "events",
    "circles",
    "artists",
    "releases",
    "tracks",
    "credits",
    "official_song_links",
)


# ---------------------------------------------------------------------------
# ParseErrorWriter
# ---------------------------------------------------------------------------

class ParseErrorWriter:
    """Lazy-open CSV writer for rows the parser rejected."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, error: ParseError) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._fh, fieldnames=["row", "message"])
            self._writer.writeheader()
        self._writer.writerow({"row": error.row, "message": error.message})
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# ImportResult
# ---------------------------------------------------------------------------

@dataclass
class EntityCount:
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"created": self.created, "updated": self.updated, "skipped": self.skipped}


@dataclass(frozen=True)
class ImportRowError:
    """One failed record (entity='record') or the whole batch (row=0, entity='transaction')."""

    row: int
    entity: str
    message: str


@dataclass
class ImportResult:
    success: bool = True
    events: EntityCount = field(default_factory=EntityCount)
    circles: EntityCount = field(default_factory=EntityCount)
    artists: EntityCount = field(default_factory=EntityCount)
    releases: EntityCount = field(default_factory=EntityCount)
    tracks: EntityCount = field(default_factory=EntityCount)
    credits: EntityCount = field(default_factory=EntityCount)
    official_song_links: EntityCount = field(default_factory=EntityCount)
    errors: list[ImportRowError] = field(default_factory=list)

    def counts(self) -> dict[str, EntityCount]:
        return {name: getattr(self, name) for name in ENTITY_CATEGORIES}

    def snapshot_counts(self) -> dict[str, EntityCount]:
        return {name: replace(count) for name, count in self.counts().items()}

    def restore_counts(self, snapshot: dict[str, EntityCount]) -> None:
        for name, count in snapshot.items():
            setattr(self, name, replace(count))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            **{name: count.to_dict() for name, count in self.counts().items()},
            "errors": [
                {"row": e.row, "entity": e.entity, "message": e.message}
                for e in self.errors
            ],
        }


# ---------------------------------------------------------------------------
# Report text
# ---------------------------------------------------------------------------

def build_import_report(result: ImportResult, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Legacy CSV Import Report",
        f"  dry_run: {dry_run}",
        f"  success: {result.success}",
        "=" * 60,
        f"  {'entity':<22}{'created':>10}{'updated':>10}{'skipped':>10}",
    ]
    for name, count in result.counts().items():
        lines.append(
            f"  {name:<22}{count.created:>10}{count.updated:>10}{count.skipped:>10}"
        )
    if result.errors:
        lines.append(f"\nErrors ({len(result.errors)}):")
        for e in result.errors[:20]:
            lines.append(f"  row {e.row} [{e.entity}] {e.message}")
        if len(result.errors) > 20:
            lines.append(f"  ... and {len(result.errors) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    summary: dict[str, Any],
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "summary": summary,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(
        json.dumps(report, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    return report_path
