"""catalog_etl.catalog_store

Store interface consumed by the import orchestrator, and its PostgreSQL
implementation.

The orchestrator only ever needs:
  - point lookup by natural key            find_one(entity, **where)
  - bounded listing of child rows          list_by(entity, column, value, limit)
  - bounded substring search               search(entity, column, fragment, limit)
  - insert with a caller-generated id      insert(entity, values)
  - update by id                           update(entity, row_id, values)
  - a transactional scope                  transaction()

transaction() is re-entrant: the outermost call owns the commit, nested
calls are savepoints that roll back on their own.

Column names are checked against a per-entity whitelist before they reach
SQL; values are always bound parameters.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from catalog_etl.song_matcher import ORIGINAL_SONG_NAME, OfficialSongData

Row = dict[str, Any]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UnknownColumnError(ValueError):
    """Raised when a column is not part of an entity's whitelist."""


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntitySpec:
    table: str
    columns: frozenset[str]
    has_id: bool = True

    @property
    def order_column(self) -> str:
        return "id" if self.has_id else sorted(self.columns)[0]


class Entity(Enum):
    EVENT_SERIES = "event_series"
    EVENT = "event"
    CIRCLE = "circle"
    ARTIST = "artist"
    RELEASE = "release"
    RELEASE_CIRCLE = "release_circle"
    TRACK = "track"
    TRACK_CREDIT = "track_credit"
    TRACK_CREDIT_ROLE = "track_credit_role"
    TRACK_OFFICIAL_SONG = "track_official_song"

    @property
    def spec(self) -> EntitySpec:
        return _ENTITY_SPECS[self]


_NAMED_COLUMNS = frozenset({
    "id", "name", "name_ja", "name_en", "sort_name", "name_initial", "initial_script",
})

_ENTITY_SPECS: dict[Entity, EntitySpec] = {
    Entity.EVENT_SERIES: EntitySpec(
        "event_series", frozenset({"id", "name", "sort_order"}),
    ),
    Entity.EVENT: EntitySpec(
        "events", frozenset({"id", "event_series_id", "name", "edition"}),
    ),
    Entity.CIRCLE: EntitySpec("circles", _NAMED_COLUMNS),
    Entity.ARTIST: EntitySpec("artists", _NAMED_COLUMNS),
    Entity.RELEASE: EntitySpec(
        "releases", frozenset({"id", "name", "name_ja", "name_en", "release_type"}),
    ),
    Entity.RELEASE_CIRCLE: EntitySpec(
        "release_circles",
        frozenset({"release_id", "circle_id", "participation_type", "position"}),
        has_id=False,
    ),
    Entity.TRACK: EntitySpec(
        "tracks",
        frozenset({"id", "release_id", "event_id", "track_number", "name", "name_ja", "name_en"}),
    ),
    Entity.TRACK_CREDIT: EntitySpec(
        "track_credits",
        frozenset({"id", "track_id", "artist_id", "credit_name", "credit_position"}),
    ),
    Entity.TRACK_CREDIT_ROLE: EntitySpec(
        "track_credit_roles",
        frozenset({"track_credit_id", "role_code", "role_position"}),
        has_id=False,
    ),
    Entity.TRACK_OFFICIAL_SONG: EntitySpec(
        "track_official_songs",
        frozenset({"id", "track_id", "official_song_id", "part_position", "custom_song_name"}),
    ),
}


def check_columns(entity: Entity, columns: Any) -> None:
    unknown = set(columns) - entity.spec.columns
    if unknown:
        raise UnknownColumnError(
            f"unknown column(s) for {entity.value}: {sorted(unknown)}"
        )


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class CatalogStore(Protocol):
    def find_one(self, entity: Entity, **where: Any) -> Row | None:
        """Return the lowest-ordered row matching every equality, or None."""
        ...

    def list_by(self, entity: Entity, column: str, value: Any, limit: int) -> list[Row]:
        ...

    def search(self, entity: Entity, column: str, fragment: str, limit: int) -> list[Row]:
        """Rows whose column contains fragment as a substring."""
        ...

    def insert(self, entity: Entity, values: dict[str, Any]) -> str | None:
        """Insert one row; return its id (None for link tables)."""
        ...

    def update(self, entity: Entity, row_id: str, values: dict[str, Any]) -> None:
        ...

    def transaction(self) -> AbstractContextManager[Any]:
        ...


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------

def _escape_like(fragment: str) -> str:
    return fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PsycopgCatalogStore:
    """CatalogStore over an open psycopg connection.  Caller owns the connection."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def _select(self, entity: Entity, where: sql.Composable, params: list[Any], limit: int) -> list[Row]:
        spec = entity.spec
        query = sql.SQL("SELECT * FROM {table} WHERE {where} ORDER BY {order} LIMIT %s").format(
            table=sql.Identifier(spec.table),
            where=where,
            order=sql.Identifier(spec.order_column),
        )
        with self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, [*params, limit])
            return cur.fetchall()

    def find_one(self, entity: Entity, **where: Any) -> Row | None:
        if not where:
            raise ValueError("find_one requires at least one condition")
        check_columns(entity, where)
        cond = sql.SQL(" AND ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in where
        )
        rows = self._select(entity, cond, list(where.values()), 1)
        return rows[0] if rows else None

    def list_by(self, entity: Entity, column: str, value: Any, limit: int) -> list[Row]:
        check_columns(entity, [column])
        cond = sql.SQL("{} = %s").format(sql.Identifier(column))
        return self._select(entity, cond, [value], limit)

    def search(self, entity: Entity, column: str, fragment: str, limit: int) -> list[Row]:
        check_columns(entity, [column])
        cond = sql.SQL("{} LIKE %s").format(sql.Identifier(column))
        return self._select(entity, cond, [f"%{_escape_like(fragment)}%"], limit)

    def insert(self, entity: Entity, values: dict[str, Any]) -> str | None:
        check_columns(entity, values)
        spec = entity.spec
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals})").format(
            table=sql.Identifier(spec.table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in values),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in values),
        )
        if spec.has_id:
            query = query + sql.SQL(" RETURNING id")
            row = self._conn.execute(query, list(values.values())).fetchone()
            return str(row[0])
        self._conn.execute(query, list(values.values()))
        return None

    def update(self, entity: Entity, row_id: str, values: dict[str, Any]) -> None:
        spec = entity.spec
        if not spec.has_id:
            raise ValueError(f"{entity.value} rows have no id to update by")
        check_columns(entity, values)
        query = sql.SQL("UPDATE {table} SET {assignments}, updated_at = now() WHERE id = %s").format(
            table=sql.Identifier(spec.table),
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(c)) for c in values
            ),
        )
        self._conn.execute(query, [*values.values(), row_id])

    def transaction(self) -> psycopg.Transaction:
        return self._conn.transaction()


# ---------------------------------------------------------------------------
# Official song lookups for the song matcher
# ---------------------------------------------------------------------------

_SONG_SELECT = """
    SELECT s.id, s.name, s.name_ja, s.is_original, w.name AS official_work_name
    FROM official_songs s
    LEFT JOIN official_works w ON w.id = s.official_work_id
"""


def _song_from_row(row: tuple) -> OfficialSongData:
    return OfficialSongData(
        id=str(row[0]),
        name=row[1],
        name_ja=row[2],
        is_original=bool(row[3]),
        official_work_name=row[4],
    )


class DbSongLookup:
    """Exact, partial and canonical-original lookups against official_songs.

    Results are ordered by ascending id so "first exact match" is stable.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def exact_search(self, name: str) -> list[OfficialSongData]:
        rows = self._conn.execute(
            _SONG_SELECT + " WHERE s.name = %s OR s.name_ja = %s ORDER BY s.id ASC",
            (name, name),
        ).fetchall()
        return [_song_from_row(r) for r in rows]

    def partial_search(self, name: str, limit: int) -> list[OfficialSongData]:
        pattern = f"%{_escape_like(name)}%"
        rows = self._conn.execute(
            _SONG_SELECT
            + " WHERE s.name ILIKE %s OR s.name_ja ILIKE %s ORDER BY s.id ASC LIMIT %s",
            (pattern, pattern, limit),
        ).fetchall()
        return [_song_from_row(r) for r in rows]

    def find_original(self) -> OfficialSongData | None:
        row = self._conn.execute(
            _SONG_SELECT + " WHERE s.name = %s ORDER BY s.id ASC LIMIT 1",
            (ORIGINAL_SONG_NAME,),
        ).fetchone()
        return _song_from_row(row) if row else None
