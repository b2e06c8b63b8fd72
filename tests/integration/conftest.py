"""Integration test fixtures.

Applies the catalog migrations against an ephemeral PostgreSQL database
provided by pytest-postgresql before each integration test.  Collection is
skipped when no PostgreSQL server binaries are installed.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = sorted((PROJECT_ROOT / "migrations").glob("*.sql"))

if shutil.which("pg_ctl") is None and shutil.which("pg_config") is None:
    collect_ignore_glob = ["test_*.py"]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (connection, dsn) with the catalog schema applied.

    Each test gets a fresh database via function scope so tests are isolated.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def official_songs(db_conn):
    """Seed a small official song catalog and commit it."""
    conn, _ = db_conn
    conn.execute(
        "INSERT INTO official_works (id, name, name_ja) VALUES (%s, %s, %s)",
        ("0201", "東方紅魔郷", "東方紅魔郷"),
    )
    for song_id, name in [
        ("02010001", "少女綺想曲"),
        ("02010002", "上海紅茶館"),
        ("02010003", "亡き王女の為のセプテット"),
        ("02010009", "上海紅茶館"),
    ]:
        conn.execute(
            "INSERT INTO official_songs (id, official_work_id, name, name_ja) VALUES (%s, %s, %s, %s)",
            (song_id, "0201", name, name),
        )
    conn.commit()
    return conn
