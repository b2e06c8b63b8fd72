"""Integration tests for catalog_etl.catalog_store against PostgreSQL."""

from __future__ import annotations

import pytest

from catalog_etl.catalog_store import DbSongLookup, Entity, PsycopgCatalogStore, UnknownColumnError
from catalog_etl.song_matcher import OTHER_SONG_ID, SongMatcher


# ---------------------------------------------------------------------------
# PsycopgCatalogStore
# ---------------------------------------------------------------------------

class TestPsycopgCatalogStore:
    def test_insert_and_find_one(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        new_id = store.insert(Entity.CIRCLE, {"id": "ci_1", "name": "サークルA", "name_ja": "サークルA"})
        assert new_id == "ci_1"
        row = store.find_one(Entity.CIRCLE, name="サークルA")
        assert row["id"] == "ci_1"
        assert row["initial_script"] == "other"
        assert store.find_one(Entity.CIRCLE, name="missing") is None

    def test_link_table_insert_returns_none(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        store.insert(Entity.CIRCLE, {"id": "ci_1", "name": "A"})
        store.insert(Entity.RELEASE, {"id": "re_1", "name": "アルバム"})
        result = store.insert(Entity.RELEASE_CIRCLE, {
            "release_id": "re_1", "circle_id": "ci_1", "participation_type": "host", "position": 1,
        })
        assert result is None
        assert store.find_one(Entity.RELEASE_CIRCLE, release_id="re_1")["circle_id"] == "ci_1"

    def test_list_by_orders_and_limits(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        store.insert(Entity.RELEASE, {"id": "re_1", "name": "R"})
        for n, track_id in [(2, "tr_b"), (1, "tr_a"), (3, "tr_c")]:
            store.insert(Entity.TRACK, {"id": track_id, "release_id": "re_1", "track_number": n, "name": f"t{n}"})
        rows = store.list_by(Entity.TRACK, "release_id", "re_1", 2)
        assert [r["id"] for r in rows] == ["tr_a", "tr_b"]

    def test_search_is_substring_and_escapes_wildcards(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        store.insert(Entity.EVENT_SERIES, {"id": "es_1", "name": "コミックマーケット"})
        store.insert(Entity.EVENT_SERIES, {"id": "es_2", "name": "100%東方"})
        assert [r["id"] for r in store.search(Entity.EVENT_SERIES, "name", "マーケット", 5)] == ["es_1"]
        assert [r["id"] for r in store.search(Entity.EVENT_SERIES, "name", "%", 5)] == ["es_2"]

    def test_update_sets_values(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        store.insert(Entity.RELEASE, {"id": "re_1", "name": "R"})
        store.insert(Entity.TRACK, {"id": "tr_1", "release_id": "re_1", "track_number": 1, "name": "old"})
        store.update(Entity.TRACK, "tr_1", {"name": "new", "name_ja": "new"})
        assert store.find_one(Entity.TRACK, id="tr_1")["name"] == "new"

    def test_update_link_table_rejected(self, db_conn):
        conn, _ = db_conn
        with pytest.raises(ValueError):
            PsycopgCatalogStore(conn).update(Entity.RELEASE_CIRCLE, "x", {"position": 2})

    def test_unknown_column_rejected(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        with pytest.raises(UnknownColumnError):
            store.find_one(Entity.CIRCLE, **{"name; DROP TABLE circles": "x"})
        with pytest.raises(UnknownColumnError):
            store.insert(Entity.ARTIST, {"id": "ar_1", "name": "A", "bogus": 1})

    def test_nested_transaction_rolls_back_inner_only(self, db_conn):
        conn, _ = db_conn
        store = PsycopgCatalogStore(conn)
        with store.transaction():
            store.insert(Entity.CIRCLE, {"id": "ci_1", "name": "kept"})
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.insert(Entity.CIRCLE, {"id": "ci_2", "name": "dropped"})
                    raise RuntimeError("boom")
        count = conn.execute("SELECT count(*) FROM circles").fetchone()[0]
        assert count == 1
        assert store.find_one(Entity.CIRCLE, name="dropped") is None


# ---------------------------------------------------------------------------
# DbSongLookup
# ---------------------------------------------------------------------------

class TestDbSongLookup:
    def test_exact_search_ordered_by_id(self, official_songs):
        lookup = DbSongLookup(official_songs)
        hits = lookup.exact_search("上海紅茶館")
        assert [s.id for s in hits] == ["02010002", "02010009"]
        assert hits[0].official_work_name == "東方紅魔郷"
        assert hits[0].is_original is True

    def test_partial_search_case_insensitive_with_limit(self, official_songs):
        conn = official_songs
        conn.execute(
            "INSERT INTO official_songs (id, name, name_ja) VALUES ('09000001', 'Bad Apple!!', 'Bad Apple!!')",
        )
        lookup = DbSongLookup(conn)
        assert [s.id for s in lookup.partial_search("apple", 10)] == ["09000001"]
        assert len(lookup.partial_search("紅茶", 1)) == 1

    def test_find_original_uses_seed(self, official_songs):
        original = DbSongLookup(official_songs).find_original()
        assert original is not None
        assert original.name == "オリジナル"

    def test_matcher_over_database(self, official_songs):
        lookup = DbSongLookup(official_songs)
        matcher = SongMatcher(lookup.exact_search, lookup.partial_search, lookup.find_original)
        exact, partial, none, original = matcher.match_songs(["上海紅茶館", "王女", "存在しない", "オリジナル"])
        assert exact.selected_id == "02010002"
        assert partial.match_type == "partial"
        assert [c.id for c in partial.candidates] == ["02010003"]
        assert none.selected_id == OTHER_SONG_ID
        assert original.is_original is True
