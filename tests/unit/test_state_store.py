"""
Unit tests for the SQLite local store and document helpers.
"""

import json
import sqlite3

import pytest

from bangla10.core.dates import parse_instant
from bangla10.core.errors import ValidationError
from bangla10.delivery.state_store import (
    STORAGE_VERSION,
    LocalStore,
    default_document,
    has_meaningful_progress,
    local_freshness,
    normalize,
)


class TestNormalize:
    """Tests for filling partial documents from defaults."""

    def test_empty_input_gives_defaults(self):
        assert normalize(None) == default_document()

    def test_nested_sections_are_merged(self):
        """Missing nested keys are filled without losing present ones."""
        doc = normalize({"stats": {"totalSessions": 4}, "settings": {"dailyGoal": 15}})

        assert doc["stats"]["totalSessions"] == 4
        assert doc["stats"]["currentStreak"] == 0
        assert doc["settings"]["dailyGoal"] == 15
        assert doc["settings"]["maxReviewsPerSession"] == 12

    def test_meta_is_coerced(self):
        """Revision becomes a non-negative int and dirty a bool."""
        doc = normalize({"meta": {"revision": "7", "dirty": 1}})
        assert doc["meta"]["revision"] == 7
        assert doc["meta"]["dirty"] is True

        assert normalize({"meta": {"revision": "junk"}})["meta"]["revision"] == 0
        assert normalize({"meta": {"revision": -3}})["meta"]["revision"] == 0

    def test_version_is_set_and_unknown_keys_kept(self):
        doc = normalize({"version": 0, "extra": {"kept": True}})

        assert doc["version"] == STORAGE_VERSION
        assert doc["extra"] == {"kept": True}

    def test_input_is_not_shared(self):
        """Normalizing does not alias the caller's nested objects."""
        source = {"phrases": {"p01": {"box": 2}}}
        doc = normalize(source)
        doc["phrases"]["p01"]["box"] = 5

        assert source["phrases"]["p01"]["box"] == 2

    def test_prayer_recitations_merged(self):
        doc = normalize({"prayer": {"totalPracticeSessions": 2}})

        assert doc["prayer"]["recitations"] == {}
        assert doc["prayer"]["totalPracticeSessions"] == 2
        assert doc["prayer"]["lastPracticeDate"] is None


class TestProgressHelpers:
    """Tests for meaningful-progress and freshness derivation."""

    def test_default_has_no_progress(self):
        assert has_meaningful_progress(default_document()) is False
        assert has_meaningful_progress(None) is False

    @pytest.mark.parametrize(
        "patch",
        [
            {"stats": {"totalSessions": 1}},
            {"stats": {"phrasesLearned": 1}},
            {"phrases": {"p01": {}}},
            {"sessions": {"2026-01-01": {}}},
            {"prayer": {"totalPracticeSessions": 1}},
            {"prayer": {"recitations": {"fatiha": {}}}},
        ],
    )
    def test_any_activity_is_progress(self, patch):
        assert has_meaningful_progress(normalize(patch)) is True

    def test_freshness_prefers_last_modified(self):
        doc = normalize({
            "meta": {"lastModifiedAt": "2026-03-01T10:00:00.000Z"},
            "stats": {"lastSessionDate": "2026-04-01"},
        })
        assert local_freshness(doc) == parse_instant("2026-03-01T10:00:00.000Z")

    def test_freshness_falls_back_to_session_day_end(self):
        doc = normalize({"stats": {"lastSessionDate": "2026-04-01"}})
        assert local_freshness(doc) == parse_instant("2026-04-01T23:59:59.000Z")

    def test_freshness_defaults_to_zero(self):
        assert local_freshness(default_document()) == 0.0


class TestLocalStore:
    """Tests for the durable slot."""

    def test_fresh_store_has_default_document(self, store):
        assert store.document == default_document()
        assert store.is_dirty is False

    def test_save_marks_dirty_and_persists(self, tmp_path):
        """save() stamps lastModifiedAt and the document survives a reopen."""
        path = tmp_path / "state.db"
        first = LocalStore(db_path=path)
        first.stats["totalSessions"] = 3
        first.save()
        first.close()

        reopened = LocalStore(db_path=path)
        assert reopened.stats["totalSessions"] == 3
        assert reopened.meta["dirty"] is True
        assert reopened.meta["lastModifiedAt"].endswith("Z")
        reopened.close()

    def test_save_notifies_listeners(self, store):
        calls = []
        store.add_listener(lambda: calls.append(1))

        store.save()
        store.save(sync=False)

        assert calls == [1]

    def test_update_meta_does_not_mark_dirty(self, store):
        store.update_meta(revision=4, lastSyncedAt="2026-01-01T00:00:00.000Z")

        assert store.meta["revision"] == 4
        assert store.is_dirty is False

    def test_corrupt_slot_loads_defaults(self, tmp_path):
        """A slot holding garbage falls back to a fresh document."""
        path = tmp_path / "state.db"
        LocalStore(db_path=path).close()

        conn = sqlite3.connect(str(path))
        conn.execute("INSERT INTO kv_slot (key, value) VALUES (?, ?)", ("bangla10-srs", "{not json"))
        conn.commit()
        conn.close()

        store = LocalStore(db_path=path)
        assert store.document == default_document()
        store.close()

    def test_corrupt_database_file_is_moved_aside(self, tmp_path):
        """A file that is not a database starts a fresh store."""
        path = tmp_path / "state.db"
        path.write_bytes(b"this is not a sqlite database\x00\xff" * 40)

        store = LocalStore(db_path=path)

        assert store.document == default_document()
        assert (tmp_path / "state.db.corrupt").exists()
        store.save()
        store.close()

        reopened = LocalStore(db_path=path)
        assert reopened.is_dirty is True
        reopened.close()

    def test_non_object_slot_loads_defaults(self, tmp_path):
        path = tmp_path / "state.db"
        LocalStore(db_path=path).close()

        conn = sqlite3.connect(str(path))
        conn.execute("INSERT INTO kv_slot (key, value) VALUES (?, ?)", ("bangla10-srs", "[1, 2]"))
        conn.commit()
        conn.close()

        store = LocalStore(db_path=path)
        assert store.document == default_document()
        store.close()

    def test_replace_normalizes(self, store):
        store.replace({"stats": {"totalSessions": 9}})

        assert store.stats["totalSessions"] == 9
        assert store.settings["dailyGoal"] == 10
        assert store.load()["stats"]["totalSessions"] == 9

    def test_separate_keys_are_independent(self, tmp_path):
        path = tmp_path / "state.db"
        a = LocalStore(db_path=path, storage_key="a")
        a.stats["totalSessions"] = 1
        a.save()

        b = LocalStore(db_path=path, storage_key="b")
        assert b.stats["totalSessions"] == 0
        a.close()
        b.close()


class TestBackup:
    """Tests for export and import."""

    def test_export_round_trips(self, store):
        store.phrases["p01"] = {"box": 3}
        store.save()

        exported = json.loads(store.export_backup())

        assert exported["phrases"] == {"p01": {"box": 3}}
        assert exported["version"] == STORAGE_VERSION

    def test_import_replaces_progress(self, store):
        backup = json.dumps({
            "phrases": {"p02": {"box": 4, "timesCorrect": 2}},
            "stats": {"totalSessions": 5},
            "meta": {"dirty": False, "revision": 2},
        })

        store.import_backup(backup)

        assert store.phrases == {"p02": {"box": 4, "timesCorrect": 2}}
        assert store.stats["totalSessions"] == 5
        assert store.stats["longestStreak"] == 0
        # An import is a local change that needs pushing
        assert store.is_dirty is True

    @pytest.mark.parametrize(
        "text",
        [
            "{broken",
            "[]",
            json.dumps({"phrases": {}}),
            json.dumps({"stats": {}}),
            json.dumps({"stats": [], "phrases": {}}),
        ],
    )
    def test_invalid_backup_leaves_store_untouched(self, store, text):
        store.phrases["p01"] = {"box": 2}
        store.save()
        before = json.loads(json.dumps(store.document))

        with pytest.raises(ValidationError):
            store.import_backup(text)

        assert store.document == before
        assert store.load() == before
