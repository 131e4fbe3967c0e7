"""
SQLite State Store for the trainer.

Holds the canonical client-side document in a single durable key/value slot:
- Per-phrase box schedules
- Aggregate stats and per-day session records
- Learner settings
- Prayer recitation progress
- Sync metadata (revision, dirty flag, modified/synced timestamps)

Database location: ~/.bangla10/state.db
"""

from __future__ import annotations

import copy
import json
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from bangla10.core.dates import now_iso, parse_instant
from bangla10.core.errors import ValidationError

STORAGE_VERSION = 1

# =============================================================================
# Document Shape
# =============================================================================


def default_document() -> dict[str, Any]:
    """Build a fresh, empty document."""
    return {
        "version": STORAGE_VERSION,
        "meta": {
            "revision": 0,
            "lastModifiedAt": None,
            "lastSyncedAt": None,
            "dirty": False,
        },
        "phrases": {},
        "stats": {
            "totalSessions": 0,
            "currentStreak": 0,
            "longestStreak": 0,
            "lastSessionDate": None,
            "totalMinutes": 0,
            "phrasesLearned": 0,
            "totalCorrect": 0,
            "totalIncorrect": 0,
        },
        "sessions": {},
        "settings": {
            "dailyGoal": 10,
            "newPhrasesPerSession": 3,
            "maxReviewsPerSession": 12,
        },
        "prayer": {
            "recitations": {},
            "lastPracticeDate": None,
            "totalPracticeSessions": 0,
        },
    }


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def coerce_int(value: Any, default: int = 0) -> int:
    """int(value), or `default` for missing, non-numeric or non-finite input."""
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _coerce_revision(value: Any) -> int:
    return max(0, coerce_int(value))


def normalize(partial: Any) -> dict[str, Any]:
    """
    Fill a partially-shaped document from defaults.

    Unknown top-level keys are preserved. Nested sections are merged key by
    key so imports and remote payloads from older versions keep their data.
    """
    fallback = default_document()
    parsed = copy.deepcopy(_as_dict(partial))
    parsed_meta = _as_dict(parsed.get("meta"))
    parsed_prayer = _as_dict(parsed.get("prayer"))

    document = {**fallback, **parsed}
    document["version"] = STORAGE_VERSION
    document["meta"] = {
        **fallback["meta"],
        **parsed_meta,
        "revision": _coerce_revision(parsed_meta.get("revision")),
        "dirty": bool(parsed_meta.get("dirty")),
    }
    document["stats"] = {**fallback["stats"], **_as_dict(parsed.get("stats"))}
    document["sessions"] = dict(_as_dict(parsed.get("sessions")))
    document["settings"] = {**fallback["settings"], **_as_dict(parsed.get("settings"))}
    document["phrases"] = dict(_as_dict(parsed.get("phrases")))
    document["prayer"] = {
        **fallback["prayer"],
        **parsed_prayer,
        "recitations": dict(_as_dict(parsed_prayer.get("recitations"))),
    }
    return document


def has_meaningful_progress(document: dict[str, Any] | None) -> bool:
    """Whether a document holds anything worth pushing to an empty server."""
    if not document:
        return False
    stats = _as_dict(document.get("stats"))
    prayer = _as_dict(document.get("prayer"))
    if coerce_int(stats.get("totalSessions")) > 0:
        return True
    if coerce_int(stats.get("phrasesLearned")) > 0:
        return True
    if _as_dict(document.get("phrases")):
        return True
    if _as_dict(document.get("sessions")):
        return True
    if coerce_int(prayer.get("totalPracticeSessions")) > 0:
        return True
    return bool(_as_dict(prayer.get("recitations")))


def local_freshness(document: dict[str, Any] | None) -> float:
    """
    Recency score (epoch seconds) for a document.

    Uses meta.lastModifiedAt when present, otherwise the end of the last
    recorded session day, otherwise 0.
    """
    if not document:
        return 0.0
    from_meta = parse_instant(_as_dict(document.get("meta")).get("lastModifiedAt"))
    if from_meta is not None:
        return from_meta
    last_session = _as_dict(document.get("stats")).get("lastSessionDate")
    if last_session:
        from_session = parse_instant(f"{last_session}T23:59:59.000Z")
        if from_session is not None:
            return from_session
    return 0.0


# =============================================================================
# State Store
# =============================================================================


class LocalStore:
    """
    SQLite-backed durable slot for the trainer document.

    Every write is synchronous: when `persist` returns, the document is on disk.
    """

    DEFAULT_DB_PATH = Path.home() / ".bangla10" / "state.db"

    def __init__(self, db_path: Path | None = None, storage_key: str = "bangla10-srs"):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.bangla10/state.db)
            storage_key: Key of the slot holding the document
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_key = storage_key

        self._conn: sqlite3.Connection | None = None
        self._listeners: list[Callable[[], None]] = []
        self._init_schema()

        self.document = self.load()
        logger.info(f"LocalStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
        return self._conn

    def _init_schema(self) -> None:
        try:
            self._create_table()
        except sqlite3.DatabaseError as e:
            self._quarantine(e)
            self._create_table()

    def _create_table(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_slot (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self.conn.commit()

    def _quarantine(self, error: sqlite3.DatabaseError) -> None:
        """Move an unreadable database file aside so a fresh one can be created."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

        corrupt_path = self.db_path.with_name(self.db_path.name + ".corrupt")
        self.db_path.replace(corrupt_path)
        logger.warning(f"Local database unreadable ({error}), moved to {corrupt_path}")

    # =========================================================================
    # Slot Operations
    # =========================================================================

    def load(self) -> dict[str, Any]:
        """
        Read the document from the durable slot.

        Returns:
            The normalized document, or a fresh default when the slot is
            missing or unreadable.
        """
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_slot WHERE key = ?", (self.storage_key,)
            ).fetchone()
        except sqlite3.DatabaseError as e:
            logger.warning(f"Could not read local slot, starting fresh: {e}")
            return default_document()

        if row is None:
            return default_document()

        try:
            parsed = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Local slot holds corrupt JSON, starting fresh")
            return default_document()

        if not isinstance(parsed, dict):
            return default_document()
        return normalize(parsed)

    def persist(self) -> None:
        """Write the in-memory document through to the slot."""
        self.conn.execute(
            """
            INSERT INTO kv_slot (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
            (self.storage_key, json.dumps(self.document, ensure_ascii=False)),
        )
        self.conn.commit()

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every syncing `save`."""
        self._listeners.append(callback)

    def save(self, sync: bool = True) -> None:
        """
        Record a local mutation.

        Stamps lastModifiedAt, marks the document dirty, persists it and,
        if `sync` is set, notifies listeners (the sync orchestrator).
        """
        meta = self.document.setdefault("meta", {})
        meta["revision"] = _coerce_revision(meta.get("revision"))
        meta.setdefault("lastSyncedAt", None)
        meta["lastModifiedAt"] = now_iso()
        meta["dirty"] = True
        self.persist()

        if sync:
            for callback in self._listeners:
                callback()

    def update_meta(self, **fields: Any) -> None:
        """Merge fields into meta and persist, without marking dirty."""
        self.document["meta"] = {**self.document.get("meta", {}), **fields}
        self.persist()

    def replace(self, document: dict[str, Any]) -> None:
        """Swap in a whole new document and persist it."""
        self.document = normalize(document)
        self.persist()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def meta(self) -> dict[str, Any]:
        return self.document["meta"]

    @property
    def settings(self) -> dict[str, Any]:
        return self.document["settings"]

    @property
    def stats(self) -> dict[str, Any]:
        return self.document["stats"]

    @property
    def phrases(self) -> dict[str, Any]:
        return self.document["phrases"]

    @property
    def is_dirty(self) -> bool:
        return bool(self.document.get("meta", {}).get("dirty"))

    # =========================================================================
    # Backup
    # =========================================================================

    def export_backup(self) -> str:
        """Serialize the document for a backup file."""
        return json.dumps(self.document, ensure_ascii=False, indent=2)

    def import_backup(self, text: str) -> None:
        """
        Replace local progress with a backup.

        Raises:
            ValidationError: if the backup is not a progress document. The
                store is left untouched in that case.
        """
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid backup file: {e}") from e

        if (
            not isinstance(parsed, dict)
            or not isinstance(parsed.get("stats"), dict)
            or not isinstance(parsed.get("phrases"), dict)
        ):
            raise ValidationError("Invalid backup file")

        imported = normalize(parsed)
        imported["meta"]["lastSyncedAt"] = imported["meta"].get("lastSyncedAt") or None
        imported["meta"]["dirty"] = False
        self.document = imported
        self.save()
        logger.info(f"Imported backup with {len(imported['phrases'])} phrase schedules")

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
