"""
Content Catalog: Phrase and Prayer Loader.

Loads the static content payload from a data directory:
- phrases.json     list of phrases (id, english, bangla, phonetic, category)
- categories.json  list of categories (id, title, order)
- prayer.json      {"recitations": [...], "commonPhrases": [...]}
- drills.json      list of conversation drills (id, title, category, lines)

Catalog order is preserved; the scheduler injects new phrases in that order.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from .state_store import coerce_int

# =============================================================================
# Content Data Classes
# =============================================================================


@dataclass
class Phrase:
    """A single reviewable phrase."""

    id: str
    english: str
    bangla: str = ""
    phonetic: str = ""
    category: str = ""
    audio_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Phrase:
        return cls(
            id=data["id"],
            english=data.get("english", ""),
            bangla=data.get("bangla", ""),
            phonetic=data.get("phonetic", ""),
            category=data.get("category", ""),
            audio_file=data.get("audioFile"),
        )


@dataclass
class Category:
    id: str
    title: str = ""
    order: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> Category:
        return cls(
            id=data["id"],
            title=data.get("title") or data.get("name") or data["id"],
            order=data.get("order", 0),
        )


@dataclass
class PrayerChunk:
    id: str
    arabic: str = ""
    transliteration: str = ""
    meaning: str = ""


@dataclass
class PrayerRecitation:
    """A recitation split into memorisable chunks."""

    id: str
    title: str = ""
    order: int = 0
    chunks: list[PrayerChunk] = field(default_factory=list)

    @property
    def chunk_ids(self) -> list[str]:
        return [chunk.id for chunk in self.chunks]

    @classmethod
    def from_dict(cls, data: dict) -> PrayerRecitation:
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            order=data.get("order", 0),
            chunks=[
                PrayerChunk(
                    id=chunk["id"],
                    arabic=chunk.get("arabic", ""),
                    transliteration=chunk.get("transliteration", ""),
                    meaning=chunk.get("meaning", ""),
                )
                for chunk in data.get("chunks", [])
            ],
        )


@dataclass
class DrillLine:
    speaker: str = "them"
    bangla: str = ""
    phonetic: str = ""
    english: str = ""
    speaker_label: str | None = None

    @property
    def label(self) -> str:
        if self.speaker_label:
            return self.speaker_label
        return "You" if self.speaker == "you" else "They"


@dataclass
class Drill:
    """A short scripted conversation shown one line at a time."""

    id: str
    title: str = ""
    category: str = ""
    description: str = ""
    difficulty: int = 1
    cultural_note: str = ""
    lines: list[DrillLine] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> Drill:
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            category=data.get("category", ""),
            description=data.get("description", ""),
            difficulty=coerce_int(data.get("difficulty"), 1),
            cultural_note=data.get("culturalNote", ""),
            lines=[
                DrillLine(
                    speaker=line.get("speaker", "them"),
                    bangla=line.get("bangla", ""),
                    phonetic=line.get("phonetic", ""),
                    english=line.get("english", ""),
                    speaker_label=line.get("speakerLabel"),
                )
                for line in data.get("lines", [])
                if isinstance(line, dict)
            ],
        )


# =============================================================================
# Catalog
# =============================================================================


class ContentCatalog:
    """
    In-memory view of the content payload.

    Missing files yield empty collections so a bare install still runs.
    """

    DEFAULT_CONTENT_DIR = Path("data")

    def __init__(self, content_dir: Path | None = None):
        self.content_dir = content_dir or self.DEFAULT_CONTENT_DIR

        self._phrases: dict[str, Phrase] = {}
        self.categories: list[Category] = []
        self.recitations: list[PrayerRecitation] = []
        self.drills: list[Drill] = []

    @classmethod
    def from_data(
        cls,
        phrases: list[dict],
        categories: list[dict] | None = None,
        recitations: list[dict] | None = None,
        drills: list[dict] | None = None,
    ) -> ContentCatalog:
        """Build a catalog from already-decoded content."""
        catalog = cls()
        catalog._ingest(phrases, categories or [], {"recitations": recitations or []}, drills or [])
        return catalog

    def load(self) -> int:
        """
        Load all content files.

        Returns:
            Number of phrases loaded
        """
        phrases = self._read_json("phrases.json", [])
        categories = self._read_json("categories.json", [])
        prayer = self._read_json("prayer.json", {})
        drills = self._read_json("drills.json", [])
        self._ingest(phrases, categories, prayer, drills)

        logger.info(
            f"ContentCatalog loaded: {len(self._phrases)} phrases, "
            f"{len(self.categories)} categories, {len(self.recitations)} recitations, "
            f"{len(self.drills)} drills"
        )
        return len(self._phrases)

    def _read_json(self, name: str, default: Any) -> Any:
        path = self.content_dir / name
        if not path.exists():
            logger.warning(f"Content file not found: {path}")
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return default

    def _ingest(self, phrases: Any, categories: Any, prayer: Any, drills: Any = None) -> None:
        self._phrases.clear()
        for data in phrases if isinstance(phrases, list) else []:
            try:
                phrase = Phrase.from_dict(data)
            except (KeyError, TypeError) as e:
                logger.warning(f"Invalid phrase entry: {e}")
                continue
            self._phrases[phrase.id] = phrase

        self.categories = sorted(
            (Category.from_dict(c) for c in (categories if isinstance(categories, list) else [])),
            key=lambda c: c.order,
        )

        raw_recitations = prayer.get("recitations", []) if isinstance(prayer, dict) else []
        self.recitations = sorted(
            (PrayerRecitation.from_dict(r) for r in raw_recitations),
            key=lambda r: r.order,
        )

        self.drills = []
        for data in drills if isinstance(drills, list) else []:
            try:
                self.drills.append(Drill.from_dict(data))
            except (AttributeError, KeyError, TypeError) as e:
                logger.warning(f"Invalid drill entry: {e}")

    # =========================================================================

    def get(self, phrase_id: str) -> Phrase | None:
        return self._phrases.get(phrase_id)

    def get_all(self) -> list[Phrase]:
        return list(self._phrases.values())

    def get_phrase_ids(self) -> list[str]:
        """All phrase IDs in catalog order."""
        return list(self._phrases.keys())

    def get_recitation(self, recitation_id: str) -> PrayerRecitation | None:
        for recitation in self.recitations:
            if recitation.id == recitation_id:
                return recitation
        return None

    def get_drill(self, drill_id: str | None) -> Drill | None:
        for drill in self.drills:
            if drill.id == drill_id:
                return drill
        return None

    def __iter__(self) -> Iterator[Phrase]:
        return iter(self._phrases.values())

    def __len__(self) -> int:
        return len(self._phrases)

    def __contains__(self, phrase_id: str) -> bool:
        return phrase_id in self._phrases

    def category_stats(self, phrase_states: dict[str, dict]) -> list[dict[str, Any]]:
        """
        Per-category counts of starter, learned and mastered phrases.

        Args:
            phrase_states: The document's phrase schedule map
        """
        by_category = {
            c.id: {"id": c.id, "title": c.title, "order": c.order,
                   "starterCount": 0, "learnedCount": 0, "masteryCount": 0}
            for c in self.categories
        }
        for phrase in self._phrases.values():
            row = by_category.get(phrase.category)
            if row is None:
                continue
            row["starterCount"] += 1
            state = phrase_states.get(phrase.id)
            if not isinstance(state, dict):
                continue
            if coerce_int(state.get("timesCorrect")) > 0:
                row["learnedCount"] += 1
            if coerce_int(state.get("box")) >= 5:
                row["masteryCount"] += 1
        return sorted(by_category.values(), key=lambda row: row["order"])
