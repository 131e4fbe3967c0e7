"""
Prayer Recitation Progress.

Each recitation is split into chunks; every chunk moves through
new -> practicing -> memorised. The recitation's overall status is derived
from its chunks unless a full-recitation test sets it directly.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from bangla10.core.dates import today_iso

from .catalog import ContentCatalog, PrayerRecitation
from .state_store import LocalStore

CHUNK_STATUSES = ["new", "practicing", "memorised"]
MEMORISED_HIT_RATE = 0.85
PRACTICING_HIT_RATE = 0.4


def next_status(current: str) -> str:
    """Cycle to the next chunk status; unknown values restart at 'new'."""
    if current not in CHUNK_STATUSES:
        return "new"
    return CHUNK_STATUSES[(CHUNK_STATUSES.index(current) + 1) % len(CHUNK_STATUSES)]


@dataclass
class RecitationProgress:
    status: str
    total: int
    memorised: int
    practicing: int


@dataclass
class PrayerTarget:
    recitation: PrayerRecitation
    progress: RecitationProgress
    next_chunk_id: str | None


class PrayerTracker:
    """Reads and mutates the document's prayer section."""

    def __init__(self, catalog: ContentCatalog, store: LocalStore):
        self.catalog = catalog
        self.store = store

    @property
    def _prayer(self) -> dict:
        prayer = self.store.document.setdefault("prayer", {})
        prayer.setdefault("recitations", {})
        prayer.setdefault("lastPracticeDate", None)
        prayer.setdefault("totalPracticeSessions", 0)
        return prayer

    def _recitation(self, recitation_id: str) -> PrayerRecitation:
        recitation = self.catalog.get_recitation(recitation_id)
        if recitation is None:
            raise KeyError(f"Unknown recitation: {recitation_id}")
        return recitation

    def ensure_recitation_state(self, recitation_id: str, chunk_ids: list[str] | None = None) -> dict:
        recitations = self._prayer["recitations"]
        state = recitations.setdefault(
            recitation_id,
            {"chunks": {}, "fullRecitationStatus": "new", "lastFullAttempt": None},
        )
        for chunk_id in chunk_ids or []:
            state["chunks"].setdefault(chunk_id, {"status": "new", "lastPracticed": None})
        return state

    # =========================================================================
    # Progress
    # =========================================================================

    def recitation_progress(self, recitation: PrayerRecitation) -> RecitationProgress:
        state = self.ensure_recitation_state(recitation.id, recitation.chunk_ids)
        statuses = [state["chunks"].get(cid, {}).get("status", "new") for cid in recitation.chunk_ids]
        memorised = statuses.count("memorised")
        practicing = statuses.count("practicing")
        total = len(statuses)

        if memorised == total:
            status = "memorised"
        elif memorised or practicing:
            status = "practicing"
        else:
            status = "new"
        return RecitationProgress(status=status, total=total, memorised=memorised, practicing=practicing)

    def overall_progress(self) -> dict:
        rows = [(r, self.recitation_progress(r)) for r in self.catalog.recitations]
        return {
            "rows": rows,
            "memorisedCount": sum(1 for _, p in rows if p.status == "memorised"),
            "practicingCount": sum(1 for _, p in rows if p.status == "practicing"),
            "total": len(rows),
        }

    def choose_today_target(self) -> PrayerTarget | None:
        """First recitation not yet memorised, and its first unmemorised chunk."""
        rows = [(r, self.recitation_progress(r)) for r in self.catalog.recitations]
        if not rows:
            return None
        recitation, progress = next(
            ((r, p) for r, p in rows if p.status != "memorised"), rows[0]
        )
        state = self.ensure_recitation_state(recitation.id, recitation.chunk_ids)
        next_chunk = next(
            (cid for cid in recitation.chunk_ids if state["chunks"][cid]["status"] != "memorised"),
            recitation.chunk_ids[0] if recitation.chunk_ids else None,
        )
        return PrayerTarget(recitation=recitation, progress=progress, next_chunk_id=next_chunk)

    # =========================================================================
    # Mutations
    # =========================================================================

    def touch_activity(self, today: str | None = None) -> None:
        """Count one practice session per calendar day."""
        today = today or today_iso()
        prayer = self._prayer
        if prayer["lastPracticeDate"] != today:
            prayer["totalPracticeSessions"] = (prayer["totalPracticeSessions"] or 0) + 1
        prayer["lastPracticeDate"] = today

    def recalc_status(self, recitation: PrayerRecitation) -> str:
        state = self.ensure_recitation_state(recitation.id, recitation.chunk_ids)
        state["fullRecitationStatus"] = self.recitation_progress(recitation).status
        return state["fullRecitationStatus"]

    def update_chunk_status(self, recitation_id: str, chunk_id: str, status: str, today: str | None = None) -> None:
        if status not in CHUNK_STATUSES:
            raise ValueError(f"Unknown chunk status: {status}")
        today = today or today_iso()
        recitation = self._recitation(recitation_id)
        if chunk_id not in recitation.chunk_ids:
            raise KeyError(f"Unknown chunk: {recitation_id}/{chunk_id}")
        state = self.ensure_recitation_state(recitation_id, recitation.chunk_ids)
        state["chunks"][chunk_id] = {"status": status, "lastPracticed": today}
        self.recalc_status(recitation)
        self.touch_activity(today)
        self.store.save()
        logger.debug(f"Prayer chunk {recitation_id}/{chunk_id} -> {status}")

    def cycle_chunk_status(self, recitation_id: str, chunk_id: str, today: str | None = None) -> str:
        recitation = self._recitation(recitation_id)
        state = self.ensure_recitation_state(recitation_id, recitation.chunk_ids)
        current = state["chunks"].get(chunk_id, {}).get("status", "new")
        status = next_status(current)
        self.update_chunk_status(recitation_id, chunk_id, status, today)
        return status

    def track_chunk_practiced(
        self, recitation_id: str, chunk_id: str, today: str | None = None, save: bool = True
    ) -> None:
        today = today or today_iso()
        recitation = self._recitation(recitation_id)
        state = self.ensure_recitation_state(recitation_id, recitation.chunk_ids)
        existing = state["chunks"].get(chunk_id) or {"status": "new", "lastPracticed": None}
        state["chunks"][chunk_id] = {**existing, "lastPracticed": today}
        self.touch_activity(today)
        if save:
            self.store.save()

    def set_full_status(self, recitation_id: str, status: str, today: str | None = None) -> None:
        """Set a recitation's overall status and align its chunks with it."""
        if status not in CHUNK_STATUSES:
            raise ValueError(f"Unknown recitation status: {status}")
        today = today or today_iso()
        recitation = self._recitation(recitation_id)
        state = self.ensure_recitation_state(recitation_id, recitation.chunk_ids)
        state["fullRecitationStatus"] = status
        state["lastFullAttempt"] = today

        if status == "memorised":
            for cid in recitation.chunk_ids:
                state["chunks"][cid] = {"status": "memorised", "lastPracticed": today}
        elif status == "new":
            for cid in recitation.chunk_ids:
                last = state["chunks"].get(cid, {}).get("lastPracticed")
                state["chunks"][cid] = {"status": "new", "lastPracticed": last}
        else:
            has_practice = any(
                state["chunks"][cid]["status"] in ("practicing", "memorised")
                for cid in recitation.chunk_ids
            )
            if not has_practice and recitation.chunk_ids:
                state["chunks"][recitation.chunk_ids[0]] = {"status": "practicing", "lastPracticed": today}

        self.touch_activity(today)
        self.store.save()
        logger.info(f"Recitation {recitation_id} marked {status}")

    def record_test(self, recitation_id: str, results: list[bool], today: str | None = None) -> str:
        """
        Score a full-recitation test, one bool per chunk.

        Returns:
            The status the recitation was set to
        """
        recitation = self._recitation(recitation_id)
        for chunk_id in recitation.chunk_ids[: len(results)]:
            self.track_chunk_practiced(recitation_id, chunk_id, today, save=False)

        hit_rate = sum(1 for r in results if r) / len(results) if results else 0.0
        if hit_rate >= MEMORISED_HIT_RATE:
            status = "memorised"
        elif hit_rate >= PRACTICING_HIT_RATE:
            status = "practicing"
        else:
            status = "new"
        self.set_full_status(recitation_id, status, today)
        return status
