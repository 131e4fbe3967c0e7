"""
Box Spaced Repetition Scheduler with Interleaving.

Implements:
- Five-box interval model for review scheduling
- Daily session plans mixing due reviews and new phrases
- An "extra practice" mode drawn only from learned phrases

Box intervals (days):
1 - 1
2 - 2
3 - 5
4 - 14
5 - 30

Ratings:
again - back to box 1, counts as a miss
hard  - same box, half the interval (min 1 day), counts as a miss
good  - up one box
easy  - up two boxes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from bangla10.core.dates import add_days, today_iso

from .catalog import ContentCatalog
from .state_store import LocalStore, coerce_int

INTERVAL_DAYS = {1: 1, 2: 2, 3: 5, 4: 14, 5: 30}
MIN_BOX = 1
MAX_BOX = 5
FAR_FUTURE = "9999-12-31"


def _coerce_date(value) -> str | None:
    return value if isinstance(value, str) and value else None


# =============================================================================
# Box Algorithm
# =============================================================================


class Rating(str, Enum):
    """Self-assessed recall quality."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def is_success(self) -> bool:
        return self in (Rating.GOOD, Rating.EASY)


@dataclass
class ItemSchedule:
    """Box scheduling state for a single phrase."""

    box: int = 1
    last_reviewed: str | None = None
    next_review: str | None = None
    times_correct: int = 0
    times_incorrect: int = 0
    date_added: str | None = None

    def is_due(self, today: str) -> bool:
        """Never-scheduled items are due; otherwise due on or after nextReview."""
        if self.next_review is None:
            return True
        return self.next_review <= today

    @classmethod
    def new(cls, today: str) -> ItemSchedule:
        return cls(date_added=today)

    @classmethod
    def from_dict(cls, data: dict) -> ItemSchedule:
        """Build from a stored schedule, coercing fields from imported or remote documents."""
        if not isinstance(data, dict):
            data = {}
        return cls(
            box=min(MAX_BOX, max(MIN_BOX, coerce_int(data.get("box"), MIN_BOX))),
            last_reviewed=_coerce_date(data.get("lastReviewed")),
            next_review=_coerce_date(data.get("nextReview")),
            times_correct=max(0, coerce_int(data.get("timesCorrect"), 0)),
            times_incorrect=max(0, coerce_int(data.get("timesIncorrect"), 0)),
            date_added=_coerce_date(data.get("dateAdded")),
        )

    def to_dict(self) -> dict:
        return {
            "box": self.box,
            "lastReviewed": self.last_reviewed,
            "nextReview": self.next_review,
            "timesCorrect": self.times_correct,
            "timesIncorrect": self.times_incorrect,
            "dateAdded": self.date_added,
        }


def count_learned(phrases: dict[str, dict]) -> int:
    """Phrases answered correctly at least once."""
    return sum(1 for state in phrases.values() if ItemSchedule.from_dict(state).times_correct > 0)


class BoxScheduler:
    """
    Computes the next review for a rated phrase.

    The interval comes from the fixed table for the box after the rating;
    a hard rating halves it (floor, minimum one day).
    """

    def __init__(self, intervals: dict[int, int] | None = None):
        self.intervals = intervals or INTERVAL_DAYS

    def interval_for(self, box: int, rating: Rating) -> int:
        base = self.intervals.get(box, self.intervals[MAX_BOX])
        if rating == Rating.HARD:
            return max(1, base // 2)
        return base

    def next_box(self, box: int, rating: Rating) -> int:
        if rating == Rating.AGAIN:
            return MIN_BOX
        if rating == Rating.HARD:
            return box
        if rating == Rating.GOOD:
            return min(MAX_BOX, box + 1)
        return min(MAX_BOX, box + 2)

    def calculate_next_review(
        self,
        state: ItemSchedule,
        rating: Rating,
        today: str,
    ) -> ItemSchedule:
        """
        Apply a rating.

        Args:
            state: Current schedule for the phrase
            rating: The learner's rating
            today: ISO date of the review

        Returns:
            New ItemSchedule (the input is not modified)
        """
        new_box = self.next_box(state.box, rating)
        interval = self.interval_for(new_box, rating)

        return ItemSchedule(
            box=new_box,
            last_reviewed=today,
            next_review=add_days(today, interval),
            times_correct=state.times_correct + (1 if rating.is_success else 0),
            times_incorrect=state.times_incorrect + (0 if rating.is_success else 1),
            date_added=state.date_added or today,
        )


# =============================================================================
# Session Planner
# =============================================================================


@dataclass
class PlanConfig:
    """Bounds on a daily session's size."""

    min_interactions: int = 8
    max_interactions: int = 12
    reviews_per_new: int = 2  # Two reviews, then one new


@dataclass
class PlanItem:
    phrase_id: str
    kind: str  # 'review' or 'new'
    direction: str = "en-to-bn"  # or 'bn-to-en'


@dataclass
class SessionPlan:
    """A prepared study plan for one day."""

    date: str
    items: list[PlanItem] = field(default_factory=list)

    @property
    def review_count(self) -> int:
        return sum(1 for item in self.items if item.kind == "review")

    @property
    def new_count(self) -> int:
        return sum(1 for item in self.items if item.kind == "new")

    @property
    def estimated_minutes(self) -> float:
        """Roughly 0.9 min per item plus warm-up, shown within 8-12 minutes."""
        return max(8.0, min(12.0, round(len(self.items) * 0.9 + 2, 1)))

    @property
    def is_empty(self) -> bool:
        return not self.items


class SessionPlanner:
    """
    Builds daily session plans and records ratings.

    Key principles:
    1. Weakest, longest-unreviewed due phrases come first
    2. New phrases close the gap to the target session size
    3. Phrases closest to becoming due fill short sessions
    4. Two reviews, then one new phrase
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: LocalStore,
        scheduler: BoxScheduler | None = None,
        config: PlanConfig | None = None,
    ):
        self.catalog = catalog
        self.store = store
        self.scheduler = scheduler or BoxScheduler()
        self.config = config or PlanConfig()

    def _schedule(self, phrase_id: str) -> ItemSchedule:
        return ItemSchedule.from_dict(self.store.phrases[phrase_id])

    def _due_order(self, phrase_id: str) -> tuple[int, str]:
        state = self._schedule(phrase_id)
        return (state.box, state.last_reviewed or "")

    def _soonest_order(self, phrase_id: str) -> str:
        return self._schedule(phrase_id).next_review or FAR_FUTURE

    def build_plan(self, today: str | None = None, extra_practice: bool = False) -> SessionPlan:
        """
        Build the study plan for a day.

        Args:
            today: ISO date (defaults to today)
            extra_practice: Draw only from already-learned phrases

        Returns:
            SessionPlan with interleaved items
        """
        today = today or today_iso()
        settings = self.store.settings
        max_reviews = int(settings.get("maxReviewsPerSession") or 0)
        new_per_session = int(settings.get("newPhrasesPerSession") or 0)

        all_ids = self.catalog.get_phrase_ids()
        known = [pid for pid in all_ids if pid in self.store.phrases]

        if extra_practice:
            return self._build_extra_practice(today, known, max_reviews)

        due = sorted(
            (pid for pid in known if self._schedule(pid).is_due(today)),
            key=self._due_order,
        )
        review_selection = due[:max_reviews]

        new_pool = [pid for pid in all_ids if pid not in self.store.phrases]
        target = min(
            self.config.max_interactions,
            max(self.config.min_interactions, len(review_selection) + new_per_session),
        )
        new_needed = min(new_per_session, max(0, target - len(review_selection)), len(new_pool))
        new_selection = new_pool[:new_needed]

        selected = set(review_selection)
        filler_pool = sorted(
            (pid for pid in known if pid not in selected),
            key=self._soonest_order,
        )
        filler: list[str] = []
        while (
            len(review_selection) + len(new_selection) + len(filler) < self.config.min_interactions
            and filler_pool
        ):
            filler.append(filler_pool.pop(0))

        reviews = [PlanItem(pid, "review") for pid in review_selection + filler]
        news = [PlanItem(pid, "new") for pid in new_selection]
        items = self._interleave(reviews, news)[:max_reviews]

        plan = SessionPlan(date=today, items=items)
        logger.debug(
            f"Plan built: {len(review_selection)} due + {len(filler)} filler + "
            f"{len(new_selection)} new -> {len(plan.items)} items"
        )
        return plan

    def _build_extra_practice(self, today: str, known: list[str], max_reviews: int) -> SessionPlan:
        learned = [pid for pid in known if self._schedule(pid).times_correct > 0]

        due_learned = sorted(
            (pid for pid in learned if self._schedule(pid).is_due(today)),
            key=self._due_order,
        )
        selected = due_learned[:max_reviews]

        used = set(selected)
        filler_pool = sorted(
            (pid for pid in learned if pid not in used),
            key=self._soonest_order,
        )
        target = min(max_reviews, max(self.config.min_interactions, len(selected)))
        while len(selected) < target and filler_pool:
            selected.append(filler_pool.pop(0))

        logger.debug(f"Extra practice plan: {len(selected)} learned phrases")
        return SessionPlan(date=today, items=[PlanItem(pid, "review") for pid in selected])

    def _interleave(self, reviews: list[PlanItem], news: list[PlanItem]) -> list[PlanItem]:
        """Emit reviews then one new phrase, repeating until both queues drain."""
        result: list[PlanItem] = []
        review_queue = list(reviews)
        new_queue = list(news)

        while review_queue or new_queue:
            for _ in range(self.config.reviews_per_new):
                if review_queue:
                    result.append(review_queue.pop(0))
            if new_queue:
                result.append(new_queue.pop(0))

        return result

    # =========================================================================
    # Mutations
    # =========================================================================

    def ensure_phrase_state(self, phrase_id: str, today: str | None = None, persist: bool = False) -> dict:
        """Create a schedule on first exposure to a phrase."""
        if phrase_id not in self.store.phrases:
            self.store.phrases[phrase_id] = ItemSchedule.new(today or today_iso()).to_dict()
            if persist:
                self.store.save()
        return self.store.phrases[phrase_id]

    def count_learned(self) -> int:
        return count_learned(self.store.phrases)

    def apply_rating(self, phrase_id: str, rating: Rating | str, today: str | None = None) -> ItemSchedule:
        """
        Record a rating and reschedule the phrase.

        Args:
            phrase_id: The rated phrase
            rating: again / hard / good / easy
            today: ISO date of the review (defaults to today)

        Returns:
            Updated ItemSchedule
        """
        rating = Rating(rating)
        today = today or today_iso()

        current = ItemSchedule.from_dict(self.ensure_phrase_state(phrase_id, today))
        updated = self.scheduler.calculate_next_review(current, rating, today)
        self.store.phrases[phrase_id] = updated.to_dict()

        stats = self.store.stats
        if rating.is_success:
            stats["totalCorrect"] = (stats.get("totalCorrect") or 0) + 1
        else:
            stats["totalIncorrect"] = (stats.get("totalIncorrect") or 0) + 1
        stats["phrasesLearned"] = self.count_learned()

        self.store.save()

        logger.debug(
            f"Rated {phrase_id}: {rating.value} -> box {updated.box}, "
            f"next_review={updated.next_review}"
        )
        return updated
