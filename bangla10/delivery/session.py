"""
Study Session Lifecycle.

Tracks a single run through a session plan:
- Ratings given per phrase
- Card directions, the quick test and the conversation drill
- Quick-test answers
- Active study time (pausable)

and folds the result into the document's stats, streak and per-day record.
"""

from __future__ import annotations

import random
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

from loguru import logger

from bangla10.core.dates import diff_calendar_days, now_iso, today_iso

from .catalog import ContentCatalog, Drill, Phrase
from .scheduler import ItemSchedule, Rating, SessionPlan, SessionPlanner, count_learned
from .state_store import LocalStore

WEEKDAY_LABELS = ["M", "T", "W", "T", "F", "S", "S"]

QUICK_TEST_SIZE = 8
QUICK_TEST_SECONDS = 8
OPTION_COUNT = 4
DEFAULT_CATEGORY = "greetings"


@dataclass
class SessionTimer:
    """Wall-clock timer that ignores paused stretches."""

    accumulated: float = 0.0
    last_resume: float = field(default_factory=time.monotonic)
    paused: bool = False

    def pause(self) -> None:
        if self.paused:
            return
        self.accumulated += time.monotonic() - self.last_resume
        self.paused = True

    def resume(self) -> None:
        if not self.paused:
            return
        self.last_resume = time.monotonic()
        self.paused = False

    @property
    def elapsed_seconds(self) -> float:
        if self.paused:
            return self.accumulated
        return self.accumulated + (time.monotonic() - self.last_resume)


@dataclass
class RatingRecord:
    phrase_id: str
    rating: Rating

    @property
    def success(self) -> bool:
        return self.rating.is_success


@dataclass
class SessionSummary:
    elapsed_minutes: int
    reviewed: int
    new_learned: int
    accuracy: int
    quick_correct: int
    quick_total: int


@dataclass
class QuickQuestion:
    """A multiple-choice translation question."""

    phrase_id: str
    direction: str
    instruction: str
    prompt: str
    prompt_secondary: str
    correct: str
    options: list[str] = field(default_factory=list)

    def is_correct(self, choice: str | None) -> bool:
        return choice == self.correct


@dataclass
class StudySession:
    """An in-progress study session."""

    plan: SessionPlan
    is_extra_practice: bool = False
    questions: list[QuickQuestion] = field(default_factory=list)
    drill_id: str | None = None
    ratings: list[RatingRecord] = field(default_factory=list)
    quick_correct: int = 0
    quick_total: int = 0
    timer: SessionTimer = field(default_factory=SessionTimer)
    summary: SessionSummary | None = None

    def rate(self, planner: SessionPlanner, phrase_id: str, rating: Rating | str, today: str | None = None) -> ItemSchedule:
        """Apply a rating through the planner and remember it for the summary."""
        rating = Rating(rating)
        updated = planner.apply_rating(phrase_id, rating, today)
        self.ratings.append(RatingRecord(phrase_id, rating))
        return updated

    def answer_quick_test(self, correct: bool) -> None:
        self.quick_total += 1
        if correct:
            self.quick_correct += 1

    @property
    def accuracy(self) -> int:
        if not self.ratings:
            return 0
        return round(sum(1 for r in self.ratings if r.success) / len(self.ratings) * 100)

    @property
    def quick_score(self) -> int:
        if not self.quick_total:
            return 0
        return round(self.quick_correct / self.quick_total * 100)


# =============================================================================
# Session Content
# =============================================================================


def build_option_set(
    correct: str,
    primary: list[str],
    fallback: list[str] | None = None,
    rng: random.Random | None = None,
) -> list[str]:
    """
    Shuffle the correct answer in with up to three distractors.

    Distractors are distinct non-empty values other than the answer, drawn
    at random from ``primary`` first and topped up from ``fallback``.
    """
    rng = rng or random.Random()
    wanted = OPTION_COUNT - 1
    distractors: list[str] = []
    for source in (primary, fallback or []):
        candidates = [v for v in dict.fromkeys(source) if v and v != correct and v not in distractors]
        rng.shuffle(candidates)
        distractors.extend(candidates[: wanted - len(distractors)])

    options = [correct, *distractors]
    rng.shuffle(options)
    return options


def assign_directions(
    plan: SessionPlan,
    store: LocalStore,
    extra_practice: bool = False,
    rng: random.Random | None = None,
) -> None:
    """
    Choose which side of each card is shown first.

    Extra practice flips a coin per card. Otherwise well-known reviews
    (box 3 and up) are shown Bangla-first 40% of the time.
    """
    rng = rng or random.Random()
    for item in plan.items:
        if extra_practice:
            item.direction = "bn-to-en" if rng.random() < 0.5 else "en-to-bn"
        elif item.kind == "review" and _box_of(store, item.phrase_id) >= 3 and rng.random() < 0.4:
            item.direction = "bn-to-en"
        else:
            item.direction = "en-to-bn"


def primary_category(catalog: ContentCatalog, plan: SessionPlan) -> str:
    """Most frequent category among the plan's phrases."""
    counts = Counter(
        phrase.category for phrase in (catalog.get(item.phrase_id) for item in plan.items) if phrase
    )
    if not counts:
        return DEFAULT_CATEGORY
    return counts.most_common(1)[0][0]


def select_drill(
    catalog: ContentCatalog,
    plan: SessionPlan,
    rng: random.Random | None = None,
) -> Drill | None:
    """Pick a drill in the plan's main category, falling back to the first drill."""
    if not catalog.drills:
        return None
    rng = rng or random.Random()
    category = primary_category(catalog, plan)
    matching = [drill for drill in catalog.drills if drill.category == category]
    return rng.choice(matching) if matching else catalog.drills[0]


def quick_test_pool(store: LocalStore, plan: SessionPlan, extra_practice: bool = False) -> list[str]:
    """
    Phrase ids eligible for the quick test.

    A daily session uses the plan's phrases followed by every other learned
    phrase. Extra practice draws on learned phrases only, or on the plan's
    phrases when nothing is learned yet.
    """
    learned = [
        pid for pid, state in store.phrases.items()
        if ItemSchedule.from_dict(state).times_correct > 0
    ]
    question_ids = list(dict.fromkeys(item.phrase_id for item in plan.items))
    if extra_practice:
        pool = learned
    else:
        pool = question_ids + [pid for pid in learned if pid not in question_ids]
    return pool or question_ids


def build_quick_test(
    catalog: ContentCatalog,
    store: LocalStore,
    plan: SessionPlan,
    extra_practice: bool = False,
    rng: random.Random | None = None,
) -> list[QuickQuestion]:
    """
    Build up to eight multiple-choice questions from the quick-test pool.

    Each question asks for the English meaning of a Bangla phrase or for
    the phonetic Bangla of an English phrase. The Bangla-first direction
    is more likely for well-known phrases and in extra practice.
    """
    rng = rng or random.Random()
    pool = quick_test_pool(store, plan, extra_practice)
    rng.shuffle(pool)

    all_phrases = catalog.get_all()
    learned = [
        phrase for phrase in all_phrases
        if phrase.id in store.phrases and ItemSchedule.from_dict(store.phrases[phrase.id]).times_correct > 0
    ]
    sources = learned if extra_practice else all_phrases

    questions = []
    for phrase_id in pool[:QUICK_TEST_SIZE]:
        phrase = catalog.get(phrase_id)
        if phrase is None:
            continue

        if extra_practice:
            reverse_chance = 0.55
        elif _box_of(store, phrase.id) >= 3:
            reverse_chance = 0.35
        else:
            reverse_chance = 0.15

        direction = "bn-to-en" if rng.random() < reverse_chance else "en-to-bn"
        questions.append(_question(phrase, direction, sources, all_phrases, rng))
    return questions


def _question(
    phrase: Phrase,
    direction: str,
    sources: list[Phrase],
    all_phrases: list[Phrase],
    rng: random.Random,
) -> QuickQuestion:
    attr = "english" if direction == "bn-to-en" else "phonetic"
    primary = [getattr(p, attr) for p in sources if p.id != phrase.id]
    fallback = [getattr(p, attr) for p in all_phrases if p.id != phrase.id]
    correct = getattr(phrase, attr)
    bangla_first = direction == "bn-to-en"

    return QuickQuestion(
        phrase_id=phrase.id,
        direction=direction,
        instruction="Translate into English" if bangla_first else "Translate into phonetic Bangla",
        prompt=phrase.bangla if bangla_first else phrase.english,
        prompt_secondary=phrase.phonetic if bangla_first else "",
        correct=correct,
        options=build_option_set(correct, primary, fallback, rng),
    )


def _box_of(store: LocalStore, phrase_id: str) -> int:
    return ItemSchedule.from_dict(store.phrases.get(phrase_id)).box


# =============================================================================
# Lifecycle
# =============================================================================


def start_session(
    planner: SessionPlanner,
    extra_practice: bool = False,
    today: str | None = None,
    rng: random.Random | None = None,
) -> StudySession | None:
    """
    Build today's plan and open a session on it.

    New phrases get their schedule created up front so they count as
    "known" from now on. The session also carries card directions, the
    conversation drill and the quick-test questions.

    Returns:
        StudySession, or None if there is nothing to study
    """
    today = today or today_iso()
    plan = planner.build_plan(today=today, extra_practice=extra_practice)
    if plan.is_empty:
        logger.info("No phrases available for a session")
        return None

    for item in plan.items:
        if item.kind == "new":
            planner.ensure_phrase_state(item.phrase_id, today)
    planner.store.save()

    rng = rng or random.Random()
    assign_directions(plan, planner.store, extra_practice, rng)
    drill = select_drill(planner.catalog, plan, rng)
    questions = build_quick_test(planner.catalog, planner.store, plan, extra_practice, rng)

    logger.info(
        f"Session started: {plan.review_count} review + {plan.new_count} new "
        f"(~{plan.estimated_minutes} min), {len(questions)} quick-test questions"
    )
    return StudySession(
        plan=plan,
        is_extra_practice=extra_practice,
        questions=questions,
        drill_id=drill.id if drill else None,
    )


def finalize_session(
    store: LocalStore,
    session: StudySession,
    today: str | None = None,
    elapsed_seconds: float | None = None,
) -> SessionSummary:
    """
    Fold a finished session into stats and the per-day record.

    Only the first regular (non-extra) completion of a day counts towards
    totals and the streak. Calling this twice on the same session returns
    the first summary without touching the store.
    """
    if session.summary is not None:
        return session.summary

    session.timer.pause()
    today = today or today_iso()
    elapsed = session.timer.elapsed_seconds if elapsed_seconds is None else elapsed_seconds
    elapsed_sec = max(1, round(elapsed))
    elapsed_min = max(1, round(elapsed_sec / 60))

    reviewed = len(session.plan.items)
    new_learned = session.plan.new_count
    stats = store.stats
    sessions = store.document["sessions"]

    previous_record = sessions.get(today) or {}
    already_completed = bool(previous_record.get("completed"))

    if not already_completed and not session.is_extra_practice:
        previous_date = stats.get("lastSessionDate")

        stats["totalSessions"] = (stats.get("totalSessions") or 0) + 1
        stats["totalMinutes"] = (stats.get("totalMinutes") or 0) + elapsed_min
        stats["lastSessionDate"] = today

        streak = stats.get("currentStreak") or 0
        if not previous_date:
            streak = 1
        else:
            gap = diff_calendar_days(previous_date, today)
            if gap == 0:
                streak = max(1, streak)
            elif gap == 1:
                streak += 1
            else:
                streak = 1
        stats["currentStreak"] = streak
        stats["longestStreak"] = max(stats.get("longestStreak") or 0, streak)

    sessions[today] = {
        **previous_record,
        "completed": True,
        "completedAt": now_iso(),
        "elapsedSec": (previous_record.get("elapsedSec") or 0) + elapsed_sec,
        "reviewed": reviewed,
        "newLearned": new_learned,
        "accuracy": session.accuracy,
        "quickfireScore": session.quick_score,
        "quickfireCorrect": session.quick_correct,
        "quickfireTotal": session.quick_total,
        "extraPracticeCount": (previous_record.get("extraPracticeCount") or 0)
        + (1 if session.is_extra_practice else 0),
    }

    stats["phrasesLearned"] = count_learned(store.phrases)
    store.save()

    session.summary = SessionSummary(
        elapsed_minutes=elapsed_min,
        reviewed=reviewed,
        new_learned=new_learned,
        accuracy=session.accuracy,
        quick_correct=session.quick_correct,
        quick_total=session.quick_total,
    )
    logger.info(
        f"Session complete: {reviewed} items, {session.accuracy}% accuracy, "
        f"streak={stats.get('currentStreak')}"
    )
    return session.summary


def weekly_tracker(store: LocalStore, today: str | None = None) -> list[dict]:
    """Monday-to-Sunday completion view for the current week."""
    current = date.fromisoformat(today or today_iso())
    monday = current - timedelta(days=current.weekday())

    rows = []
    for idx, label in enumerate(WEEKDAY_LABELS):
        day = (monday + timedelta(days=idx)).isoformat()
        record = store.document["sessions"].get(day)
        rows.append({
            "label": label,
            "date": day,
            "done": bool(record and record.get("completed")),
            "minutes": round((record.get("elapsedSec") or 0) / 60) if record else 0,
        })
    return rows
