"""High level helpers that orchestrate lesson completion and persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from linguaverse import progress_store
from linguaverse.errors import IdCollisionError, ItemNotFoundError
from linguaverse.progress_store import MAX_HEARTS, UserProgress
from linguaverse.srs_engine import (
    LESSON_PASS_GRADE,
    SchedulerConfig,
    create_item,
    review,
    select_due_items,
)
from linguaverse.vocab_item import VocabularyItem, make_item_id, normalise_word, now_ms

logger = logging.getLogger(__name__)

REVIEW_LESSON_PREFIX = "training"

Vocabulary = Dict[str, VocabularyItem]
Grades = Union[int, Mapping[str, int]]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are read as UTC, matching the progress store."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_ms(value: datetime) -> int:
    return int(_ensure_utc(value).timestamp() * 1000)


@dataclass(frozen=True)
class LessonWord:
    """A word taught by a generated lesson."""

    word: str
    meaning: str
    reading: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "LessonWord":
        word = payload.get("word")
        if not word:
            raise ValueError("Lesson vocabulary entries must define a word")
        reading = payload.get("reading")
        return cls(
            word=str(word),
            meaning=str(payload.get("meaning") or ""),
            reading=str(reading) if reading else None,
        )


def _coerce_word(entry: Union[LessonWord, Mapping[str, Any]]) -> LessonWord:
    if isinstance(entry, LessonWord):
        return entry
    if isinstance(entry, Mapping):
        return LessonWord.from_mapping(entry)
    raise TypeError("Unsupported lesson vocabulary entry format")


# ---------------------------------------------------------------------------
# Vocabulary updates
# ---------------------------------------------------------------------------

def learn_words(
    vocabulary: Mapping[str, VocabularyItem],
    words: Iterable[Union[LessonWord, Mapping[str, Any]]],
    *,
    now: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> Vocabulary:
    """Add the words of a completed lesson to *vocabulary*.

    Unseen words become new items due immediately; words already in the
    ledger are graded as a pass. The input mapping is left untouched.
    """

    current = now if now is not None else now_ms()
    updated: Vocabulary = dict(vocabulary)
    for entry in words:
        lesson_word = _coerce_word(entry)
        item_id = make_item_id(lesson_word.word)
        existing = updated.get(item_id)
        if existing is None:
            updated[item_id] = create_item(
                lesson_word.word,
                lesson_word.meaning,
                lesson_word.reading,
                now=current,
                config=config,
            )
            logger.debug("Learned new word %r as %s", lesson_word.word, item_id)
            continue
        if normalise_word(existing.word) != normalise_word(lesson_word.word):
            raise IdCollisionError(item_id, existing.word, lesson_word.word)
        updated[item_id] = review(existing, LESSON_PASS_GRADE, now=current, config=config)
    return updated


@dataclass(frozen=True)
class ReviewSession:
    """A review batch pinned at the moment the session started.

    Completing the session grades exactly ``item_ids``, even if the ledger
    gained or rescheduled items in the meantime.
    """

    lesson_id: str
    item_ids: Tuple[str, ...]
    words: Tuple[str, ...]
    started_at: int

    @property
    def prompt_topic(self) -> str:
        return "Review: " + ", ".join(self.words)


def is_review_lesson(lesson_id: str) -> bool:
    return lesson_id.startswith(REVIEW_LESSON_PREFIX)


def start_review_session(
    vocabulary: Mapping[str, VocabularyItem],
    *,
    now: Optional[int] = None,
    limit: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> Optional[ReviewSession]:
    """Select the review batch once; ``None`` when the ledger is empty."""

    if not vocabulary:
        return None
    current = now if now is not None else now_ms()
    batch = select_due_items(vocabulary, limit, config=config)
    return ReviewSession(
        lesson_id=f"{REVIEW_LESSON_PREFIX}-{current}",
        item_ids=tuple(item.id for item in batch),
        words=tuple(item.word for item in batch),
        started_at=current,
    )


def complete_review_session(
    vocabulary: Mapping[str, VocabularyItem],
    session: ReviewSession,
    grades: Grades = LESSON_PASS_GRADE,
    *,
    now: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> Vocabulary:
    """Apply review grades to the items pinned by *session*.

    *grades* is either one grade for every item or a mapping from item id to
    grade; ids missing from such a mapping are left unscheduled.
    """

    current = now if now is not None else now_ms()
    updated: Vocabulary = dict(vocabulary)
    for item_id in session.item_ids:
        item = updated.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if isinstance(grades, Mapping):
            if item_id not in grades:
                continue
            grade = grades[item_id]
        else:
            grade = grades
        updated[item_id] = review(item, grade, now=current, config=config)
    logger.info(
        "Completed review session %s over %d item(s)",
        session.lesson_id,
        len(session.item_ids),
    )
    return updated


# ---------------------------------------------------------------------------
# Streak bookkeeping
# ---------------------------------------------------------------------------

def current_streak(
    last_lesson_date: Optional[datetime], streak: int, now: Optional[datetime] = None
) -> int:
    """Streak as displayed on load: it lapses to ``0`` after a missed day."""

    if last_lesson_date is None:
        return 0
    today = (_ensure_utc(now) if now is not None else _utc_now()).date()
    last = _ensure_utc(last_lesson_date).date()
    if last in (today, today - timedelta(days=1)):
        return streak
    return 0


def load_active_progress(
    path: Optional[Union[str, Path]] = None, now: Optional[datetime] = None
) -> Optional[UserProgress]:
    """Active course progress with the streak decayed for missed days."""

    progress = progress_store.get_progress(path)
    if progress is None:
        return None
    return progress.replace(
        streak=current_streak(progress.last_lesson_date, progress.streak, now)
    )


def update_streak(
    last_lesson_date: Optional[datetime], streak: int, now: Optional[datetime] = None
) -> int:
    """Streak after completing a lesson at *now*."""

    if last_lesson_date is None:
        return 1
    today = (_ensure_utc(now) if now is not None else _utc_now()).date()
    last = _ensure_utc(last_lesson_date).date()
    if last == today:
        return streak
    if last == today - timedelta(days=1):
        return streak + 1
    return 1


# ---------------------------------------------------------------------------
# Lesson completion
# ---------------------------------------------------------------------------

def complete_lesson(
    progress: UserProgress,
    lesson_id: str,
    xp_earned: int,
    *,
    words: Iterable[Union[LessonWord, Mapping[str, Any]]] = (),
    session: Optional[ReviewSession] = None,
    grades: Grades = LESSON_PASS_GRADE,
    now: Optional[datetime] = None,
    config: Optional[SchedulerConfig] = None,
) -> UserProgress:
    """Return *progress* updated for a completed lesson.

    Review lessons must pass the :class:`ReviewSession` they were started
    with; they are not recorded in ``completed_lessons``.
    """

    if xp_earned < 0:
        raise ValueError("xp_earned must not be negative")
    event_dt = _ensure_utc(now) if now is not None else _utc_now()
    event_ms = _to_ms(event_dt)
    review_lesson = is_review_lesson(lesson_id)
    if review_lesson and session is None:
        raise ValueError(f"Review lesson {lesson_id!r} requires its ReviewSession")

    vocabulary = learn_words(progress.vocabulary, words, now=event_ms, config=config)
    if session is not None:
        vocabulary = complete_review_session(
            vocabulary, session, grades, now=event_ms, config=config
        )

    completed = progress.completed_lessons
    if not review_lesson and lesson_id not in completed:
        completed = completed + (lesson_id,)

    return progress.replace(
        xp=progress.xp + xp_earned,
        hearts=MAX_HEARTS,
        streak=update_streak(progress.last_lesson_date, progress.streak, event_dt),
        last_lesson_date=event_dt,
        completed_lessons=completed,
        vocabulary=vocabulary,
    )


def submit_lesson(
    lesson_id: str,
    xp_earned: int,
    *,
    words: Iterable[Union[LessonWord, Mapping[str, Any]]] = (),
    session: Optional[ReviewSession] = None,
    grades: Grades = LESSON_PASS_GRADE,
    now: Optional[datetime] = None,
    path: Optional[Union[str, Path]] = None,
    config: Optional[SchedulerConfig] = None,
) -> UserProgress:
    """Load the active course, complete the lesson and persist the result.

    The read-modify-write cycle runs under the state file lock so concurrent
    completions and course changes for one learner apply one after another.
    """

    with progress_store.state_lock(path):
        progress = progress_store.get_progress(path)
        if progress is None:
            raise LookupError("No active course; initialise one before submitting lessons")
        updated = complete_lesson(
            progress,
            lesson_id,
            xp_earned,
            words=words,
            session=session,
            grades=grades,
            now=now,
            config=config,
        )
        return progress_store.save_progress(updated, path)


__all__ = [
    "LessonWord",
    "REVIEW_LESSON_PREFIX",
    "ReviewSession",
    "complete_lesson",
    "complete_review_session",
    "current_streak",
    "is_review_lesson",
    "learn_words",
    "load_active_progress",
    "start_review_session",
    "submit_lesson",
    "update_streak",
]
