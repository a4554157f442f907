"""SM-2 spaced repetition scheduling for vocabulary items.

This module implements the classic SM-2 review policy over
:class:`~linguaverse.vocab_item.VocabularyItem` records. Every function is a
pure transformation: items go in, new items come out, and no state is kept
between calls so the rest of the code base decides where schedules live.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from linguaverse.errors import InvalidGradeError
from linguaverse.vocab_item import (
    MS_PER_DAY,
    VocabularyItem,
    make_item_id,
    now_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASS_THRESHOLD = 3
MIN_GRADE = 0
MAX_GRADE = 5
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
LAPSE_INTERVAL = 1
REVIEW_BATCH_SIZE = 10

# Grade recorded for a word that was practised in a completed lesson.
LESSON_PASS_GRADE = 4

__all__ = [
    "DEFAULT_EASE_FACTOR",
    "LESSON_PASS_GRADE",
    "MIN_EASE_FACTOR",
    "PASS_THRESHOLD",
    "REVIEW_BATCH_SIZE",
    "SchedulerConfig",
    "create_item",
    "due_items",
    "load_config",
    "next_ease_factor",
    "review",
    "select_due_items",
]


@dataclass(frozen=True)
class SchedulerConfig:
    """Tunable parameters of the SM-2 policy.

    The defaults reproduce the classic algorithm. ``ease_floor`` is a hard
    lower bound; there is deliberately no upper bound on the ease factor.
    """

    default_ease: float = DEFAULT_EASE_FACTOR
    ease_floor: float = MIN_EASE_FACTOR
    pass_threshold: int = PASS_THRESHOLD
    first_interval: int = FIRST_INTERVAL
    second_interval: int = SECOND_INTERVAL
    lapse_interval: int = LAPSE_INTERVAL
    batch_size: int = REVIEW_BATCH_SIZE

    def __post_init__(self) -> None:
        if self.ease_floor <= 0:
            raise ValueError("ease_floor must be positive")
        if self.default_ease < self.ease_floor:
            raise ValueError("default_ease must not be below ease_floor")
        if not MIN_GRADE < self.pass_threshold <= MAX_GRADE:
            raise ValueError("pass_threshold must lie inside the grade range")
        if min(self.first_interval, self.second_interval, self.lapse_interval) < 0:
            raise ValueError("intervals must not be negative")
        if self.batch_size < 0:
            raise ValueError("batch_size must not be negative")


DEFAULT_CONFIG = SchedulerConfig()


def load_config(path: Union[str, Path]) -> SchedulerConfig:
    """Load a :class:`SchedulerConfig` from a JSON file.

    Unknown keys are ignored and missing keys keep their defaults.
    """

    config_path = Path(path)
    with config_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    known = {f.name for f in fields(SchedulerConfig)}
    values = {key: value for key, value in payload.items() if key in known}
    ignored = sorted(set(payload) - known)
    if ignored:
        logger.warning("Ignoring unknown scheduler settings in %s: %s", config_path, ignored)
    return SchedulerConfig(**values)


# ---------------------------------------------------------------------------
# Item creation
# ---------------------------------------------------------------------------

def create_item(
    word: str,
    meaning: str,
    reading: Optional[str] = None,
    *,
    now: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> VocabularyItem:
    """Return a new item for *word*, due immediately."""

    cfg = config or DEFAULT_CONFIG
    current = now if now is not None else now_ms()
    return VocabularyItem(
        id=make_item_id(word),
        word=word,
        meaning=meaning,
        reading=reading or None,
        interval=0,
        repetition=0,
        ease_factor=cfg.default_ease,
        next_review=current,
    )


# ---------------------------------------------------------------------------
# Grade transition
# ---------------------------------------------------------------------------

def _normalise_grade(grade: Any) -> int:
    if isinstance(grade, bool):
        raise InvalidGradeError(f"Unsupported grade: {grade!r}")
    if isinstance(grade, int):
        value = grade
    elif isinstance(grade, str) and grade.strip().isdigit():
        value = int(grade.strip())
    else:
        raise InvalidGradeError(f"Unsupported grade: {grade!r}")
    if not MIN_GRADE <= value <= MAX_GRADE:
        raise InvalidGradeError(
            f"grade must be between {MIN_GRADE} and {MAX_GRADE}, got {value}"
        )
    return value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def next_ease_factor(
    ease_factor: float, grade: int, *, config: Optional[SchedulerConfig] = None
) -> float:
    """Apply the SM-2 ease adjustment for *grade*, respecting the floor."""

    cfg = config or DEFAULT_CONFIG
    miss = MAX_GRADE - grade
    updated = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    if updated < cfg.ease_floor:
        updated = cfg.ease_floor
    return updated


def review(
    item: VocabularyItem,
    grade: Any,
    *,
    now: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> VocabularyItem:
    """Apply a review *grade* (``0``-``5``) to *item* and return the new item.

    The next review is anchored on *now* (epoch milliseconds), not on the
    previous due date.
    """

    cfg = config or DEFAULT_CONFIG
    score = _normalise_grade(grade)
    current = now if now is not None else now_ms()

    if score >= cfg.pass_threshold:
        if item.repetition == 0:
            interval = cfg.first_interval
        elif item.repetition == 1:
            interval = cfg.second_interval
        else:
            interval = _round_half_up(item.interval * item.ease_factor)
        repetition = item.repetition + 1
    else:
        repetition = 0
        interval = cfg.lapse_interval

    ease_factor = next_ease_factor(item.ease_factor, score, config=cfg)
    updated = item.replace(
        interval=interval,
        repetition=repetition,
        ease_factor=ease_factor,
        next_review=current + interval * MS_PER_DAY,
    )
    logger.debug(
        "Reviewed %s grade=%d interval=%d->%d repetition=%d ease=%.4f",
        item.id,
        score,
        item.interval,
        interval,
        repetition,
        ease_factor,
    )
    return updated


# ---------------------------------------------------------------------------
# Due-item selection
# ---------------------------------------------------------------------------

def _iter_items(
    items: Union[Mapping[str, VocabularyItem], Iterable[VocabularyItem]]
) -> Iterable[VocabularyItem]:
    if isinstance(items, Mapping):
        return items.values()
    return items


def select_due_items(
    items: Union[Mapping[str, VocabularyItem], Iterable[VocabularyItem]],
    limit: Optional[int] = None,
    *,
    config: Optional[SchedulerConfig] = None,
) -> List[VocabularyItem]:
    """Pick the review batch: the *limit* items with the earliest ``next_review``.

    Items are not filtered by due-ness; the most overdue items simply sort
    first.
    """

    cfg = config or DEFAULT_CONFIG
    cap = cfg.batch_size if limit is None else limit
    if cap < 0:
        raise ValueError("limit must not be negative")
    ordered = sorted(_iter_items(items), key=lambda item: item.next_review)
    return ordered[:cap]


def due_items(
    items: Union[Mapping[str, VocabularyItem], Iterable[VocabularyItem]],
    now: Optional[int] = None,
) -> List[VocabularyItem]:
    """Return every item whose ``next_review`` is at or before *now*."""

    current = now if now is not None else now_ms()
    return sorted(
        (item for item in _iter_items(items) if item.next_review <= current),
        key=lambda item: item.next_review,
    )
