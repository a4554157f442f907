"""Domain model for a learned vocabulary item.

This module defines :class:`VocabularyItem`, an immutable record holding a
word together with its spaced-repetition schedule. It also provides the
deterministic id derivation used to key items inside a learner's ledger and
helpers for serialising items to and from the JSON records the progress store
persists.
"""

from __future__ import annotations

import hashlib
import math
import time
import unicodedata
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

MS_PER_DAY = 86_400_000
ID_HEX_LENGTH = 32


def now_ms() -> int:
    """Return the current time as epoch milliseconds."""

    return int(time.time() * 1000)


def normalise_word(word: str) -> str:
    """Canonical text form used for id derivation."""

    return unicodedata.normalize("NFC", str(word)).strip()


def make_item_id(word: str) -> str:
    """Derive the stable ledger id for *word*.

    The id is the first 128 bits of the SHA-256 digest of the NFC-normalised
    word text, so the same word always maps to the same id.
    """

    text = normalise_word(word)
    if not text:
        raise ValueError("Cannot derive an id from an empty word")
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return digest[:ID_HEX_LENGTH]


def _to_int(value: Any, fallback: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return fallback


def _to_float(value: Any, fallback: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(result):
        return fallback
    return result


@dataclass(frozen=True)
class VocabularyItem:
    """Scheduling state for a single learned word.

    Parameters
    ----------
    id:
        Ledger key derived from ``word`` with :func:`make_item_id`.
    word / meaning / reading:
        Surface form, gloss and optional pronunciation aid.
    interval:
        Days until the next review after the last successful recall.
    repetition:
        Consecutive successful recalls since the last lapse.
    ease_factor:
        Growth multiplier for the interval, never below the engine floor.
    next_review:
        Epoch milliseconds at which the item becomes due.
    """

    id: str
    word: str
    meaning: str
    reading: Optional[str] = None
    interval: int = 0
    repetition: int = 0
    ease_factor: float = 2.5
    next_review: int = 0

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_storage(
        cls,
        payload: Mapping[str, Any],
        *,
        default_ease: float = 2.5,
        min_ease: float = 1.3,
    ) -> "VocabularyItem":
        """Create an item from a stored JSON record.

        Missing scheduling fields fall back to a freshly created item's values
        and an ease factor below *min_ease* is raised to the floor.
        """

        word = payload.get("word")
        if not word:
            raise ValueError("Vocabulary records must define a word")
        word = str(word)
        item_id = payload.get("id") or make_item_id(word)
        reading = payload.get("reading")
        ease = _to_float(
            payload.get("easeFactor", payload.get("ease_factor")), default_ease
        )
        next_review = payload.get("nextReview", payload.get("next_review"))
        return cls(
            id=str(item_id),
            word=word,
            meaning=str(payload.get("meaning") or ""),
            reading=str(reading) if reading not in (None, "") else None,
            interval=max(_to_int(payload.get("interval"), 0), 0),
            repetition=max(_to_int(payload.get("repetition"), 0), 0),
            ease_factor=max(ease, min_ease),
            next_review=_to_int(next_review, 0),
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialise the item into a JSON friendly dictionary."""

        data: Dict[str, Any] = {
            "id": self.id,
            "word": self.word,
            "meaning": self.meaning,
            "nextReview": self.next_review,
            "interval": self.interval,
            "repetition": self.repetition,
            "easeFactor": self.ease_factor,
        }
        if self.reading is not None:
            data["reading"] = self.reading
        return data

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    def replace(self, **changes: Any) -> "VocabularyItem":
        """Return a new instance with *changes* applied."""

        return replace(self, **changes)


def is_due(item: VocabularyItem, now: Optional[int] = None) -> bool:
    current = now if now is not None else now_ms()
    return item.next_review <= current


def days_until_review(item: VocabularyItem, now: Optional[int] = None) -> int:
    """Whole days (rounded up) until *item* is due; ``0`` when already due."""

    current = now if now is not None else now_ms()
    remaining = item.next_review - current
    if remaining <= 0:
        return 0
    return math.ceil(remaining / MS_PER_DAY)


def describe_due(item: VocabularyItem, now: Optional[int] = None) -> str:
    """Short label used by the vocabulary page."""

    if is_due(item, now):
        return "NOW"
    days = days_until_review(item, now)
    return f"{days} Day" if days == 1 else f"{days} Days"


__all__ = [
    "ID_HEX_LENGTH",
    "MS_PER_DAY",
    "VocabularyItem",
    "days_until_review",
    "describe_due",
    "is_due",
    "make_item_id",
    "normalise_word",
    "now_ms",
]
