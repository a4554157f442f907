"""Spaced-repetition core for the linguaverse language-learning app."""

from .srs_engine import (
    SchedulerConfig,
    create_item,
    review,
    select_due_items,
)
from .vocab_item import VocabularyItem, make_item_id

__all__ = [
    "SchedulerConfig",
    "VocabularyItem",
    "create_item",
    "make_item_id",
    "review",
    "select_due_items",
]
