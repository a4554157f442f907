"""Exceptions raised by the linguaverse package."""

from __future__ import annotations


class InvalidGradeError(ValueError):
    """A review grade outside the supported ``[0, 5]`` integer range."""


class ItemNotFoundError(KeyError):
    """A vocabulary id that is not present in the learner's ledger."""

    def __init__(self, item_id: str) -> None:
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Vocabulary item '{self.item_id}' not found"


class CourseNotFoundError(KeyError):
    """Progress requested for a course that was never initialised."""

    def __init__(self, course_id: str) -> None:
        super().__init__(course_id)
        self.course_id = course_id

    def __str__(self) -> str:
        return f"Course '{self.course_id}' has not been initialised"


class IdCollisionError(RuntimeError):
    """Two distinct words derived the same ledger id."""

    def __init__(self, item_id: str, existing_word: str, new_word: str) -> None:
        super().__init__(
            f"Id {item_id} already belongs to {existing_word!r}, "
            f"cannot store {new_word!r}"
        )
        self.item_id = item_id
        self.existing_word = existing_word
        self.new_word = new_word


class StaleProgressError(RuntimeError):
    """A course was saved from a snapshot older than the stored one."""

    def __init__(self, course_id: str, expected: int, found: int) -> None:
        super().__init__(
            f"Course '{course_id}' changed on disk (expected version {expected}, "
            f"found {found})"
        )
        self.course_id = course_id
        self.expected = expected
        self.found = found


__all__ = [
    "CourseNotFoundError",
    "IdCollisionError",
    "InvalidGradeError",
    "ItemNotFoundError",
    "StaleProgressError",
]
