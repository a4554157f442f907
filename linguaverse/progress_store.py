"""JSON backed persistence for learner progress and vocabulary ledgers."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple, Union

from linguaverse.errors import CourseNotFoundError, ItemNotFoundError, StaleProgressError
from linguaverse.vocab_item import VocabularyItem

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Paths and constants
# ---------------------------------------------------------------------------
STATE_ROOT = Path("res/state")
STATE_FILE = STATE_ROOT / "linguaverse_state.json"
DEFAULT_USERNAME = "Operative"
MAX_HEARTS = 5

PathLike = Union[str, Path]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _resolve(path: Optional[PathLike]) -> Path:
    return Path(path) if path is not None else STATE_FILE


def _load_json(path: Path) -> MutableMapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    _ensure_parent(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=4, ensure_ascii=False)
    tmp_path.replace(path)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Convert a stored ISO-8601 value into an aware UTC datetime."""

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1]
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def empty_state() -> Dict[str, Any]:
    return {
        "global": {
            "username": DEFAULT_USERNAME,
            "hearts": MAX_HEARTS,
            "streak": 0,
            "lastLessonDate": None,
        },
        "courses": {},
        "activeCourseId": None,
    }


def _empty_course() -> Dict[str, Any]:
    return {"xp": 0, "completedLessons": [], "vocabulary": {}, "version": 0}


# ---------------------------------------------------------------------------
# Progress model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserProgress:
    """Snapshot of a learner's progress in their active course.

    ``version`` is the stored course version the snapshot was read from and
    is checked again when the snapshot is saved.
    """

    course_id: str
    username: str = DEFAULT_USERNAME
    hearts: int = MAX_HEARTS
    xp: int = 0
    streak: int = 0
    last_lesson_date: Optional[datetime] = None
    completed_lessons: Tuple[str, ...] = ()
    vocabulary: Dict[str, VocabularyItem] = field(default_factory=dict)
    version: int = 0

    def replace(self, **changes: Any) -> "UserProgress":
        return replace(self, **changes)


def get_item(progress: UserProgress, item_id: str) -> VocabularyItem:
    try:
        return progress.vocabulary[item_id]
    except KeyError:
        raise ItemNotFoundError(item_id) from None


def vocabulary_from_storage(payload: Mapping[str, Any]) -> Dict[str, VocabularyItem]:
    vocabulary: Dict[str, VocabularyItem] = {}
    for key, record in payload.items():
        if not isinstance(record, Mapping):
            logger.warning("Skipping malformed vocabulary record %r", key)
            continue
        item = VocabularyItem.from_storage({"id": key, **record})
        vocabulary[item.id] = item
    return vocabulary


def vocabulary_to_storage(vocabulary: Mapping[str, VocabularyItem]) -> Dict[str, Any]:
    return {item_id: item.to_storage_dict() for item_id, item in vocabulary.items()}


# ---------------------------------------------------------------------------
# State file access
# ---------------------------------------------------------------------------

def load_state(path: Optional[PathLike] = None) -> Dict[str, Any]:
    """Read the whole state file, falling back to an empty state."""

    state_path = _resolve(path)
    if not state_path.exists():
        return empty_state()
    try:
        payload = _load_json(state_path)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load state from %s: %s", state_path, exc)
        return empty_state()
    if not isinstance(payload, Mapping):
        logger.warning("State file %s does not hold an object", state_path)
        return empty_state()

    state = empty_state()
    state["global"].update(payload.get("global") or {})
    courses = payload.get("courses") or {}
    state["courses"] = {
        str(course_id): {**_empty_course(), **data}
        for course_id, data in courses.items()
        if isinstance(data, Mapping)
    }
    state["activeCourseId"] = payload.get("activeCourseId")
    return state


def save_state(state: Mapping[str, Any], path: Optional[PathLike] = None) -> None:
    state_path = _resolve(path)
    with state_lock(path):
        _write_json(state_path, state)
    logger.info("Saved learner state to %s", state_path)


def _progress_from_state(state: Mapping[str, Any], course_id: str) -> UserProgress:
    course = state["courses"].get(course_id)
    if course is None:
        raise CourseNotFoundError(course_id)
    global_data = state["global"]
    return UserProgress(
        course_id=course_id,
        username=str(global_data.get("username") or DEFAULT_USERNAME),
        hearts=int(global_data.get("hearts", MAX_HEARTS)),
        xp=int(course.get("xp", 0) or 0),
        streak=int(global_data.get("streak", 0) or 0),
        last_lesson_date=parse_timestamp(global_data.get("lastLessonDate")),
        completed_lessons=tuple(course.get("completedLessons") or ()),
        vocabulary=vocabulary_from_storage(course.get("vocabulary") or {}),
        version=int(course.get("version", 0) or 0),
    )


def get_progress(path: Optional[PathLike] = None) -> Optional[UserProgress]:
    """Return progress for the active course, or ``None`` before onboarding."""

    state = load_state(path)
    course_id = state.get("activeCourseId")
    if not course_id or course_id not in state["courses"]:
        return None
    return _progress_from_state(state, course_id)


def get_course_progress(course_id: str, path: Optional[PathLike] = None) -> UserProgress:
    return _progress_from_state(load_state(path), course_id)


def save_progress(progress: UserProgress, path: Optional[PathLike] = None) -> UserProgress:
    """Write *progress* back and return it with its new version.

    Raises :class:`StaleProgressError` when the stored course moved past the
    version the snapshot was read from.
    """

    with state_lock(path):
        return _save_progress_locked(progress, path)


def _save_progress_locked(progress: UserProgress, path: Optional[PathLike]) -> UserProgress:
    state = load_state(path)
    course = state["courses"].setdefault(progress.course_id, _empty_course())
    stored_version = int(course.get("version", 0) or 0)
    if stored_version != progress.version:
        raise StaleProgressError(progress.course_id, progress.version, stored_version)

    state["global"].update(
        {
            "username": progress.username,
            "hearts": progress.hearts,
            "streak": progress.streak,
            "lastLessonDate": format_timestamp(progress.last_lesson_date),
        }
    )
    new_version = stored_version + 1
    course.update(
        {
            "xp": progress.xp,
            "completedLessons": list(progress.completed_lessons),
            "vocabulary": vocabulary_to_storage(progress.vocabulary),
            "version": new_version,
        }
    )
    state["activeCourseId"] = progress.course_id
    save_state(state, path)
    return progress.replace(version=new_version)


def init_course(course_id: str, path: Optional[PathLike] = None) -> UserProgress:
    """Create *course_id* if needed and make it the active course."""

    with state_lock(path):
        state = load_state(path)
        if course_id not in state["courses"]:
            state["courses"][course_id] = _empty_course()
            logger.info("Initialised course %s", course_id)
        state["activeCourseId"] = course_id
        save_state(state, path)
    return _progress_from_state(state, course_id)


def available_courses(path: Optional[PathLike] = None) -> List[str]:
    return list(load_state(path)["courses"].keys())


# ---------------------------------------------------------------------------
# Write serialisation
# ---------------------------------------------------------------------------
_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def state_lock(path: Optional[PathLike] = None) -> threading.RLock:
    """Return the lock guarding load-modify-save cycles on the state file.

    A state file holds one learner, so this is the per-learner write lock.
    Every writer in this module takes it; callers hold it to make a longer
    read-modify-write atomic.
    """

    key = str(_resolve(path).resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.RLock()
        return lock


__all__ = [
    "DEFAULT_USERNAME",
    "MAX_HEARTS",
    "STATE_FILE",
    "UserProgress",
    "available_courses",
    "empty_state",
    "format_timestamp",
    "get_course_progress",
    "get_item",
    "get_progress",
    "init_course",
    "state_lock",
    "load_state",
    "parse_timestamp",
    "save_progress",
    "save_state",
    "vocabulary_from_storage",
    "vocabulary_to_storage",
]
