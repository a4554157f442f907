import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from linguaverse import progress_store
from linguaverse.errors import IdCollisionError, ItemNotFoundError
from linguaverse.review_service import (
    LessonWord,
    complete_lesson,
    complete_review_session,
    current_streak,
    learn_words,
    load_active_progress,
    start_review_session,
    submit_lesson,
    update_streak,
)
from linguaverse.srs_engine import create_item, review
from linguaverse.vocab_item import MS_PER_DAY, VocabularyItem, make_item_id

NOW = 1_700_000_000_000
LESSON_WORDS = [
    {"word": "ねこ", "meaning": "cat", "reading": "neko"},
    {"word": "いぬ", "meaning": "dog", "reading": "inu"},
]


def _ledger(count, base=NOW):
    items = [
        VocabularyItem(id=f"id{i:02d}", word=f"w{i:02d}", meaning="", next_review=base + i)
        for i in range(count)
    ]
    return {item.id: item for item in items}


def test_learn_words_creates_new_items():
    vocabulary = learn_words({}, LESSON_WORDS, now=NOW)

    neko = vocabulary[make_item_id("ねこ")]
    assert len(vocabulary) == 2
    assert neko.reading == "neko"
    assert neko.repetition == 0
    assert neko.next_review == NOW


def test_learn_words_grades_known_words_as_pass():
    vocabulary = learn_words({}, LESSON_WORDS[:1], now=NOW)
    original = dict(vocabulary)

    again = learn_words(vocabulary, [LessonWord("ねこ", "cat")], now=NOW + 10)

    item = again[make_item_id("ねこ")]
    assert item.repetition == 1
    assert item.interval == 1
    assert item.next_review == NOW + 10 + MS_PER_DAY
    assert vocabulary == original


def test_learn_words_detects_collision():
    item_id = make_item_id("ねこ")
    impostor = VocabularyItem(id=item_id, word="something else", meaning="")
    with pytest.raises(IdCollisionError):
        learn_words({item_id: impostor}, LESSON_WORDS[:1], now=NOW)


def test_learn_words_requires_word():
    with pytest.raises(ValueError):
        learn_words({}, [{"meaning": "no word"}], now=NOW)


def test_start_review_session_pins_batch():
    vocabulary = _ledger(12)
    session = start_review_session(vocabulary, now=NOW)

    assert session.lesson_id == f"training-{NOW}"
    assert session.item_ids == tuple(f"id{i:02d}" for i in range(10))
    assert session.prompt_topic.startswith("Review: w00, w01")


def test_start_review_session_on_empty_ledger():
    assert start_review_session({}, now=NOW) is None


def test_completion_grades_pinned_items_even_if_ledger_changed():
    vocabulary = _ledger(12)
    session = start_review_session(vocabulary, now=NOW)

    # A new word learned mid-session would sort first on re-selection.
    newcomer = create_item("newcomer", "", now=NOW - MS_PER_DAY)
    vocabulary[newcomer.id] = newcomer

    later = NOW + 1000
    updated = complete_review_session(vocabulary, session, now=later)

    for item_id in session.item_ids:
        assert updated[item_id].repetition == 1
        assert updated[item_id].next_review == later + MS_PER_DAY
    assert updated[newcomer.id] == newcomer
    assert updated["id10"] == vocabulary["id10"]


def test_completion_with_per_item_grades():
    vocabulary = _ledger(3)
    session = start_review_session(vocabulary, now=NOW)

    updated = complete_review_session(vocabulary, session, {"id00": 0, "id01": 5}, now=NOW)

    assert updated["id00"].interval == 1
    assert updated["id00"].ease_factor == pytest.approx(1.7)
    assert updated["id01"].ease_factor == pytest.approx(2.6)
    assert updated["id02"] == vocabulary["id02"]


def test_completion_with_missing_item():
    vocabulary = _ledger(3)
    session = start_review_session(vocabulary, now=NOW)
    del vocabulary["id01"]
    with pytest.raises(ItemNotFoundError):
        complete_review_session(vocabulary, session, now=NOW)


TODAY = datetime(2024, 5, 10, 9, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "last, streak, expected",
    [
        (None, 0, 1),
        (TODAY - timedelta(hours=2), 4, 4),
        (TODAY - timedelta(days=1), 4, 5),
        (TODAY - timedelta(days=3), 4, 1),
    ],
)
def test_update_streak(last, streak, expected):
    assert update_streak(last, streak, TODAY) == expected


@pytest.mark.parametrize(
    "last, expected",
    [(None, 0), (TODAY, 3), (TODAY - timedelta(days=1), 3), (TODAY - timedelta(days=2), 0)],
)
def test_current_streak(last, expected):
    assert current_streak(last, 3, TODAY) == expected


def test_complete_regular_lesson():
    progress = progress_store.UserProgress(course_id="japanese", hearts=2, xp=10)

    updated = complete_lesson(progress, "u1-l1", 20, words=LESSON_WORDS, now=TODAY)

    assert updated.xp == 30
    assert updated.hearts == progress_store.MAX_HEARTS
    assert updated.streak == 1
    assert updated.last_lesson_date == TODAY
    assert updated.completed_lessons == ("u1-l1",)
    assert len(updated.vocabulary) == 2
    assert progress.vocabulary == {}

    repeat = complete_lesson(updated, "u1-l1", 5, now=TODAY)
    assert repeat.completed_lessons == ("u1-l1",)


def test_complete_review_lesson():
    vocabulary = _ledger(4)
    progress = progress_store.UserProgress(course_id="japanese", vocabulary=vocabulary)
    session = start_review_session(vocabulary, now=NOW)

    updated = complete_lesson(progress, session.lesson_id, 15, session=session, now=TODAY)

    assert updated.completed_lessons == ()
    assert all(item.repetition == 1 for item in updated.vocabulary.values())
    with pytest.raises(ValueError):
        complete_lesson(progress, session.lesson_id, 15, now=TODAY)


def test_submit_lesson_persists(tmp_path):
    path = tmp_path / "state.json"
    progress_store.init_course("japanese", path)

    saved = submit_lesson("u1-l1", 10, words=LESSON_WORDS, now=TODAY, path=path)

    assert saved.version == 1
    assert progress_store.get_progress(path) == saved


def test_concurrent_submissions_do_not_lose_updates(tmp_path):
    path = tmp_path / "state.json"
    progress_store.init_course("japanese", path)

    def worker(index):
        submit_lesson(f"u1-l{index}", 10, now=TODAY, path=path)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    final = progress_store.get_progress(path)
    assert final.xp == 50
    assert len(final.completed_lessons) == 5
    assert final.version == 5


def test_submit_without_course(tmp_path):
    with pytest.raises(LookupError):
        submit_lesson("u1-l1", 10, path=tmp_path / "state.json")


def test_course_init_during_submission_keeps_the_lesson(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    progress_store.init_course("japanese", path)
    real_load_state = progress_store.load_state
    init_loaded = threading.Event()

    def slow_load_state(state_path=None):
        state = real_load_state(state_path)
        if threading.current_thread().name == "course-init":
            init_loaded.set()
            time.sleep(0.2)
        return state

    monkeypatch.setattr(progress_store, "load_state", slow_load_state)
    init = threading.Thread(
        target=progress_store.init_course, args=("spanish", path), name="course-init"
    )
    init.start()
    assert init_loaded.wait(2)

    saved = submit_lesson("u1-l1", 10, now=TODAY, path=path)
    init.join()

    # The course switch finished first, so the lesson lands in the new course.
    assert saved.course_id == "spanish"
    assert progress_store.available_courses(path) == ["japanese", "spanish"]
    spanish = progress_store.get_course_progress("spanish", path)
    assert (spanish.xp, spanish.version, spanish.completed_lessons) == (10, 1, ("u1-l1",))
    assert progress_store.get_course_progress("japanese", path).version == 0


def test_naive_now_is_read_as_utc():
    progress = progress_store.UserProgress(course_id="japanese")
    naive = TODAY.replace(tzinfo=None)

    from_naive = complete_lesson(progress, "u1-l1", 5, words=LESSON_WORDS, now=naive)
    from_aware = complete_lesson(progress, "u1-l1", 5, words=LESSON_WORDS, now=TODAY)

    assert from_naive == from_aware
    item = from_naive.vocabulary[make_item_id("ねこ")]
    assert item.next_review == int(TODAY.timestamp() * 1000)


def test_load_active_progress_decays_missed_streak(tmp_path):
    path = tmp_path / "state.json"
    progress_store.init_course("japanese", path)
    submit_lesson("u1-l1", 10, now=TODAY - timedelta(days=3), path=path)

    assert progress_store.get_progress(path).streak == 1
    assert load_active_progress(path, now=TODAY).streak == 0
    assert load_active_progress(path, now=TODAY - timedelta(days=2)).streak == 1
    assert load_active_progress(tmp_path / "other.json") is None
