import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from linguaverse.deck_import import import_word_list, read_word_list
from linguaverse.vocab_item import make_item_id

NOW = 1_700_000_000_000


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_read_word_list_from_csv(tmp_path):
    path = _write(
        tmp_path / "unit1.csv",
        "Word:,Meaning:,Reading:\nねこ,cat,neko\n,,\nいぬ,dog,\n",
    )

    entries = read_word_list(path)

    assert [entry.word for entry in entries] == ["ねこ", "いぬ"]
    assert entries[0].reading == "neko"
    assert entries[1].reading is None


def test_reading_column_is_optional(tmp_path):
    path = _write(tmp_path / "unit1.csv", "word,meaning\nhola,hello\n")
    assert read_word_list(path)[0].meaning == "hello"


def test_missing_columns_are_reported(tmp_path):
    path = _write(tmp_path / "unit1.csv", "term,gloss\nhola,hello\n")
    with pytest.raises(ValueError, match="meaning"):
        read_word_list(path)


def test_unsupported_and_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_word_list(tmp_path / "absent.csv")
    with pytest.raises(ValueError):
        read_word_list(_write(tmp_path / "list.txt", "word,meaning\n"))


def test_import_word_list_learns_words(tmp_path):
    path = _write(tmp_path / "unit1.csv", "word,meaning\nhola,hello\nadiós,bye\n")

    vocabulary = import_word_list({}, path, now=NOW)

    assert set(vocabulary) == {make_item_id("hola"), make_item_id("adiós")}
    assert all(item.next_review == NOW for item in vocabulary.values())


def test_read_word_list_from_excel(tmp_path):
    path = tmp_path / "unit2.xlsx"
    pd.DataFrame(
        {"Word:": ["ねこ", "いぬ"], "Meaning:": ["cat", "dog"], "Reading:": ["neko", ""]}
    ).to_excel(path, index=False)

    entries = read_word_list(path)

    assert [(entry.word, entry.meaning) for entry in entries] == [("ねこ", "cat"), ("いぬ", "dog")]
    assert entries[0].reading == "neko"
    assert entries[1].reading is None


def test_legacy_xls_is_not_supported(tmp_path):
    path = tmp_path / "old.xls"
    path.write_bytes(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1")
    with pytest.raises(ValueError, match="Unsupported"):
        read_word_list(path)
