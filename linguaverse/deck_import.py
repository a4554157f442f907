"""Import word lists from spreadsheets into a vocabulary ledger."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import pandas as pd

from linguaverse.review_service import LessonWord, learn_words
from linguaverse.srs_engine import SchedulerConfig
from linguaverse.vocab_item import VocabularyItem

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("word", "meaning")
SUPPORTED_SUFFIXES = {".csv", ".xlsx"}


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported word list format '{suffix}'")
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    return pd.read_excel(path, dtype=str).fillna("")


def _cell(value: object) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def read_word_list(path: Union[str, Path]) -> List[LessonWord]:
    """Read ``word``/``meaning``/``reading`` rows from a CSV or Excel file.

    Headers are matched case-insensitively and rows without a word are skipped.
    """

    list_path = Path(path)
    if not list_path.exists():
        raise FileNotFoundError(f"Word list not found: {list_path}")

    frame = _read_frame(list_path)
    frame.columns = [str(column).strip().lower().rstrip(":") for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise ValueError(f"Word list {list_path} is missing column(s): {', '.join(missing)}")

    entries: List[LessonWord] = []
    for _, row in frame.iterrows():
        word = _cell(row.get("word"))
        if not word:
            continue
        reading = _cell(row.get("reading")) if "reading" in frame.columns else ""
        entries.append(
            LessonWord(word=word, meaning=_cell(row.get("meaning")), reading=reading or None)
        )
    logger.info("Read %d word(s) from %s", len(entries), list_path)
    return entries


def import_word_list(
    vocabulary: Mapping[str, VocabularyItem],
    path: Union[str, Path],
    *,
    now: Optional[int] = None,
    config: Optional[SchedulerConfig] = None,
) -> Dict[str, VocabularyItem]:
    """Return *vocabulary* with every word of the list at *path* learned."""

    return learn_words(vocabulary, read_word_list(path), now=now, config=config)


__all__ = ["SUPPORTED_SUFFIXES", "import_word_list", "read_word_list"]
