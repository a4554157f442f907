"""Utility to backfill and repair SRS fields in stored learner state files."""

from __future__ import annotations

import argparse
import json
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from linguaverse.progress_store import STATE_ROOT
from linguaverse.srs_engine import DEFAULT_EASE_FACTOR, MIN_EASE_FACTOR
from linguaverse.vocab_item import make_item_id


def _constant(value: Any):
    return lambda: value


DEFAULT_FACTORIES = {
    "meaning": _constant(""),
    "interval": _constant(0),
    "repetition": _constant(0),
    "easeFactor": _constant(DEFAULT_EASE_FACTOR),
    "nextReview": _constant(0),
}


def _ensure_entry_defaults(entry: MutableMapping[str, Any]) -> bool:
    changed = False
    for field, factory in DEFAULT_FACTORIES.items():
        if field not in entry or entry[field] is None:
            entry[field] = factory()
            changed = True

    for field in ("interval", "repetition"):
        if not isinstance(entry[field], int) or entry[field] < 0:
            try:
                value = int(float(entry[field]))
            except (TypeError, ValueError):
                value = 0
            entry[field] = max(value, 0)
            changed = True

    try:
        ease = float(entry["easeFactor"])
    except (TypeError, ValueError):
        ease = DEFAULT_EASE_FACTOR
    if ease < MIN_EASE_FACTOR:
        ease = MIN_EASE_FACTOR
    if ease != entry["easeFactor"]:
        entry["easeFactor"] = ease
        changed = True
    return changed


@dataclass
class MigrationReport:
    path: Path
    rekeyed: int = 0
    repaired: int = 0
    dropped: int = 0
    duplicates: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.rekeyed or self.repaired or self.dropped or self.duplicates)

    def summary(self) -> str:
        return (
            f"{self.path}: {self.rekeyed} re-keyed, {self.repaired} repaired, "
            f"{self.dropped} dropped, {self.duplicates} duplicate(s)"
        )


def _state_files(paths: Iterable[Path]) -> List[Path]:
    found: List[Path] = []
    for root in paths:
        if root.is_dir():
            found.extend(p for p in sorted(root.rglob("*.json")) if p.is_file())
        elif root.suffix.lower() == ".json" and root.is_file():
            found.append(root)
    return found


def _migrate_vocabulary(
    vocabulary: MutableMapping[str, Any], report: MigrationReport
) -> Dict[str, Any]:
    migrated: Dict[str, Any] = {}
    for key, entry in vocabulary.items():
        if not isinstance(entry, MutableMapping) or not entry.get("word"):
            report.dropped += 1
            continue
        if _ensure_entry_defaults(entry):
            report.repaired += 1
        item_id = make_item_id(str(entry["word"]))
        if key != item_id or entry.get("id") != item_id:
            report.rekeyed += 1
        entry["id"] = item_id
        if item_id in migrated:
            # Same word stored under two legacy keys; the first one wins.
            report.duplicates += 1
            continue
        migrated[item_id] = entry
    return migrated


def migrate_file(path: Path, dry_run: bool = False) -> MigrationReport:
    """Repair every course ledger in the state file at *path*."""

    report = MigrationReport(path)
    with path.open("r", encoding="utf-8") as handle:
        payload: Dict[str, Any] = json.load(handle)

    courses = payload.get("courses")
    if not isinstance(courses, MutableMapping):
        return report
    for course in courses.values():
        if isinstance(course, MutableMapping) and isinstance(
            course.get("vocabulary"), MutableMapping
        ):
            course["vocabulary"] = _migrate_vocabulary(course["vocabulary"], report)

    if report.changed and not dry_run:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=4, ensure_ascii=False)
    return report


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Re-key vocabulary ids and repair SRS fields in learner state files."
    )
    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        default=[STATE_ROOT],
        help="State files or directories to scan (default: res/state).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report what would change.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    reports = [migrate_file(path, dry_run=args.dry_run) for path in _state_files(args.paths)]
    changed = [report for report in reports if report.changed]

    prefix = "[dry-run] " if args.dry_run else ""
    for report in changed:
        print(prefix + report.summary())
    verb = "need changes" if args.dry_run else "updated"
    print(f"{prefix}{len(changed)} of {len(reports)} state file(s) {verb}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
