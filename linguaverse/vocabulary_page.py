from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

import flet as ft

from linguaverse.vocab_item import VocabularyItem, describe_due, is_due, now_ms

# Repetition count above which a word is shown as well known.
WELL_KNOWN_REPETITIONS = 3


@dataclass(frozen=True)
class VocabRow:
    item: VocabularyItem
    due: bool
    label: str

    @property
    def well_known(self) -> bool:
        return self.item.repetition > WELL_KNOWN_REPETITIONS


def build_rows(items: Iterable[VocabularyItem], now: Optional[int] = None) -> List[VocabRow]:
    """Rows for the ledger view, soonest review first."""

    current = now if now is not None else now_ms()
    ordered = sorted(items, key=lambda item: item.next_review)
    return [VocabRow(item, is_due(item, current), describe_due(item, current)) for item in ordered]


class VocabularyPage(ft.Container):
    def __init__(self, items: Iterable[VocabularyItem], now: Optional[int] = None):
        super().__init__()
        self.rows = build_rows(items, now)
        due_count = sum(1 for row in self.rows if row.due)

        # Header: word count and due count
        self.header = ft.Row(
            controls=[
                ft.Column(
                    controls=[
                        ft.Text(value="Vocabulary", size=40, weight=ft.FontWeight.BOLD),
                        ft.Text(value=f"{len(self.rows)} words stored."),
                    ]
                ),
                ft.Container(
                    content=ft.Column(
                        controls=[
                            ft.Text(value="REVIEW DUE", weight=ft.FontWeight.BOLD),
                            ft.Text(value=f"{due_count} items", size=24),
                        ]
                    ),
                    bgcolor=ft.Colors.AMBER_100,
                    padding=15,
                    border_radius=20,
                ),
            ],
            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
        )

        if self.rows:
            cards = [self._card(row) for row in self.rows]
        else:
            cards = [
                ft.Text(value="No words learned yet. Complete lessons to fill the list."),
            ]
        self.card_area = ft.Row(controls=cards, wrap=True, spacing=15, run_spacing=15)

        self.content = ft.Column(
            controls=[self.header, self.card_area],
            scroll=ft.ScrollMode.AUTO,
            expand=True,
        )
        self.expand = True

    def _card(self, row: VocabRow) -> ft.Container:
        accent = ft.Colors.PINK_400 if row.due else ft.Colors.CYAN_400
        level_color = ft.Colors.GREEN_600 if row.well_known else ft.Colors.GREY_600
        return ft.Container(
            content=ft.Column(
                controls=[
                    ft.Text(value=row.item.word, size=24, weight=ft.FontWeight.BOLD),
                    ft.Text(value=row.item.reading or "", italic=True),
                    ft.Text(value=row.item.meaning),
                    ft.Row(
                        controls=[
                            ft.Text(value=f"Lvl {row.item.repetition}", color=level_color),
                            ft.Text(value=row.label),
                        ],
                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                    ),
                ]
            ),
            width=260,
            padding=20,
            border_radius=20,
            border=ft.border.only(left=ft.BorderSide(4, accent)),
            bgcolor=ft.Colors.WHITE,
        )
