import logging
import sys

import flet as ft

from linguaverse import progress_store, review_service
from linguaverse.vocabulary_page import VocabularyPage

DEFAULT_COURSE = "japanese"


def main(page: ft.Page):
    page.title = "Linguaverse"
    page.window.width = 1100
    page.window.height = 780
    page.window.center()
    page.horizontal_alignment = ft.CrossAxisAlignment.CENTER
    page.padding = 30

    progress = review_service.load_active_progress()
    if progress is None:
        course_id = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_COURSE
        progress = progress_store.init_course(course_id)

    page.add(VocabularyPage(progress.vocabulary.values()))

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ft.app(target=main)
