"""Drafts flashcards for a note with a language model."""

import logging
from typing import Any

from tenacity import retry, stop_after_attempt, wait_exponential

from sprintnotes.models.flashcard import Flashcard
from sprintnotes.models.note import Note, RichText
from sprintnotes.services.exporter import html_to_markdown
from sprintnotes.services.llm import LanguageModel, extract_json

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_LIMIT = 2000


class FlashcardGenerator:
    """Turns a note's text into front/back study cards."""

    def __init__(
        self,
        llm: LanguageModel,
        cards_per_note_min: int = 3,
        cards_per_note_max: int = 8,
    ):
        """Initialize the flashcard generator.

        Args:
            llm: Backend exposing ``generate(prompt, system=None)``
            cards_per_note_min: Minimum flashcards to generate per note
            cards_per_note_max: Maximum flashcards to generate per note
        """
        self.llm = llm
        self.cards_min = cards_per_note_min
        self.cards_max = cards_per_note_max

    def generate_flashcards(self, note: Note, target_note_id: str = "") -> list[Flashcard]:
        """Draft flashcards from a rich-text note.

        Args:
            note: The note to study
            target_note_id: Flashcard-set note that will own the cards

        Returns:
            Unsaved Flashcard objects

        Raises:
            ValueError: If the note has no text
            RetryError: If three replies in a row were not a usable JSON array
        """
        if not isinstance(note.content, RichText):
            raise ValueError("Flashcards can only be drafted from text notes")

        text = html_to_markdown(note.content.html)
        if not text:
            raise ValueError("Note has no text to study")

        cards = self._draft_cards(self._build_prompt(note.title, text), target_note_id)
        logger.info("Drafted %d flashcard(s) from note %s", len(cards), note.id)
        return cards

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
    )
    def _draft_cards(self, prompt: str, target_note_id: str) -> list[Flashcard]:
        system = (
            "You are an expert educator creating flashcards for spaced repetition. "
            "Always respond with valid JSON only, no markdown or explanation."
        )
        response_text = self.llm.generate(prompt, system=system)
        cards_data: list[Any] = extract_json(response_text, list)
        return self._create_flashcards(cards_data, target_note_id)

    def _build_prompt(self, title: str, text: str) -> str:
        content_preview = text[:CONTENT_PREVIEW_LIMIT]

        return f"""Generate {self.cards_min}-{self.cards_max} flashcards from the following note.

**Note Title:** {title}

**Content:**
{content_preview}

**Requirements:**
1. Each card should test ONE specific concept or fact
2. Questions should be clear and unambiguous
3. Answers should be concise but complete

**Output Format:**
Return a JSON array of objects with a "front" (question) and a "back" (answer).

Example output:
[{{"front": "What is the capital of France?", "back": "Paris"}}]

Generate the flashcards now:"""

    @staticmethod
    def _create_flashcards(cards_data: list[Any], target_note_id: str) -> list[Flashcard]:
        """Cards with both sides filled; anything else in the reply is dropped."""
        sides = (
            (str(item.get("front", "")).strip(), str(item.get("back", "")).strip())
            for item in cards_data
            if isinstance(item, dict)
        )
        return [
            Flashcard(front=front, back=back, note_id=target_note_id)
            for front, back in sides
            if front and back
        ]
