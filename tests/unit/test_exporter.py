"""Unit tests for the exporter helpers."""

import json
from datetime import datetime

import pytest

from sprintnotes.models.flashcard import Flashcard
from sprintnotes.models.note import FlashcardSetRef, Note, NoteType, RichText
from sprintnotes.services.exporter import (
    flashcards_to_csv,
    flashcards_to_json,
    html_to_markdown,
    note_to_json,
    note_to_markdown,
    notes_to_json,
    sanitize_filename,
)

CREATED = datetime(2025, 3, 1, 9, 30)


def make_note(**overrides) -> Note:
    """Helper to create a note with fixed timestamps."""
    fields = {
        "title": "Cell Biology",
        "content": RichText("<h2>Cells</h2><p>The <strong>basic</strong> unit of life.</p>"),
        "created_at": CREATED,
        "updated_at": CREATED,
    }
    fields.update(overrides)
    return Note(**fields)


class TestHtmlToMarkdown:
    """Tests for HTML conversion."""

    @pytest.mark.parametrize(
        "html,expected",
        [
            ("<h1>Title</h1>", "# Title"),
            ("<p>a <em>b</em> <code>c</code></p>", "a *b* `c`"),
            ("<ul><li>one</li><li>two</li></ul>", "- one\n- two"),
            ("<p>line<br>break</p>", "line\nbreak"),
            ("<blockquote>quoted</blockquote>", "> quoted"),
            ('<p class="x">attrs <b>bold</b></p>', "attrs **bold**"),
            ('<p>pic <img src="a.png"> here</p>', "pic  here"),
        ],
    )
    def test_conversion(self, html, expected):
        """Test the supported tags."""
        assert html_to_markdown(html) == expected

    def test_collapses_blank_lines(self):
        """Test that paragraphs are separated by exactly one blank line."""
        assert html_to_markdown("<p>a</p><p></p><p>b</p>") == "a\n\nb"


class TestSanitizeFilename:
    """Tests for export file names."""

    def test_replaces_and_lowercases(self):
        """Test that unsafe characters collapse to one underscore."""
        assert sanitize_filename("My Note: Part #2!") == "my_note_part_2_"

    def test_truncates(self):
        """Test the length limit."""
        assert len(sanitize_filename("x" * 80)) == 50


class TestNoteExport:
    """Tests for note exports."""

    def test_markdown_document(self):
        """Test the rendered Markdown layout."""
        note = make_note(description="Intro to cells", tags=["bio", "exam"])

        text = note_to_markdown(note)

        assert text.startswith("# Cell Biology\n\n> Intro to cells\n\n## Cells")
        assert "The **basic** unit of life." in text
        assert "Created: 2025-03-01 09:30:00" in text
        assert text.endswith("Tags: bio, exam\n")

    def test_markdown_without_tags_or_text(self):
        """Test placeholders for missing data."""
        note = make_note(type=NoteType.FLASHCARD_SET, content=FlashcardSetRef())

        text = note_to_markdown(note)

        assert "_flashcard-set note_" in text
        assert "Tags: None" in text

    def test_json_exports(self):
        """Test single and bulk JSON."""
        first = make_note()
        second = make_note(title="Second")

        single = json.loads(note_to_json(first))
        bulk = json.loads(notes_to_json([first, second]))

        assert single["title"] == "Cell Biology"
        assert single["createdAt"] == "2025-03-01T09:30:00"
        assert [n["title"] for n in bulk] == ["Cell Biology", "Second"]


class TestFlashcardExport:
    """Tests for flashcard exports."""

    def test_json(self):
        """Test the JSON document."""
        cards = [Flashcard(front="Q", back="A", note_id="set-1", mastered=True)]

        data = json.loads(flashcards_to_json("set-1", cards))

        assert data["noteId"] == "set-1"
        assert data["cards"][0]["front"] == "Q"
        assert data["cards"][0]["mastered"] is True

    def test_csv(self):
        """Test CSV rows with HTML stripped and quoting."""
        cards = [
            Flashcard(front="<b>What</b> is ATP?", back="Energy, mostly", mastered=True),
            Flashcard(front="Q2", back="A2"),
        ]

        lines = flashcards_to_csv(cards).splitlines()

        assert lines == [
            "Front,Back,Mastered",
            'What is ATP?,"Energy, mostly",Yes',
            "Q2,A2,No",
        ]
