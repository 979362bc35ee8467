"""Note and flashcard export to Markdown, JSON and CSV."""

import csv
import io
import json
import re

from sprintnotes.models.flashcard import Flashcard
from sprintnotes.models.note import Note, RichText

FILENAME_LIMIT = 50

_HTML_RULES: list[tuple[str, str]] = [
    (r"<h1(?:\s[^>]*)?>(.*?)</h1>", r"# \1\n\n"),
    (r"<h2(?:\s[^>]*)?>(.*?)</h2>", r"## \1\n\n"),
    (r"<h3(?:\s[^>]*)?>(.*?)</h3>", r"### \1\n\n"),
    (r"<strong(?:\s[^>]*)?>(.*?)</strong>", r"**\1**"),
    (r"<b(?:\s[^>]*)?>(.*?)</b>", r"**\1**"),
    (r"<em(?:\s[^>]*)?>(.*?)</em>", r"*\1*"),
    (r"<i(?:\s[^>]*)?>(.*?)</i>", r"*\1*"),
    (r"<code(?:\s[^>]*)?>(.*?)</code>", r"`\1`"),
    (r"<pre(?:\s[^>]*)?>(.*?)</pre>", r"```\n\1\n```\n"),
    (r"<blockquote(?:\s[^>]*)?>(.*?)</blockquote>", r"> \1\n"),
    (r"<li(?:\s[^>]*)?>(.*?)</li>", r"- \1\n"),
    (r"<ul(?:\s[^>]*)?>(.*?)</ul>", r"\1\n"),
    (r"<ol(?:\s[^>]*)?>(.*?)</ol>", r"\1\n"),
    (r"<p(?:\s[^>]*)?>(.*?)</p>", r"\1\n\n"),
    (r"<br\s*/?>", "\n"),
    (r"<hr\s*/?>", "\n---\n"),
]
_TAG_RE = re.compile(r"<[^>]+>")


def html_to_markdown(html: str) -> str:
    """Convert the editor's simple HTML to Markdown."""
    text = html
    for pattern, replacement in _HTML_RULES:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
    text = _TAG_RE.sub("", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def sanitize_filename(name: str) -> str:
    """Lower-case filename stem of ASCII letters, digits and underscores."""
    stem = re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)
    stem = re.sub(r"_+", "_", stem).lower()
    return stem[:FILENAME_LIMIT]


def note_to_markdown(note: Note) -> str:
    """Render a note as a Markdown document with a metadata footer."""
    if isinstance(note.content, RichText):
        body = html_to_markdown(note.content.html)
    else:
        body = f"_{note.type.value} note_"

    description = f"> {note.description}\n\n" if note.description else ""
    return (
        f"# {note.title}\n\n"
        f"{description}{body}\n\n"
        "---\n"
        f"Created: {note.created_at.isoformat(sep=' ', timespec='seconds')}\n"
        f"Updated: {note.updated_at.isoformat(sep=' ', timespec='seconds')}\n"
        f"Tags: {', '.join(note.tags) or 'None'}\n"
    )


def note_to_json(note: Note) -> str:
    return json.dumps(note.to_payload(), indent=2)


def notes_to_json(notes: list[Note]) -> str:
    return json.dumps([n.to_payload() for n in notes], indent=2)


def flashcards_to_json(note_id: str, cards: list[Flashcard]) -> str:
    return json.dumps(
        {"noteId": note_id, "cards": [card.to_payload() for card in cards]}, indent=2
    )


def flashcards_to_csv(cards: list[Flashcard]) -> str:
    """Front,Back,Mastered rows with HTML stripped from card text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Front", "Back", "Mastered"])
    for card in cards:
        writer.writerow(
            [
                _TAG_RE.sub("", card.front),
                _TAG_RE.sub("", card.back),
                "Yes" if card.mastered else "No",
            ]
        )
    return buffer.getvalue()
