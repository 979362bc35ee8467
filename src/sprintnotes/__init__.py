"""SprintNotes - local-first notes, flashcards and mentoring."""

__version__ = "0.1.0"
