"""Persistence layer for SprintNotes."""
