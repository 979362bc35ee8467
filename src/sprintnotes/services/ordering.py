"""Sibling ordering of notes and re-parenting within the folder tree."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sprintnotes.database.repository import Repository
from sprintnotes.models.common import SyncStatus, utcnow
from sprintnotes.models.note import Folder, Note
from sprintnotes.models.sync_operation import EntityType

logger = logging.getLogger(__name__)


class CycleError(ValueError):
    """A folder cannot be moved under itself or one of its descendants."""

    pass


@dataclass
class Relocation:
    """What a relocate call changed."""

    entity_type: EntityType
    entity_id: str
    changed_notes: list[Note] = field(default_factory=list)
    folder: Optional[Folder] = None

    @property
    def changed(self) -> bool:
        """Whether anything was written."""
        return bool(self.changed_notes) or self.folder is not None


@dataclass
class FolderDeletion:
    """What a cascading folder delete removed and rewrote."""

    deleted_folder_ids: list[str]
    moved_notes: list[Note]


class OrderingEngine:
    """Keeps note order contiguous per folder and the folder tree acyclic.

    Notes carry a 1-based ``order`` that is unique among notes sharing a
    ``folder_id`` (the root group included). Folders carry no order and
    render in creation order.
    """

    def __init__(self, repository: Repository, compact_source: bool = True):
        """Initialize the engine.

        Args:
            repository: Local store
            compact_source: Renumber the folder a note leaves so its
                remaining notes stay numbered 1..n
        """
        self.repository = repository
        self.compact_source = compact_source

    def next_order(self, folder_id: Optional[str]) -> int:
        """Order for a note appended to a folder."""
        siblings = self.repository.get_notes_in_folder(folder_id)
        return max((n.order for n in siblings), default=0) + 1

    # ==================== Relocation ====================

    def relocate(
        self, entity_id: str, new_parent_id: Optional[str], new_index: int = 0
    ) -> Relocation:
        """Move a note or folder to a new parent.

        Args:
            entity_id: ID of a note or folder
            new_parent_id: Destination folder, None for root
            new_index: Position among the destination's notes (notes only)

        Raises:
            ValueError: If an ID is empty or unknown
            CycleError: If a folder would become its own ancestor
        """
        if not entity_id:
            raise ValueError("entity_id is required")

        if self.repository.get_note(entity_id) is not None:
            return self.relocate_note(entity_id, new_parent_id, new_index)
        if self.repository.get_folder(entity_id) is not None:
            return self.relocate_folder(entity_id, new_parent_id)
        raise ValueError(f"No note or folder with id {entity_id!r}")

    def relocate_note(
        self, note_id: str, new_folder_id: Optional[str], new_index: int = 0
    ) -> Relocation:
        """Insert a note at ``new_index`` among its new siblings and renumber them 1..n.

        An index past the end appends; a negative index inserts first.
        """
        note = self.repository.get_note(note_id)
        if note is None:
            raise ValueError(f"No note with id {note_id!r}")
        self._require_folder(new_folder_id)

        source_folder_id = note.folder_id
        crossed = source_folder_id != new_folder_id

        siblings = [
            n for n in self.repository.get_notes_in_folder(new_folder_id) if n.id != note.id
        ]
        index = max(0, min(new_index, len(siblings)))
        siblings.insert(index, note)

        note.folder_id = new_folder_id
        changed = self._renumber(siblings, force={note.id} if crossed else set())

        if crossed and self.compact_source:
            remaining = [
                n for n in self.repository.get_notes_in_folder(source_folder_id) if n.id != note.id
            ]
            changed.extend(self._renumber(remaining))

        if changed:
            self.repository.save_notes(changed)
            logger.debug(
                "Moved note %s to %s at %d (%d note(s) renumbered)",
                note_id,
                new_folder_id or "root",
                index,
                len(changed),
            )

        return Relocation(EntityType.NOTE, note_id, changed_notes=changed)

    def relocate_folder(self, folder_id: str, new_parent_id: Optional[str]) -> Relocation:
        """Re-parent a folder, refusing moves that would create a cycle."""
        folder = self.repository.get_folder(folder_id)
        if folder is None:
            raise ValueError(f"No folder with id {folder_id!r}")
        if folder.parent_id == new_parent_id:
            return Relocation(EntityType.FOLDER, folder_id)

        self._require_folder(new_parent_id)
        if new_parent_id is not None:
            self._check_acyclic(folder_id, new_parent_id)

        folder.parent_id = new_parent_id
        self.repository.update_folder(folder)
        logger.debug("Moved folder %s under %s", folder_id, new_parent_id or "root")
        return Relocation(EntityType.FOLDER, folder_id, folder=folder)

    # ==================== Cascading delete ====================

    def delete_folder(self, folder_id: str) -> FolderDeletion:
        """Delete a folder and every folder below it.

        Notes held by any deleted folder move to the deleted folder's own
        parent (root if it had none), after the notes already there.
        """
        folder = self.repository.get_folder(folder_id)
        if folder is None:
            raise ValueError(f"No folder with id {folder_id!r}")

        doomed = self.descendant_ids(folder_id)
        doomed.insert(0, folder_id)
        rank = {fid: i for i, fid in enumerate(doomed)}

        orphans = sorted(
            self.repository.get_notes_in_folders(doomed),
            key=lambda n: (rank[n.folder_id], n.order, n.created_at),  # type: ignore[index]
        )
        target = folder.parent_id
        for note in orphans:
            note.folder_id = target

        existing = self.repository.get_notes_in_folder(target)
        moved = self._renumber(existing + orphans, force={n.id for n in orphans})

        self.repository.delete_folders(doomed, moved)
        logger.debug(
            "Deleted %d folder(s), moved %d note(s) to %s",
            len(doomed),
            len(orphans),
            target or "root",
        )
        return FolderDeletion(deleted_folder_ids=doomed, moved_notes=moved)

    def descendant_ids(self, folder_id: str) -> list[str]:
        """IDs of all folders below ``folder_id``, breadth first."""
        children: dict[Optional[str], list[str]] = {}
        for f in self.repository.get_all_folders():
            children.setdefault(f.parent_id, []).append(f.id)

        found: list[str] = []
        seen = {folder_id}
        queue = list(children.get(folder_id, []))
        while queue:
            current = queue.pop(0)
            if current in seen:
                continue
            seen.add(current)
            found.append(current)
            queue.extend(children.get(current, []))
        return found

    # ==================== Helpers ====================

    def _require_folder(self, folder_id: Optional[str]) -> None:
        if folder_id is not None and self.repository.get_folder(folder_id) is None:
            raise ValueError(f"No folder with id {folder_id!r}")

    def _check_acyclic(self, folder_id: str, new_parent_id: str) -> None:
        """Walk from the destination up to the root looking for ``folder_id``."""
        parents = {f.id: f.parent_id for f in self.repository.get_all_folders()}
        cursor: Optional[str] = new_parent_id
        steps = 0
        while cursor is not None:
            if cursor == folder_id:
                raise CycleError(
                    f"Cannot move folder {folder_id!r} into its own subtree ({new_parent_id!r})"
                )
            steps += 1
            if steps > len(parents):
                raise CycleError(f"Folder tree above {new_parent_id!r} already contains a cycle")
            cursor = parents.get(cursor)

    @staticmethod
    def _renumber(notes: list[Note], force: Optional[set[str]] = None) -> list[Note]:
        """Assign orders 1..n; return the notes that changed."""
        force = force or set()
        now = utcnow()
        changed: list[Note] = []
        for position, note in enumerate(notes, start=1):
            if note.order != position or note.id in force:
                note.order = position
                note.updated_at = now
                note.sync_status = SyncStatus.PENDING
                changed.append(note)
        return changed
