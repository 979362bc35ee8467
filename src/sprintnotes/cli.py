"""CLI interface for SprintNotes."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.tree import Tree

from sprintnotes import __version__
from sprintnotes.config import Settings, get_settings
from sprintnotes.database.collab_repository import CollabRepository
from sprintnotes.database.repository import Repository
from sprintnotes.logging_utils import setup_logging
from sprintnotes.models.collab import MatchStatus
from sprintnotes.models.lecture import LectureNote
from sprintnotes.models.note import Note, NoteType, RichText, WhiteboardRaster
from sprintnotes.services.assistant import AssistantService
from sprintnotes.services.connectivity import ConnectivityMonitor
from sprintnotes.services.llm import LanguageModel, LLMError, create_language_model
from sprintnotes.services.note_service import NoteNotFoundError, NoteService
from sprintnotes.services.ordering import CycleError, OrderingEngine
from sprintnotes.services.remote_client import HttpRemote
from sprintnotes.services.sync_queue import SyncQueue

app = typer.Typer(
    name="sprintnotes",
    help="Local-first notes, flashcards and mentoring with background sync.",
    no_args_is_help=True,
)
note_app = typer.Typer(help="Create, edit and organize notes.", no_args_is_help=True)
folder_app = typer.Typer(help="Manage the folder tree.", no_args_is_help=True)
card_app = typer.Typer(help="Edit flashcard sets.", no_args_is_help=True)
sync_app = typer.Typer(help="Deliver queued edits to the remote store.", no_args_is_help=True)
lecture_app = typer.Typer(help="Translate lecture transcripts.", no_args_is_help=True)
canvas_app = typer.Typer(help="Canvas LMS integration.", no_args_is_help=True)
mentor_app = typer.Typer(help="Mentor/mentee matching and chat.", no_args_is_help=True)

app.add_typer(note_app, name="note")
app.add_typer(folder_app, name="folder")
app.add_typer(card_app, name="card")
app.add_typer(sync_app, name="sync")
app.add_typer(lecture_app, name="lecture")
app.add_typer(canvas_app, name="canvas")
app.add_typer(mentor_app, name="mentor")

console = Console()


def get_repository(settings: Settings) -> Repository:
    """Get repository instance, ensuring data directory exists."""
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return Repository(settings.database_url)


def get_collab_repository(settings: Settings) -> CollabRepository:
    """Get the collaboration store, ensuring the data directory exists."""
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return CollabRepository(settings.collab_url)


def build_sync_queue(
    settings: Settings,
    repo: Repository,
    connectivity: Optional[ConnectivityMonitor] = None,
) -> SyncQueue:
    """Sync queue delivering to the configured remote store, if any."""
    remote = (
        HttpRemote(settings.remote_url, api_key=settings.remote_api_key or None)
        if settings.remote_url
        else None
    )
    return SyncQueue(
        repo,
        remote,
        connectivity=connectivity,
        max_attempts=settings.sync_max_attempts,
        backoff_multiplier=settings.sync_backoff_multiplier,
        backoff_max=settings.sync_backoff_max,
        auto_flush=False,
    )


def get_note_service(settings: Settings) -> NoteService:
    """Note service that records every edit in the sync log."""
    repo = get_repository(settings)
    return NoteService(repo, OrderingEngine(repo), build_sync_queue(settings, repo))


def get_llm(settings: Settings) -> LanguageModel:
    """Language model backend selected by llm_provider, or exit when unusable."""
    try:
        return create_language_model(settings)
    except LLMError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def note_text(note: Note) -> str:
    """Plain text of a rich-text note, for prompts."""
    from sprintnotes.services.exporter import html_to_markdown

    if not isinstance(note.content, RichText):
        console.print(f"[red]Note '{note.title}' is a {note.type.value}, not a text note.[/red]")
        raise typer.Exit(1)
    return html_to_markdown(note.content.html)


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    return secret[:6] + "..." if len(secret) > 6 else "***"


# ==================== Notes ====================


@note_app.command("create")
def note_create(
    title: str = typer.Argument(..., help="Note title"),
    note_type: NoteType = typer.Option(NoteType.NOTE, "--type", help="Note kind"),
    folder: Optional[str] = typer.Option(None, "--folder", "-f", help="Folder ID"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="HTML body"),
    file: Optional[Path] = typer.Option(
        None, "--file", help="Read the body (HTML, or an image for whiteboards) from a file"
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    tags: Optional[list[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
):
    """Create a note at the end of a folder."""
    service = get_note_service(get_settings())

    body = None
    if note_type == NoteType.WHITEBOARD and file is not None:
        body = WhiteboardRaster(file.read_bytes())
    elif note_type == NoteType.NOTE and (file is not None or content is not None):
        body = RichText(file.read_text(encoding="utf-8") if file is not None else content or "")

    try:
        note = service.create_note(
            title,
            note_type=note_type,
            content=body,
            folder_id=folder,
            description=description,
            tags=tags,
        )
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Created {note.type.value} [cyan]{note.id}[/cyan]")


@note_app.command("list")
def note_list(
    folder: Optional[str] = typer.Option(None, "--folder", "-f", help="Folder ID (default: root)"),
):
    """List the notes of one folder in order."""
    service = get_note_service(get_settings())
    notes = service.list_notes(folder)

    if not notes:
        console.print("[yellow]No notes here.[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Notes")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Sync")
    table.add_column("Updated", style="dim")

    for note in notes:
        table.add_row(
            str(note.order),
            note.id,
            note.title,
            note.type.value,
            note.sync_status.value,
            note.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@note_app.command("show")
def note_show(note_id: str = typer.Argument(..., help="Note ID")):
    """Print a note as Markdown."""
    from sprintnotes.services.exporter import note_to_markdown

    service = get_note_service(get_settings())
    try:
        note = service.get_note(note_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(Markdown(note_to_markdown(note)))


@note_app.command("edit")
def note_edit(
    note_id: str = typer.Argument(..., help="Note ID"),
    title: Optional[str] = typer.Option(None, "--title"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="New HTML body"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    tags: Optional[list[str]] = typer.Option(None, "--tag", "-t", help="Replace tags"),
):
    """Edit a note's title, body, description or tags."""
    changes: dict = {}
    if title is not None:
        changes["title"] = title
    if content is not None:
        changes["content"] = RichText(content)
    if description is not None:
        changes["description"] = description
    if tags:
        changes["tags"] = tags

    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        raise typer.Exit(0)

    service = get_note_service(get_settings())
    try:
        note = service.update_note(note_id, **changes)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Updated '{note.title}'")


@note_app.command("delete")
def note_delete(
    note_id: str = typer.Argument(..., help="Note ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a note and its flashcards."""
    if not yes and not typer.confirm(f"Delete note {note_id}?"):
        raise typer.Exit(0)
    service = get_note_service(get_settings())
    try:
        service.delete_note(note_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Deleted")


@note_app.command("move")
def note_move(
    note_id: str = typer.Argument(..., help="Note ID"),
    to: Optional[str] = typer.Option(None, "--to", help="Destination folder ID (default: root)"),
    index: int = typer.Option(0, "--index", "-i", help="Position in the destination"),
):
    """Move a note to a folder position."""
    service = get_note_service(get_settings())
    try:
        relocation = service.move(note_id, to, index)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not relocation.changed:
        console.print("[dim]Already there.[/dim]")
        return
    console.print(f"[green]✓[/green] Moved; {len(relocation.changed_notes)} note(s) renumbered")


@note_app.command("share")
def note_share(
    note_id: str = typer.Argument(..., help="Note ID"),
    emails: list[str] = typer.Argument(..., help="Recipient e-mail addresses"),
):
    """Share a note with other people."""
    service = get_note_service(get_settings())
    try:
        note = service.share_note(note_id, emails)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Shared with {', '.join(note.shared_with)}")


# ==================== Folders ====================


@folder_app.command("create")
def folder_create(
    name: str = typer.Argument(..., help="Folder name"),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Parent folder ID"),
    color: Optional[str] = typer.Option(None, "--color", help="Hex color"),
):
    """Create a folder."""
    service = get_note_service(get_settings())
    try:
        folder = service.create_folder(name, color=color, parent_id=parent)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Created folder [cyan]{folder.id}[/cyan]")


@folder_app.command("rename")
def folder_rename(
    folder_id: str = typer.Argument(..., help="Folder ID"),
    name: str = typer.Argument(..., help="New name"),
):
    """Rename a folder."""
    service = get_note_service(get_settings())
    try:
        service.update_folder(folder_id, name=name)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Renamed")


@folder_app.command("move")
def folder_move(
    folder_id: str = typer.Argument(..., help="Folder ID"),
    to: Optional[str] = typer.Option(None, "--to", help="New parent folder ID (default: root)"),
):
    """Re-parent a folder."""
    service = get_note_service(get_settings())
    try:
        service.move(folder_id, to)
    except CycleError as e:
        console.print(f"[red]Cannot move: {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Moved")


@folder_app.command("delete")
def folder_delete(
    folder_id: str = typer.Argument(..., help="Folder ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a folder and its subfolders; their notes move up."""
    if not yes and not typer.confirm(f"Delete folder {folder_id} and its subfolders?"):
        raise typer.Exit(0)
    service = get_note_service(get_settings())
    try:
        deletion = service.delete_folder(folder_id)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/green] Deleted {len(deletion.deleted_folder_ids)} folder(s), "
        f"moved {len(deletion.moved_notes)} note(s)"
    )


@folder_app.command("tree")
def folder_tree():
    """Show folders and notes as a tree."""
    repo = get_repository(get_settings())

    def add_children(branch: Tree, parent_id: Optional[str]) -> None:
        for folder in repo.get_child_folders(parent_id):
            node = branch.add(f"[bold {folder.color}]{folder.name}[/] [dim]{folder.id}[/dim]")
            add_children(node, folder.id)
        for note in repo.get_notes_in_folder(parent_id):
            node_style = "yellow" if note.sync_status.value != "synced" else "white"
            branch.add(f"[{node_style}]{note.title}[/] [dim]{note.id}[/dim]")

    root = Tree("[bold blue]SprintNotes[/bold blue]")
    add_children(root, None)
    console.print(root)


# ==================== Flashcards ====================


@card_app.command("list")
def card_list(note_id: str = typer.Argument(..., help="Flashcard-set note ID")):
    """List the cards of a flashcard set."""
    service = get_note_service(get_settings())
    try:
        card_set = service.open_flashcard_set(note_id)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Flashcards ({card_set.mastered_count}/{len(card_set.cards)} mastered)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Front")
    table.add_column("Back")
    table.add_column("Mastered", justify="center")
    for card in card_set.cards:
        table.add_row(card.id, card.front, card.back, "✓" if card.mastered else "")
    console.print(table)


@card_app.command("add")
def card_add(
    note_id: str = typer.Argument(..., help="Flashcard-set note ID"),
    front: str = typer.Argument(..., help="Question"),
    back: str = typer.Argument(..., help="Answer"),
):
    """Add a card to a flashcard set."""
    service = get_note_service(get_settings())
    try:
        card = service.add_card(note_id, front, back)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Added card [cyan]{card.id}[/cyan]")


@card_app.command("toggle")
def card_toggle(card_id: str = typer.Argument(..., help="Card ID")):
    """Flip a card's mastered flag."""
    service = get_note_service(get_settings())
    try:
        card = service.toggle_mastered(card_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Mastered: {'yes' if card.mastered else 'no'}")


@card_app.command("delete")
def card_delete(card_id: str = typer.Argument(..., help="Card ID")):
    """Delete a card."""
    service = get_note_service(get_settings())
    try:
        service.delete_card(card_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Deleted")


@card_app.command("generate")
def card_generate(
    source_id: str = typer.Argument(..., help="Text note to study"),
    set_id: str = typer.Argument(..., help="Flashcard-set note receiving the cards"),
):
    """Draft cards from a text note with the configured LLM."""
    from sprintnotes.services.flashcard_generator import FlashcardGenerator

    settings = get_settings()
    service = get_note_service(settings)
    try:
        source = service.get_note(source_id)
        service.open_flashcard_set(set_id)
    except (ValueError, NoteNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    generator = FlashcardGenerator(get_llm(settings))
    with console.status("[yellow]Generating flashcards...[/yellow]"):
        try:
            drafts = generator.generate_flashcards(source, target_note_id=set_id)
        except Exception as e:
            console.print(f"[red]Generation failed: {e}[/red]")
            raise typer.Exit(1)

    for draft in drafts:
        service.add_card(set_id, draft.front, draft.back)
        console.print(f"  [green]✓[/green] {draft.front}")
    console.print(f"\nAdded [green]{len(drafts)}[/green] card(s)")


# ==================== Sync ====================


@sync_app.command("run")
def sync_run(
    force: bool = typer.Option(
        False, "--force", help="Retry failed operations now instead of waiting for backoff"
    ),
):
    """Deliver every queued edit to the remote store."""
    settings = get_settings()
    if not settings.remote_url:
        console.print("[red]No remote store configured (SPRINTNOTES_REMOTE_URL).[/red]")
        raise typer.Exit(1)

    repo = get_repository(settings)
    connectivity = ConnectivityMonitor(probe_url=settings.probe_url)
    if not connectivity.check():
        console.print(f"[yellow]Offline: {settings.probe_url} is unreachable.[/yellow]")
        raise typer.Exit(1)

    queue = build_sync_queue(settings, repo, connectivity)
    try:
        with console.status(f"[yellow]Syncing {queue.pending_count} operation(s)...[/yellow]"):
            result = asyncio.run(queue.flush(ignore_backoff=force))
    finally:
        queue.close()

    if result is None:
        console.print("[yellow]Nothing was synced.[/yellow]")
        raise typer.Exit(1)

    console.print("[bold]Sync summary:[/bold]")
    console.print(f"  Delivered: [green]{result.delivered}[/green]")
    if result.failed:
        console.print(f"  Failed (will retry): [yellow]{result.failed}[/yellow]")
    if result.deferred or result.skipped:
        console.print(f"  Waiting: [dim]{result.deferred + result.skipped}[/dim]")
    if result.dead_lettered:
        console.print(
            f"  Gave up: [red]{result.dead_lettered}[/red] "
            "(run 'sprintnotes sync retry' to requeue)"
        )
    console.print(f"  Still pending: {queue.pending_count}")


@sync_app.command("status")
def sync_status():
    """Show local store and sync log statistics."""
    settings = get_settings()
    if not settings.database_path.exists():
        console.print("[yellow]Database not yet initialized. Create a note first.[/yellow]")
        raise typer.Exit(0)

    stats = get_repository(settings).get_stats()

    table = Table(title="SprintNotes Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Total Notes", str(stats["total_notes"]))
    table.add_row("  Pending Sync", str(stats["pending_notes"]))
    table.add_row("  Conflicts", str(stats["conflict_notes"]))
    table.add_row("Folders", str(stats["total_folders"]))
    table.add_row("Flashcards", str(stats["total_flashcards"]))
    table.add_row("Lectures", str(stats["total_lectures"]))
    table.add_row("", "")
    table.add_row("Queued Operations", str(stats["pending_operations"]))
    table.add_row("  Gave Up", str(stats["dead_lettered_operations"]))
    table.add_row("  Delivered", str(stats["settled_operations"]))

    console.print(table)


@sync_app.command("retry")
def sync_retry():
    """Requeue operations that gave up after too many failures."""
    settings = get_settings()
    queue = build_sync_queue(settings, get_repository(settings))
    count = queue.retry_dead_letters()
    if count:
        console.print(f"[green]✓[/green] Requeued {count} operation(s)")
    else:
        console.print("[green]No failed operations.[/green]")


# ==================== AI ====================


@app.command()
def summarize(note_id: str = typer.Argument(..., help="Text note ID")):
    """Summarize a note with the configured LLM."""
    settings = get_settings()
    service = get_note_service(settings)
    try:
        note = service.get_note(note_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    text = note_text(note)
    if not text:
        console.print("[yellow]Note is empty.[/yellow]")
        raise typer.Exit(0)

    assistant = AssistantService(get_llm(settings))
    with console.status("[yellow]Summarizing...[/yellow]"):
        try:
            summary = assistant.summarize(text)
        except Exception as e:
            console.print(f"[red]Failed to generate summary: {e}[/red]")
            raise typer.Exit(1)

    console.print(f"[bold]{note.title}[/bold]\n")
    console.print(summary)


@app.command()
def describe(
    note_id: str = typer.Argument(..., help="Text note ID"),
    save: bool = typer.Option(False, "--save", "-s", help="Store as the note's description"),
):
    """Generate a one-line description for a note."""
    settings = get_settings()
    service = get_note_service(settings)
    try:
        note = service.get_note(note_id)
    except NoteNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    description = AssistantService(get_llm(settings)).generate_description(note_text(note))
    if not description:
        console.print("[yellow]No description could be generated.[/yellow]")
        raise typer.Exit(1)

    console.print(description)
    if save:
        service.update_note(note_id, description=description)
        console.print("[green]✓[/green] Saved")


@lecture_app.command("translate")
def lecture_translate(
    transcript: Path = typer.Argument(..., exists=True, help="Transcript text file"),
    title: str = typer.Option(..., "--title", help="Lecture title"),
    original_language: str = typer.Option("Spanish", "--from", help="Transcript language"),
    target_language: str = typer.Option("English", "--to", help="Translation language"),
    course: Optional[str] = typer.Option(None, "--course", help="Course ID"),
):
    """Translate a lecture and store it with a glossary and key points."""
    settings = get_settings()
    repo = get_repository(settings)
    text = transcript.read_text(encoding="utf-8")

    assistant = AssistantService(get_llm(settings))
    with console.status("[yellow]Translating lecture...[/yellow]"):
        try:
            translation = assistant.translate_lecture(text, original_language, target_language)
        except Exception as e:
            console.print(f"[red]Translation failed: {e}[/red]")
            raise typer.Exit(1)

    lecture = LectureNote(
        title=title,
        original_language=original_language,
        target_language=target_language,
        original_transcript=text,
        course_id=course,
        audio_file_name=transcript.name,
    )
    repo.add_lecture_note(translation.apply_to(lecture))

    console.print(f"[green]✓[/green] Saved lecture [cyan]{lecture.id}[/cyan]\n")
    console.print("[bold]Key points:[/bold]")
    for point in lecture.key_points:
        console.print(f"  • {point}")

    if lecture.glossary:
        table = Table(title="Glossary")
        table.add_column("Term", style="cyan")
        table.add_column("Definition")
        for entry in lecture.glossary:
            table.add_row(entry.term, entry.definition)
        console.print(table)


@lecture_app.command("list")
def lecture_list(course: Optional[str] = typer.Option(None, "--course", help="Course ID")):
    """List stored lectures."""
    lectures = get_repository(get_settings()).get_lecture_notes(course)
    table = Table(title="Lectures")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Languages")
    table.add_column("Terms", justify="right")
    for lecture in lectures:
        table.add_row(
            lecture.id,
            lecture.title,
            f"{lecture.original_language} → {lecture.target_language}",
            str(len(lecture.glossary)),
        )
    console.print(table)


# ==================== Export ====================


@app.command()
def export(
    note_id: Optional[str] = typer.Argument(None, help="Note ID (omit with --all)"),
    fmt: str = typer.Option("md", "--format", "-F", help="md, json or csv (flashcard sets)"),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Output directory"),
    all_notes: bool = typer.Option(False, "--all", help="Export every note as one JSON file"),
):
    """Export notes to Markdown, JSON or CSV files."""
    from sprintnotes.services import exporter

    repo = get_repository(get_settings())
    output.mkdir(parents=True, exist_ok=True)

    if all_notes:
        notes = repo.get_all_notes()
        path = output / "sprintnotes-export.json"
        path.write_text(exporter.notes_to_json(notes), encoding="utf-8")
        console.print(f"[green]✓[/green] Exported {len(notes)} note(s) to {path}")
        return

    if note_id is None:
        console.print("[red]Give a note ID or --all.[/red]")
        raise typer.Exit(1)

    note = repo.get_note(note_id)
    if note is None:
        console.print(f"[red]No note with id {note_id!r}[/red]")
        raise typer.Exit(1)

    stem = exporter.sanitize_filename(note.title) or note.id
    if note.type == NoteType.FLASHCARD_SET and fmt in ("json", "csv"):
        cards = repo.get_flashcards_for_note(note.id)
        if fmt == "csv":
            path = output / f"{stem}-flashcards.csv"
            path.write_text(exporter.flashcards_to_csv(cards), encoding="utf-8")
        else:
            path = output / f"{stem}-flashcards.json"
            path.write_text(exporter.flashcards_to_json(note.id, cards), encoding="utf-8")
    elif fmt == "json":
        path = output / f"{stem}.json"
        path.write_text(exporter.note_to_json(note), encoding="utf-8")
    elif fmt == "md":
        path = output / f"{stem}.md"
        path.write_text(exporter.note_to_markdown(note), encoding="utf-8")
    else:
        console.print(f"[red]Unsupported format {fmt!r} for a {note.type.value} note.[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Exported to {path}")


# ==================== Canvas ====================


def get_canvas_client(settings: Settings):
    """Canvas client from settings, or exit when unconfigured."""
    from sprintnotes.services.canvas_client import CanvasClient

    if not settings.canvas_url or not settings.canvas_api_token:
        console.print(
            "[red]Set SPRINTNOTES_CANVAS_URL and SPRINTNOTES_CANVAS_API_TOKEN first.[/red]"
        )
        raise typer.Exit(1)
    return CanvasClient(settings.canvas_url, settings.canvas_api_token)


@canvas_app.command("verify")
def canvas_verify():
    """Check the Canvas token."""
    from sprintnotes.services.canvas_client import CanvasError

    client = get_canvas_client(get_settings())
    try:
        user = client.verify()
    except CanvasError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Connected as {user.name} ({user.email or 'no email'})")


@canvas_app.command("courses")
def canvas_courses():
    """List your student courses."""
    from sprintnotes.services.canvas_client import CanvasError

    client = get_canvas_client(get_settings())
    try:
        courses = client.list_courses()
    except CanvasError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Canvas Courses")
    table.add_column("ID", style="cyan")
    table.add_column("Code")
    table.add_column("Name", style="bold")
    table.add_column("Term", style="dim")
    for course in courses:
        table.add_row(str(course.id), course.code, course.name, course.term or "")
    console.print(table)


@canvas_app.command("assignments")
def canvas_assignments(course_id: int = typer.Argument(..., help="Canvas course ID")):
    """List a course's assignments."""
    from sprintnotes.services.canvas_client import CanvasError

    client = get_canvas_client(get_settings())
    try:
        assignments = client.list_assignments(course_id)
    except CanvasError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Assignments")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Due", style="dim")
    table.add_column("Points", justify="right")
    for assignment in assignments:
        points = "" if assignment.points_possible is None else f"{assignment.points_possible:g}"
        table.add_row(str(assignment.id), assignment.name, assignment.due_at or "", points)
    console.print(table)


@canvas_app.command("files")
def canvas_files(course_id: int = typer.Argument(..., help="Canvas course ID")):
    """List a course's files."""
    from sprintnotes.services.canvas_client import CanvasError

    client = get_canvas_client(get_settings())
    try:
        files = client.list_files(course_id)
    except CanvasError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Files")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Type", style="dim")
    table.add_column("Size", justify="right")
    for f in files:
        table.add_row(str(f.id), f.name, f.content_type or "", str(f.size or ""))
    console.print(table)


@canvas_app.command("submit")
def canvas_submit(
    course_id: int = typer.Argument(..., help="Canvas course ID"),
    assignment_id: int = typer.Argument(..., help="Canvas assignment ID"),
    note_id: str = typer.Argument(..., help="Text note to submit"),
):
    """Submit a note as an online text entry."""
    from sprintnotes.services.canvas_client import CanvasError

    settings = get_settings()
    note = get_repository(settings).get_note(note_id)
    if note is None or not isinstance(note.content, RichText):
        console.print(f"[red]No text note with id {note_id!r}[/red]")
        raise typer.Exit(1)

    client = get_canvas_client(settings)
    try:
        submission = client.submit_note(course_id, assignment_id, note.title, note.content.html)
    except (CanvasError, ValueError) as e:
        console.print(f"[red]Failed to export to Canvas: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Submitted (submission {submission.id})")


# ==================== Mentoring ====================


@mentor_app.command("signup")
def mentor_signup(
    email: str = typer.Argument(...),
    role: str = typer.Option(..., "--role", help="mentor or mentee"),
    birthday: str = typer.Option(..., "--birthday", help="YYYY-MM-DD"),
    subjects: list[str] = typer.Option(..., "--subject", "-s", help="Subject (repeatable)"),
):
    """Create a mentoring account."""
    from sprintnotes.services.auth import AuthError, AuthService

    password = typer.prompt("Password", hide_input=True, confirmation_prompt=True)
    auth = AuthService(get_collab_repository(get_settings()))
    try:
        user = auth.signup(email, password, birthday, role, subjects)
    except (ValueError, AuthError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Welcome! Your user ID is [cyan]{user.id}[/cyan]")


@mentor_app.command("find")
def mentor_find(user_id: int = typer.Argument(..., help="Your user ID")):
    """Suggest partners sharing your subjects."""
    from sprintnotes.services.matching import MatchError, MatchService

    matching = MatchService(get_collab_repository(get_settings()))
    try:
        candidates = matching.find_candidates(user_id)
    except MatchError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not candidates:
        console.print("[yellow]No candidates yet.[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Potential Matches")
    table.add_column("ID", style="cyan")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Shared Subjects", style="green")
    for candidate in candidates:
        table.add_row(
            str(candidate.user.id),
            candidate.user.email,
            candidate.user.role.value,
            ", ".join(candidate.common_subjects),
        )
    console.print(table)


@mentor_app.command("request")
def mentor_request(
    user_id: int = typer.Argument(..., help="Your user ID"),
    target_id: int = typer.Argument(..., help="User to pair with"),
):
    """Send a match request."""
    from sprintnotes.services.matching import MatchError, MatchService

    matching = MatchService(get_collab_repository(get_settings()))
    try:
        match = matching.request_match(user_id, target_id)
    except MatchError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Requested match [cyan]{match.id}[/cyan]")


@mentor_app.command("respond")
def mentor_respond(
    match_id: int = typer.Argument(..., help="Match ID"),
    user_id: int = typer.Argument(..., help="Your user ID"),
    new_status: MatchStatus = typer.Argument(..., help="accepted, rejected or ended"),
):
    """Accept, reject or end a match."""
    from sprintnotes.services.matching import MatchError, MatchService

    matching = MatchService(get_collab_repository(get_settings()))
    try:
        match = matching.update_status(match_id, user_id, new_status)
    except MatchError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Match {match.id} is now {match.status.value}")


@mentor_app.command("matches")
def mentor_matches(user_id: int = typer.Argument(..., help="Your user ID")):
    """List your matches."""
    from sprintnotes.services.matching import MatchService

    views = MatchService(get_collab_repository(get_settings())).list_matches(user_id)
    table = Table(title="Matches")
    table.add_column("ID", style="cyan")
    table.add_column("With")
    table.add_column("You Are")
    table.add_column("Status", style="green")
    for view in views:
        table.add_row(
            str(view.match.id),
            view.other_user.email,
            "mentor" if view.is_mentor else "mentee",
            view.match.status.value,
        )
    console.print(table)


@mentor_app.command("send")
def mentor_send(
    match_id: int = typer.Argument(..., help="Match ID"),
    user_id: int = typer.Argument(..., help="Your user ID"),
    text: str = typer.Argument(..., help="Message"),
):
    """Send a message in an accepted match."""
    from sprintnotes.services.matching import MatchError
    from sprintnotes.services.messaging import MessageError, MessageService

    messages = MessageService(get_collab_repository(get_settings()))
    try:
        messages.send_message(match_id, user_id, text)
    except (MatchError, MessageError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Sent")


@mentor_app.command("chat")
def mentor_chat(
    match_id: int = typer.Argument(..., help="Match ID"),
    user_id: int = typer.Argument(..., help="Your user ID"),
):
    """Follow a conversation until interrupted."""
    from sprintnotes.services.messaging import MessagePoller, MessageService

    settings = get_settings()
    service = MessageService(get_collab_repository(settings))
    seen: set[int] = set()

    def show(batch) -> None:
        for message in batch:
            if message.id in seen:
                continue
            seen.add(message.id)
            who = "[cyan]you[/cyan]" if message.sender_id == user_id else "[magenta]them[/magenta]"
            console.print(f"[dim]{message.created_at:%H:%M}[/dim] {who}: {message.content}")

    async def follow() -> None:
        poller = MessagePoller(
            service, match_id, user_id, show, interval=settings.message_poll_interval
        )
        task = poller.start()
        try:
            await task
        finally:
            await poller.stop()

    console.print("[dim]Ctrl-C to leave the chat[/dim]")
    try:
        asyncio.run(follow())
    except KeyboardInterrupt:
        pass


# ==================== Misc ====================


@app.command()
def config():
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="SprintNotes Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database Path", str(settings.database_path))
    table.add_row("Collab Database", settings.collab_database_url or "(local database)")
    table.add_row("Remote URL", settings.remote_url or "(not set)")
    table.add_row("Remote API Key", _mask(settings.remote_api_key))
    table.add_row("Connectivity Probe", settings.probe_url or "(not set)")
    table.add_row("Sync Max Attempts", str(settings.sync_max_attempts))
    table.add_row(
        "Sync Backoff", f"{settings.sync_backoff_multiplier:g}s .. {settings.sync_backoff_max:g}s"
    )
    table.add_row("LLM Provider", settings.llm_provider)
    if settings.llm_provider == "gemini":
        table.add_row("Gemini Model", settings.gemini_model)
        table.add_row("Gemini API Key", _mask(settings.gemini_api_key))
    else:
        table.add_row("Ollama Host", settings.ollama_host)
        table.add_row("Ollama Model", settings.ollama_model)
        table.add_row("Ollama API Key", _mask(settings.ollama_api_key))
    table.add_row("Canvas URL", settings.canvas_url or "(not set)")
    table.add_row("Canvas Token", _mask(settings.canvas_api_token))
    table.add_row("Log Level", settings.log_level)

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"SprintNotes v{__version__}")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level"),
):
    """
    SprintNotes - local-first study notes.

    Edits are saved locally and queued; 'sprintnotes sync run' delivers
    them to the remote store when the network is back.
    """
    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print("\nMake sure you have a valid .env file.")
        raise typer.Exit(1)
    setup_logging("INFO" if verbose else settings.log_level, json_format=settings.log_json)


if __name__ == "__main__":
    app()
