"""
CLI entry point for leitnercore.
"""

# Standard library imports
import shutil
from pathlib import Path
from typing import Dict, List, Optional

# Third-party imports
import typer
from rich.console import Console
from rich.table import Table

# Local application imports
from leitnercore.cli._export_logic import export_to_markdown, write_json_document
from leitnercore.cli.review_ui import start_review_flow
from leitnercore.config import settings
from leitnercore.constants import MAX_BOX, MIN_BOX
from leitnercore.db.database import FlashcardDatabase
from leitnercore.db.db_utils import backup_database, find_latest_backup
from leitnercore.documents import (
    DocumentKind,
    classify_document,
    load_document,
)
from leitnercore.exceptions import LeitnerError
from leitnercore.models import CardStatistics, CardType
from leitnercore.review_manager import ReviewSessionManager
from leitnercore.service import LeitnerService, OperationResult


console = Console()

app = typer.Typer(
    name="leitnercore",
    help="Leitner box flashcards: review, import, export.",
    add_completion=False,
    rich_markup_mode="markdown",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """--db flag, then LEITNER_DB (via typer), then the configured default."""
    return db if db is not None else settings.db_path


_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. Falls back to LEITNER_DB env var.",
    envvar="LEITNER_DB",
)

_subject_option = typer.Option(  # noqa: B008
    None, "--subject", "-s", help="Restrict to one subject id."
)
_deck_option = typer.Option(  # noqa: B008
    None, "--deck", "-d", help="Restrict to one deck id."
)
_box_option = typer.Option(  # noqa: B008
    None, "--box", "-b", min=MIN_BOX, max=MAX_BOX, help="Restrict to one box."
)
_yes_option = typer.Option(
    False, "--yes", "-y", help="Bypass confirmation prompt."
)


def _fail(message: str, error: Optional[Exception] = None) -> None:
    console.print(f"[bold red]Error: {message}[/bold red]")
    raise typer.Exit(code=1) from error


def _snapshot(db_path: Path) -> None:
    backup_path = backup_database(db_path)
    if backup_path is not None:
        console.print(f"Database backed up to: [dim]{backup_path}[/dim]")


def _report_result(result: OperationResult) -> None:
    if not result.success:
        _fail(f"{result.error} ({result.kind})")
    console.print(f"[bold green]{result.message}[/bold green]")


def _display_box_counts(title: str, counts: Dict[int, int]) -> None:
    table = Table(title=title)
    table.add_column("Box", style="cyan")
    table.add_column("Cards", style="magenta")
    for box in range(MIN_BOX, MAX_BOX + 1):
        table.add_row(str(box), str(counts.get(box, 0)))
    console.print(table)


def _display_card_stats(stats: CardStatistics) -> None:
    table = Table(title="Learning Progress", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Total Cards", str(stats.total))
    table.add_row("Due Today", str(stats.due_today))
    table.add_row("Mastered (box 4)", str(stats.mastered))
    table.add_row("Average Correct Rate", f"{stats.average_correct_rate}%")
    console.print(table)
    _display_box_counts("Cards by Box", stats.by_box)


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------


@app.command()
def init(
    db: Optional[Path] = _db_option,
    force: bool = typer.Option(
        False,
        "--force",
        help="Drop and recreate all tables. Refused when they hold data.",
    ),
):
    """Create the database and its tables."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema(force_recreate_tables=force)
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(f"[bold green]Database ready at {db_path}[/bold green]")


# ---------------------------------------------------------------------------
# Subjects and decks
# ---------------------------------------------------------------------------


@app.command()
def subjects(db: Optional[Path] = _db_option):
    """List subjects with their deck and card counts."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            all_subjects = db_inst.get_all_subjects()
            table = Table(title="Subjects")
            table.add_column("ID", style="dim")
            table.add_column("Name", style="cyan")
            table.add_column("Decks", style="magenta")
            table.add_column("Cards", style="magenta")
            for subject in all_subjects:
                table.add_row(
                    subject.id,
                    subject.name,
                    str(len(db_inst.get_all_decks(subject_id=subject.id))),
                    str(len(db_inst.get_all_cards(subject_id=subject.id))),
                )
    except LeitnerError as e:
        _fail(str(e), e)
    if not all_subjects:
        console.print("[yellow]No subjects yet.[/yellow]")
        return
    console.print(table)


@app.command("add-subject")
def add_subject(
    name: str = typer.Argument(..., help="Subject name."),
    description: Optional[str] = typer.Option(None, "--description"),
    icon: Optional[str] = typer.Option(None, "--icon"),
    color: Optional[str] = typer.Option(None, "--color"),
    db: Optional[Path] = _db_option,
):
    """Create a subject."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            subject = LeitnerService(db_inst).create_subject(
                name, description=description, icon=icon, color=color
            )
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(
        f"[bold green]Created subject '{subject.name}'[/bold green] "
        f"([dim]{subject.id}[/dim])"
    )


@app.command("edit-subject")
def edit_subject(
    subject_id: str = typer.Argument(..., help="Subject id."),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    icon: Optional[str] = typer.Option(None, "--icon"),
    color: Optional[str] = typer.Option(None, "--color"),
    db: Optional[Path] = _db_option,
):
    """Change a subject's name, description, icon or color."""
    updates = {
        key: value
        for key, value in (
            ("name", name),
            ("description", description),
            ("icon", icon),
            ("color", color),
        )
        if value is not None
    }
    if not updates:
        _fail("Nothing to change; pass at least one option.")
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            subject = LeitnerService(db_inst).edit_subject(subject_id, **updates)
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(f"[bold green]Updated subject '{subject.name}'.[/bold green]")


@app.command("delete-subject")
def delete_subject(
    subject_id: str = typer.Argument(..., help="Subject id."),
    yes: bool = _yes_option,
    db: Optional[Path] = _db_option,
):
    """Delete a subject together with its decks and cards."""
    db_path = _resolve_db_path(db)
    if not yes and not typer.confirm(
        "Delete this subject and all of its decks and cards?"
    ):
        console.print("Delete cancelled.")
        raise typer.Exit()
    _snapshot(db_path)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            deleted = LeitnerService(db_inst).delete_subject_cascade(subject_id)
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(
        f"[bold green]Deleted subject with {deleted['decks']} deck(s) and "
        f"{deleted['cards']} card(s).[/bold green]"
    )


@app.command()
def decks(
    subject: Optional[str] = _subject_option,
    db: Optional[Path] = _db_option,
):
    """List decks, optionally for one subject."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            all_decks = db_inst.get_all_decks(subject_id=subject)
            due = {
                deck.id: len(db_inst.get_cards_due_for_review(deck_id=deck.id))
                for deck in all_decks
            }
            total = {
                deck.id: len(db_inst.get_all_cards(deck_id=deck.id))
                for deck in all_decks
            }
    except LeitnerError as e:
        _fail(str(e), e)
    if not all_decks:
        console.print("[yellow]No decks found.[/yellow]")
        return
    table = Table(title="Decks")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Cards", style="magenta")
    table.add_column("Due", style="yellow")
    for deck in all_decks:
        table.add_row(deck.id, deck.name, str(total[deck.id]), str(due[deck.id]))
    console.print(table)


@app.command("add-deck")
def add_deck(
    name: str = typer.Argument(..., help="Deck name."),
    subject: Optional[str] = _subject_option,
    description: Optional[str] = typer.Option(None, "--description"),
    tags: Optional[List[str]] = typer.Option(  # noqa: B008
        None, "--tag", help="Tag (repeatable)."
    ),
    db: Optional[Path] = _db_option,
):
    """Create a deck, standalone or inside a subject."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            deck = LeitnerService(db_inst).create_deck(
                name, subject_id=subject, description=description, tags=tags
            )
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(
        f"[bold green]Created deck '{deck.name}'[/bold green] ([dim]{deck.id}[/dim])"
    )


@app.command("add-card")
def add_card(
    deck_id: str = typer.Argument(..., help="Deck id."),
    front: str = typer.Option(..., "--front", help="Question side."),
    back: str = typer.Option(..., "--back", help="Answer side."),
    card_type: CardType = typer.Option(CardType.Basic, "--type"),
    hints: Optional[List[str]] = typer.Option(  # noqa: B008
        None, "--hint", help="Hint (repeatable)."
    ),
    tags: Optional[List[str]] = typer.Option(  # noqa: B008
        None, "--tag", help="Tag (repeatable)."
    ),
    db: Optional[Path] = _db_option,
):
    """Add a new card to a deck (box 1, due today)."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            card = LeitnerService(db_inst).add_card(
                deck_id,
                front=front,
                back=back,
                type=card_type,
                hints=hints or [],
                tags=tags or [],
            )
    except LeitnerError as e:
        _fail(str(e), e)
    console.print(f"[bold green]Added card[/bold green] ([dim]{card.id}[/dim])")


# ---------------------------------------------------------------------------
# Statistics and review
# ---------------------------------------------------------------------------


@app.command()
def stats(
    deck: Optional[str] = _deck_option,
    subject: Optional[str] = _subject_option,
    db: Optional[Path] = _db_option,
):
    """Display statistics about the flashcard database."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            stats_data = db_inst.get_database_stats()
            card_stats = LeitnerService(db_inst).get_statistics(
                deck_id=deck, subject_id=subject
            )
    except LeitnerError as e:
        _fail(f"A database error occurred: {e}", e)

    overall_table = Table(title="Overall Database Stats", show_header=False)
    overall_table.add_column("Metric", style="cyan")
    overall_table.add_column("Value", style="magenta")
    overall_table.add_row("Subjects", str(stats_data["total_subjects"]))
    overall_table.add_row("Decks", str(stats_data["total_decks"]))
    overall_table.add_row("Cards", str(stats_data["total_cards"]))
    overall_table.add_row("Study Sessions", str(stats_data["total_sessions"]))
    console.print(overall_table)

    if not card_stats.total:
        console.print("[yellow]No cards found.[/yellow]")
        return
    _display_card_stats(card_stats)


@app.command()
def due(
    deck: Optional[str] = _deck_option,
    subject: Optional[str] = _subject_option,
    box: Optional[int] = _box_option,
    db: Optional[Path] = _db_option,
):
    """List the cards due for review today."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            cards = LeitnerService(db_inst).get_due_cards(
                deck_id=deck, subject_id=subject, box=box
            )
    except LeitnerError as e:
        _fail(str(e), e)
    if not cards:
        console.print("[yellow]No cards are due for review.[/yellow]")
        return
    table = Table(title=f"Due Cards ({len(cards)})")
    table.add_column("Box", style="cyan")
    table.add_column("Front")
    table.add_column("Due", style="yellow")
    for card in cards:
        table.add_row(str(card.box), card.front, str(card.next_review or "new"))
    console.print(table)


@app.command()
def review(
    deck: Optional[str] = _deck_option,
    subject: Optional[str] = _subject_option,
    box: Optional[int] = _box_option,
    db: Optional[Path] = _db_option,
):
    """Review the due cards of a deck, a subject, or everything."""
    db_path = _resolve_db_path(db)
    _snapshot(db_path)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            manager = ReviewSessionManager(
                db_inst, deck_id=deck, subject_id=subject, box=box
            )
            start_review_flow(manager)
    except LeitnerError as e:
        _fail(f"A database error occurred: {e}", e)


# ---------------------------------------------------------------------------
# Import, restore, backup
# ---------------------------------------------------------------------------


@app.command("import")
def import_file(
    path: Path = typer.Argument(  # noqa: B008
        ..., exists=True, dir_okay=False, help="JSON or YAML document."
    ),
    clear: bool = typer.Option(
        False,
        "--clear",
        help="Replace all existing data (ignored for single-subject files).",
    ),
    keep_progress: bool = typer.Option(
        False,
        "--keep-progress",
        help="Keep box and review counts from the file instead of starting over.",
    ),
    yes: bool = _yes_option,
    db: Optional[Path] = _db_option,
):
    """Import subjects, decks and cards from an exported document."""
    db_path = _resolve_db_path(db)
    try:
        raw = load_document(path)
        kind = classify_document(raw)
    except LeitnerError as e:
        _fail(str(e), e)

    console.print(f"Detected a [cyan]{kind.value}[/cyan] document.")
    destructive = clear and kind != DocumentKind.SINGLE_SUBJECT
    if destructive:
        if not yes and not typer.confirm(
            "This will DELETE all existing data before importing. Continue?"
        ):
            console.print("Import cancelled.")
            raise typer.Exit()
        _snapshot(db_path)

    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            result = LeitnerService(db_inst).import_document(
                raw, clear_existing=clear, reset_progress=not keep_progress
            )
    except LeitnerError as e:
        _fail(str(e), e)
    _report_result(result)


@app.command()
def restore(
    path: Path = typer.Argument(  # noqa: B008
        ..., exists=True, dir_okay=False, help="Full backup JSON file."
    ),
    yes: bool = _yes_option,
    db: Optional[Path] = _db_option,
):
    """Replace all data with a full backup, keeping learning progress."""
    db_path = _resolve_db_path(db)
    try:
        raw = load_document(path)
    except LeitnerError as e:
        _fail(str(e), e)

    if not yes and not typer.confirm(
        "Restoring replaces ALL current data. Continue?"
    ):
        console.print("Restore operation cancelled.")
        raise typer.Exit()

    _snapshot(db_path)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            result = LeitnerService(db_inst).restore_backup(raw)
    except LeitnerError as e:
        _fail(str(e), e)
    _report_result(result)


@app.command()
def backup(
    output: Path = typer.Argument(  # noqa: B008
        ..., dir_okay=False, help="Where to write the backup JSON."
    ),
    db: Optional[Path] = _db_option,
):
    """Write a full backup (all data, sessions included) as JSON."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            document = LeitnerService(db_inst).export_full_backup()
        write_json_document(document, output)
    except (LeitnerError, OSError) as e:
        _fail(f"Backup failed: {e}", e)
    console.print(f"[bold green]Backup written to {output}[/bold green]")


@app.command("restore-snapshot")
def restore_snapshot(
    yes: bool = _yes_option,
    db: Optional[Path] = _db_option,
):
    """Put back the database file snapshot taken before the last risky command."""
    db_path = _resolve_db_path(db)
    latest_backup = find_latest_backup(db_path)
    if not latest_backup:
        _fail("No snapshot files found.")

    console.print(f"Found latest snapshot: [cyan]{latest_backup.name}[/cyan]")
    if not yes and not typer.confirm(
        "Are you sure you want to overwrite the current database with this snapshot?"
    ):
        console.print("Restore operation cancelled.")
        raise typer.Exit()

    try:
        shutil.copy2(latest_backup, db_path)
    except OSError as e:
        _fail(f"An unexpected error occurred during restore: {e}", e)
    console.print(
        f"[bold green]Database successfully restored from {latest_backup.name}[/bold green]"
    )


# ---------------------------------------------------------------------------
# Export subcommand group
# ---------------------------------------------------------------------------

export_app = typer.Typer(
    name="export",
    help="Export flashcards to different formats.",
)
app.add_typer(export_app)


@export_app.command("json")
def export_json(
    output: Path = typer.Argument(..., dir_okay=False),  # noqa: B008
    subject: Optional[str] = typer.Option(
        None, "--subject", "-s", help="Export only this subject."
    ),
    include_stats: bool = typer.Option(
        True, "--stats/--no-stats", help="Include sessions and statistics."
    ),
    db: Optional[Path] = _db_option,
):
    """Export everything, or one subject, as a JSON document."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            service = LeitnerService(db_inst)
            if subject:
                document = service.export_subject(subject)
            else:
                document = service.export_full_backup(include_stats=include_stats)
        write_json_document(document, output)
    except (LeitnerError, OSError) as e:
        _fail(f"An error occurred during export: {e}", e)
    console.print(f"[bold green]Exported to {output}[/bold green]")


@export_app.command("md")
def export_md(
    output_dir: Path = typer.Option(  # noqa: B008
        ...,
        "--output-dir",
        help="Directory to save exported Markdown files.",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    db: Optional[Path] = _db_option,
):
    """Export flashcards into Markdown files, one per deck."""
    db_path = _resolve_db_path(db)
    console.print(f"Exporting flashcards to [cyan]{output_dir}[/cyan]...")
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            written = export_to_markdown(db=db_inst, output_dir=output_dir)
    except (LeitnerError, IOError) as e:
        _fail(f"An error occurred during export: {e}", e)
    console.print(f"[bold green]Wrote {written} Markdown file(s).[/bold green]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the CLI application, exiting with status 1 on unexpected errors."""
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
