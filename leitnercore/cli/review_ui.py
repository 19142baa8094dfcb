"""
Command-line interface for reviewing flashcards.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from leitnercore.models import Flashcard, StudySession
from leitnercore.review_manager import AnswerResult, ReviewSessionManager

logger = logging.getLogger(__name__)
console = Console()

_ANSWERS = {"y": True, "yes": True, "n": False, "no": False, "s": None, "skip": None}


def _get_user_answer() -> Optional[bool]:
    """
    Prompt until the user says whether they knew the answer.

    Returns:
        True for correct, False for incorrect, None to skip the card.
    """
    while True:
        answer = console.input(
            "[bold]Did you know it? (y)es / (n)o / (s)kip: [/bold]"
        ).strip().lower()
        if answer in _ANSWERS:
            return _ANSWERS[answer]
        console.print("[bold red]Please answer y, n or s.[/bold red]")


def _display_front(manager: ReviewSessionManager, card: Flashcard) -> None:
    console.print(Panel(card.front, title="Front", border_style="green"))
    hint = manager.hint()
    prompt = "[italic]Press Enter to see the back"
    prompt += " (h for a hint)...[/italic]" if hint else "...[/italic]"
    while console.input(prompt).strip().lower() == "h" and hint:
        console.print(f"[yellow]Hint:[/yellow] {hint}")


def _report_answer(result: AnswerResult) -> None:
    if result.skipped:
        console.print("[dim]Skipped.[/dim]")
        return
    card = result.card
    if result.new_box > result.old_box:
        movement = f"[green]Promoted to box {result.new_box}.[/green]"
    elif result.new_box < result.old_box:
        movement = f"[red]Back to box {result.new_box}.[/red]"
    else:
        movement = f"Stays in box {result.new_box}."
    console.print(f"{movement} Next review on [bold]{card.next_review}[/bold].")


def _display_summary(session: StudySession) -> None:
    table = Table(title="Session Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Cards Reviewed", str(session.cards_reviewed))
    table.add_row("Correct Answers", str(session.correct_answers))
    table.add_row("Accuracy", f"{session.accuracy}%")
    for box, progress in sorted(session.box_progress.items()):
        if progress.promoted or progress.demoted:
            table.add_row(
                f"Box {box}",
                f"+{progress.promoted} promoted / -{progress.demoted} demoted",
            )
    console.print(table)


def start_review_flow(manager: ReviewSessionManager) -> Optional[StudySession]:
    """
    Run an interactive review over the manager's due cards.

    Returns:
        The recorded session, or None when nothing was due.
    """
    console.print("[bold cyan]Starting review session...[/bold cyan]")
    manager.start()

    if manager.is_complete:
        console.print("[bold yellow]No cards are due for review.[/bold yellow]")
        return None

    while not manager.is_complete:
        card = manager.current_card
        position, total = manager.progress
        console.rule(f"[bold]Card {position} of {total} (box {card.box})[/bold]")

        _display_front(manager, card)
        manager.reveal()
        console.print(Panel(card.back, title="Back", border_style="blue"))

        correct = _get_user_answer()
        if correct is None:
            result = manager.skip()
        else:
            result = manager.answer(correct)
            if not result.success:
                logger.error(f"Failed to save review for {card.id}: {result.error}")
                console.print(
                    f"[bold red]Could not save this answer: {result.error}. "
                    "Skipping the card.[/bold red]"
                )
                result = manager.skip()
        _report_answer(result)
        console.print("")

    _display_summary(manager.session)
    console.print("[bold cyan]Review session finished. Well done![/bold cyan]")
    return manager.session
