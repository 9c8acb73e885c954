"""
Practica: command line for the practice scheduler.

Commands:
- practica add-piece     - Register a music piece
- practica add-section   - Add a bar section and schedule its first session
- practica edit-section  - Change difficulty, target, description or lifecycle state
- practica remove-section - Delete a bar section with its sessions
- practica remove-piece  - Delete a piece with its sections and sessions
- practica pieces        - List pieces and their sections
- practica due           - Sessions due today
- practica sessions      - Upcoming (or all) scheduled sessions
- practica practice      - Record feedback on a finished practice session
- practica pause         - Pause a piece until a future date
- practica resume        - Resume a paused piece
- practica reschedule    - Move overdue sessions, schedule unscheduled sections,
                           drop orphaned sessions
- practica flags         - Show the active retention layers

Ids may be abbreviated to any unique prefix.
"""
from __future__ import annotations

import sys
from datetime import date, timedelta
from typing import Optional, TypeVar

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from loguru import logger

from config import get_settings
from practica.core.exceptions import PersistenceError, PracticaError
from practica.core.models import Difficulty, LifecycleState, PracticeQuality, SessionStatus
from practica.delivery.scheduler import PracticeScheduler


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="practica",
    help="Practica: spaced practice scheduling for musicians",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")

STATUS_STYLES = {
    SessionStatus.SCHEDULED: "cyan",
    SessionStatus.COMPLETED: "green",
    SessionStatus.CANCELED: "dim",
}


# =============================================================================
# Helpers
# =============================================================================

def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _scheduler(ctx: typer.Context) -> PracticeScheduler:
    profile = (ctx.obj or {}).get("profile")
    return PracticeScheduler.from_settings(get_settings(), profile=profile)


def _save(scheduler: PracticeScheduler) -> None:
    try:
        scheduler.save()
    except PersistenceError as e:
        _fail(f"Could not save: {e}")


def _resolve(prefix: str, candidates: dict[str, T], kind: str) -> T:
    """Pick the single candidate whose id starts with prefix."""
    matches = [v for k, v in candidates.items() if k.startswith(prefix.lower())]
    if not matches:
        _fail(f"No {kind} matches '{prefix}'")
    if len(matches) > 1:
        _fail(f"'{prefix}' matches {len(matches)} {kind}s; use a longer prefix")
    return matches[0]


def _section(scheduler: PracticeScheduler, prefix: str):
    sections = {str(s.id): (p, s) for p in scheduler.library for s in p.sections}
    return _resolve(prefix, sections, "section")


def _short(value) -> str:
    return str(value)[:8]


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got '{value}'")


def _sessions_table(title: str, sessions) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Piece")
    table.add_column("Bars")
    table.add_column("Difficulty")
    table.add_column("Tau", justify="right")
    table.add_column("Status")

    for s in sessions:
        style = STATUS_STYLES.get(s.status, "white")
        table.add_row(
            _short(s.id),
            s.scheduled_date.isoformat(),
            s.piece_title,
            s.bar_range,
            s.difficulty,
            f"{s.tau_value:.2f}",
            f"[{style}]{s.status.value}[/{style}]",
        )
    return table


# =============================================================================
# Commands
# =============================================================================

@app.callback()
def cli(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None,
        "--profile", "-p",
        help="User profile (defaults to PRACTICA_PROFILE)",
    ),
) -> None:
    """Spaced practice scheduling for musicians."""
    ctx.obj = {"profile": profile}


@app.command("add-piece")
def add_piece(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Title of the piece"),
    composer: str = typer.Option("", "--composer", "-c", help="Composer"),
) -> None:
    """Register a music piece."""
    scheduler = _scheduler(ctx)
    piece = scheduler.add_piece(title, composer)
    _save(scheduler)
    console.print(f"[green]Added[/green] {piece.title} [dim]({_short(piece.id)})[/dim]")


@app.command("add-section")
def add_section(
    ctx: typer.Context,
    piece_id: str = typer.Argument(..., help="Piece id (or unique prefix)"),
    bar_range: str = typer.Argument(..., help="Bar range, e.g. 1-8"),
    target: int = typer.Option(6, "--target", "-t", help="Target repetitions (1-12)"),
    difficulty: str = typer.Option("Moderate", "--difficulty", "-d", help="Initial difficulty"),
    description: str = typer.Option("", "--description", help="Free text"),
) -> None:
    """Add a bar section and schedule its first session."""
    scheduler = _scheduler(ctx)
    piece = _resolve(piece_id, {str(p.id): p for p in scheduler.library}, "piece")
    try:
        section, session = scheduler.add_section(piece.id, bar_range, description, target, difficulty)
    except (PracticaError, ValueError) as e:
        _fail(str(e))
    _save(scheduler)

    console.print(f"[green]Added[/green] bars {section.bar_range} to {piece.title} [dim]({_short(section.id)})[/dim]")
    if session:
        console.print(f"First session on {session.scheduled_date.isoformat()}")


@app.command("edit-section")
def edit_section(
    ctx: typer.Context,
    section_id: str = typer.Argument(..., help="Bar section id (or unique prefix)"),
    difficulty: Optional[str] = typer.Option(None, "--difficulty", "-d", help="New difficulty"),
    target: Optional[int] = typer.Option(None, "--target", "-t", help="Target repetitions (1-12)"),
    description: Optional[str] = typer.Option(None, "--description", help="Free text"),
    state: Optional[str] = typer.Option(None, "--state", "-s", help="Active | Maintenance | Inactive"),
) -> None:
    """Change a section's settings or lifecycle state."""
    scheduler = _scheduler(ctx)
    piece, section = _section(scheduler, section_id)
    if state and state.lower() not in {s.value.lower() for s in LifecycleState}:
        _fail(f"Unknown lifecycle state '{state}'")

    try:
        updated = scheduler.edit_section(piece.id, section.id, difficulty, target, description)
    except (PracticaError, ValueError) as e:
        _fail(str(e))
    changed = scheduler.set_lifecycle_state(piece.id, section.id, state) if state else []
    _save(scheduler)

    console.print(
        f"[green]Updated[/green] {piece.title} - {section.bar_range} "
        f"[dim]({section.difficulty.value}, {section.lifecycle_state.value})[/dim]"
    )
    if updated or changed:
        console.print(f"{len(updated) + len(changed)} session(s) adjusted")


@app.command("remove-section")
def remove_section(
    ctx: typer.Context,
    section_id: str = typer.Argument(..., help="Bar section id (or unique prefix)"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a bar section with its sessions and history."""
    scheduler = _scheduler(ctx)
    piece, section = _section(scheduler, section_id)
    if not confirm and not Confirm.ask(f"Remove bars {section.bar_range} of {piece.title}?", default=False):
        raise typer.Exit(0)

    removed = scheduler.remove_section(piece.id, section.id)
    _save(scheduler)
    console.print(f"[yellow]Removed[/yellow] bars {section.bar_range} and {len(removed)} session record(s)")


@app.command("remove-piece")
def remove_piece(
    ctx: typer.Context,
    piece_id: str = typer.Argument(..., help="Piece id (or unique prefix)"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a piece with its sections, sessions and history."""
    scheduler = _scheduler(ctx)
    piece = _resolve(piece_id, {str(p.id): p for p in scheduler.library}, "piece")
    if not confirm and not Confirm.ask(f"Remove {piece.title} and all of its sections?", default=False):
        raise typer.Exit(0)

    removed = scheduler.remove_piece(piece.id)
    _save(scheduler)
    console.print(f"[yellow]Removed[/yellow] {piece.title} and {len(removed)} session record(s)")


@app.command()
def pieces(ctx: typer.Context) -> None:
    """List pieces and their sections."""
    scheduler = _scheduler(ctx)
    today = scheduler.today()

    table = Table(title="Music Pieces")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Composer")
    table.add_column("Sections")
    table.add_column("Paused")

    for piece in scheduler.library:
        sections = ", ".join(
            f"{s.bar_range} ({_short(s.id)})"
            + ("" if s.lifecycle_state is LifecycleState.ACTIVE else f" [dim]{s.lifecycle_state.value}[/dim]")
            for s in piece.sections
        ) or "-"
        paused = (
            f"[yellow]until {piece.pause_until_date.isoformat()}[/yellow]"
            if piece.is_currently_paused(today)
            else ""
        )
        table.add_row(_short(piece.id), piece.title, piece.composer, sections, paused)

    console.print(table)


@app.command()
def due(ctx: typer.Context) -> None:
    """Show sessions due today."""
    scheduler = _scheduler(ctx)
    sessions = scheduler.due_today()
    if not sessions:
        console.print("[green]Nothing due today.[/green]")
        overdue = scheduler.manager.overdue_sessions()
        if overdue:
            console.print(f"[yellow]{len(overdue)} overdue session(s); run 'practica reschedule'.[/yellow]")
        return
    console.print(_sessions_table(f"Due {scheduler.today().isoformat()}", sessions))


@app.command()
def sessions(
    ctx: typer.Context,
    show_all: bool = typer.Option(False, "--all", "-a", help="Include completed and canceled"),
) -> None:
    """Show upcoming scheduled sessions."""
    scheduler = _scheduler(ctx)
    rows = scheduler.manager.all_sessions()
    if not show_all:
        rows = [s for s in rows if s.status is SessionStatus.SCHEDULED]
    console.print(_sessions_table("Scheduled Sessions", rows))


@app.command()
def practice(
    ctx: typer.Context,
    section_id: str = typer.Argument(..., help="Bar section id (or unique prefix)"),
    difficulty: str = typer.Option("Moderate", "--difficulty", "-d", help="VeryEasy | Easy | Moderate | Hard | VeryHard"),
    quality: str = typer.Option("Good", "--quality", "-q", help="Excellent | Good | Okay | Poor"),
    minutes: float = typer.Option(5.0, "--minutes", "-m", help="Session length in minutes"),
    notes: str = typer.Option("", "--notes", "-n", help="Free text"),
) -> None:
    """Record feedback on a finished practice session."""
    scheduler = _scheduler(ctx)
    piece, section = _section(scheduler, section_id)

    result = scheduler.record_practice(
        piece.id,
        section.id,
        Difficulty.parse(difficulty),
        PracticeQuality.parse(quality),
        notes,
        timedelta(minutes=minutes),
    )
    _save(scheduler)

    outcome = result.outcome
    console.print(
        f"[bold]{piece.title} - {section.bar_range}[/bold]: "
        f"{outcome.estimated_repetitions} repetition(s), {outcome.session_outcome.value}"
    )
    if result.next_session and result.plan:
        console.print(
            f"Next session on [cyan]{result.plan.due_date.isoformat()}[/cyan] "
            f"[dim](tau {result.plan.tau:.2f} days, R* {result.plan.target_retention:.2f})[/dim]"
        )
    elif not section.is_schedulable:
        console.print("[yellow]Section is inactive; no new session scheduled.[/yellow]")
    else:
        console.print("[yellow]Piece is paused; no new session scheduled.[/yellow]")


@app.command()
def pause(
    ctx: typer.Context,
    piece_id: str = typer.Argument(..., help="Piece id (or unique prefix)"),
    until: str = typer.Argument(..., help="Last paused day, YYYY-MM-DD"),
) -> None:
    """Pause a piece and cancel its pending sessions."""
    scheduler = _scheduler(ctx)
    until_date = _parse_date(until)
    if until_date <= scheduler.today():
        _fail("Pause date must be in the future")

    piece = _resolve(piece_id, {str(p.id): p for p in scheduler.library}, "piece")
    canceled = scheduler.pause_piece(piece.id, until_date)
    _save(scheduler)
    console.print(
        f"[yellow]Paused[/yellow] {piece.title} until {until_date.isoformat()}; "
        f"canceled {len(canceled)} session(s)"
    )


@app.command()
def resume(
    ctx: typer.Context,
    piece_id: str = typer.Argument(..., help="Piece id (or unique prefix)"),
) -> None:
    """Resume a paused piece."""
    scheduler = _scheduler(ctx)
    piece = _resolve(piece_id, {str(p.id): p for p in scheduler.library}, "piece")
    created = scheduler.resume_piece(piece.id)
    _save(scheduler)
    console.print(f"[green]Resumed[/green] {piece.title}; scheduled {len(created)} section(s)")


@app.command()
def reschedule(ctx: typer.Context) -> None:
    """Move overdue sessions forward and drop orphaned ones."""
    scheduler = _scheduler(ctx)
    moved = scheduler.reschedule_overdue()
    created = scheduler.schedule_missing()
    removed = scheduler.cleanup()
    _save(scheduler)
    console.print(
        f"Rescheduled {len(moved)} overdue session(s), scheduled {len(created)} section(s), "
        f"removed {len(removed)} orphaned"
    )


@app.command()
def flags(ctx: typer.Context) -> None:
    """Show the active retention calculation layers."""
    scheduler = _scheduler(ctx)
    snapshot = scheduler.registry.snapshot()

    table = Table(show_header=False, box=None)
    table.add_column("Flag", style="dim")
    table.add_column("Value", style="bold")
    for name, value in vars(snapshot).items():
        if isinstance(value, bool):
            table.add_row(name, "[green]on[/green]" if value else "[red]off[/red]")
        else:
            table.add_row(name, str(value))

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
