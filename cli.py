import sys
import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typing import Optional

from study_cycle.config import settings
from study_cycle.database import SessionLocal, init_db
from study_cycle.crud import SubjectRegistry, CycleStore
from study_cycle.exceptions import StudyCycleError
from study_cycle.generator import generate_cycle
from study_cycle.schemas import SubjectCreate, SubjectUpdate, CycleItemUpdate
from study_cycle.summary import item_percent, performance_band, subjects_in_cycle, summarize
from study_cycle.synchronizer import PerformanceMode, Synchronizer

app = typer.Typer(help="Study Cycle CLI - round-robin study sessions with synchronized progress")
console = Console()

BAND_STYLES = {"low": "red", "fair": "blue", "good": "green"}

state = {"user": settings.default_user}


@app.callback()
def main(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User key (default from settings)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")
):
    """Configure logging and the active user"""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    state["user"] = user or settings.default_user


def _fail(message: str):
    console.print(f"[red]✗[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _repositories(db):
    registry = SubjectRegistry(db, state["user"])
    store = CycleStore(db, state["user"])
    return registry, store


@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")


@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    from study_cycle.database import engine, Base
    console.print("[yellow]Dropping all tables...[/yellow]")
    Base.metadata.drop_all(bind=engine)
    console.print("[yellow]Recreating tables...[/yellow]")
    init_db()
    console.print("[green]✓[/green] Database reset complete! All data deleted.")


@app.command()
def add_subject(
    name: str = typer.Option(..., prompt="Subject name"),
    hours: float = typer.Option(..., prompt="Hours per session"),
    frequency: int = typer.Option(1, prompt="Sessions per cycle"),
    notebook_url: str = typer.Option("", help="Link to the subject's notebook")
):
    """Register a new subject"""
    db = SessionLocal()
    try:
        registry, _ = _repositories(db)
        subject = registry.add_subject(SubjectCreate(
            name=name,
            notebook_url=notebook_url,
            total_hours=hours,
            frequency=frequency
        ))
        console.print(f"[green]✓[/green] Subject added! ID: {subject.id}")
        console.print(f"  {escape(subject.name)}: {subject.total_hours:g}h x {subject.frequency}")
    except ValidationError as e:
        _fail(f"Invalid subject: {e.errors()[0]['msg']}")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def update_subject(
    subject_id: str,
    name: Optional[str] = typer.Option(None, help="New name"),
    hours: Optional[float] = typer.Option(None, help="New hours per session"),
    frequency: Optional[int] = typer.Option(None, help="New sessions per cycle"),
    notebook_url: Optional[str] = typer.Option(None, help="New notebook link"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive", help="Include in the next cycle")
):
    """Update a subject's settings"""
    db = SessionLocal()
    try:
        registry, _ = _repositories(db)
        updates = SubjectUpdate(
            name=name,
            total_hours=hours,
            frequency=frequency,
            notebook_url=notebook_url,
            is_active=active
        )
        subject = registry.update_subject(subject_id, updates)
        if subject:
            console.print(f"[green]✓[/green] Subject updated successfully!")
        else:
            console.print(f"[red]✗[/red] Subject {subject_id} not found")
    except ValidationError as e:
        _fail(f"Invalid update: {e.errors()[0]['msg']}")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def list_subjects():
    """List registered subjects"""
    db = SessionLocal()
    try:
        registry, _ = _repositories(db)
        subjects = registry.list_subjects()
        if not subjects:
            console.print("[yellow]No subjects registered yet[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Subject", style="cyan")
        table.add_column("Hours", style="blue")
        table.add_column("Freq", style="blue")
        table.add_column("Active")
        table.add_column("Correct / Wrong", style="yellow")

        for s in subjects:
            table.add_row(
                s.id,
                escape(s.name),
                f"{s.total_hours:g}h",
                f"{s.frequency}x",
                "[green]yes[/green]" if s.is_active else "[dim]no[/dim]",
                f"{s.total_correct} / {s.total_wrong}"
            )

        console.print(table)
    finally:
        db.close()


@app.command()
def toggle_all(active: bool = typer.Option(True, "--on/--off", help="Activate or deactivate every subject")):
    """Select or deselect every subject for the next cycle"""
    db = SessionLocal()
    try:
        registry, _ = _repositories(db)
        count = registry.toggle_all(active)
        console.print(f"[green]✓[/green] {count} subject(s) {'activated' if active else 'deactivated'}")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def delete_subject(subject_id: str):
    """Delete a subject (its sessions stay in the cycle)"""
    db = SessionLocal()
    try:
        registry, _ = _repositories(db)
        if registry.delete_subject(subject_id):
            console.print(f"[green]✓[/green] Subject deleted")
        else:
            console.print(f"[red]✗[/red] Subject {subject_id} not found")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command("generate-cycle")
def generate(
    keep_progress: Optional[bool] = typer.Option(
        None, "--keep-progress/--restart",
        help="Append and keep each subject's tally, or zero the tallies and replace the cycle"
    )
):
    """Generate a study cycle from the active subjects"""
    db = SessionLocal()
    try:
        registry, store = _repositories(db)
        subject_ids = [s.id for s in registry.list_subjects(active_only=True)]
        if not subject_ids:
            console.print("[yellow]No active subjects. Activate some with update-subject or toggle-all.[/yellow]")
            return

        if keep_progress is None:
            keep_progress = False
            if registry.has_progress(subject_ids):
                keep_progress = typer.confirm("Some subjects have recorded progress. Keep it?", default=True)

        items = generate_cycle(registry, store, subject_ids, keep_progress=keep_progress)
        console.print(f"[green]✓[/green] Cycle generated with {len(items)} session(s)")
        if store.degraded:
            console.print(f"[yellow]Saved without: {', '.join(sorted(store.dropped_fields))}[/yellow]")
        for position, item in enumerate(items, 1):
            console.print(f"  {position}. {escape(item.name)} ({item.hours_per_session:g}h)")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def view_cycle():
    """Show the cycle, pending sessions first"""
    db = SessionLocal()
    try:
        registry, store = _repositories(db)
        items = store.list_for_display()
        if not items:
            console.print("[yellow]No sessions in the cycle.[/yellow]")
            return

        live_ids = {s.id for s in registry.list_subjects()}
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Done")
        table.add_column("Subject", style="cyan")
        table.add_column("Hours", style="blue")
        table.add_column("Correct / Wrong", style="yellow")
        table.add_column("%")
        table.add_column("Notebook", style="dim")

        for item in items:
            percent = item_percent(item)
            style = BAND_STYLES[performance_band(percent)]
            name = escape(item.name)
            if item.subject_id not in live_ids:
                name += " [dim](deleted subject)[/dim]"
            table.add_row(
                item.id,
                "[green]✓[/green]" if item.completed else "",
                name,
                f"{item.hours_per_session:g}h",
                f"{item.correct} / {item.wrong}",
                f"[{style}]{percent}%[/{style}]",
                escape(item.notebook_url or "")
            )

        console.print(table)
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


def _set_completed(item_id: str, completed: bool):
    db = SessionLocal()
    try:
        registry, store = _repositories(db)
        item = Synchronizer(registry, store).apply_update(item_id, CycleItemUpdate(completed=completed))
        if not item:
            console.print(f"[red]✗[/red] Cycle item {item_id} not found")
            return
        verb = "completed" if completed else "reopened"
        console.print(f"[green]✓[/green] {escape(item.name)} {verb} ({item.correct} correct / {item.wrong} wrong)")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def complete(item_id: str):
    """Mark a session as studied, freezing its tally"""
    _set_completed(item_id, True)


@app.command()
def reopen(item_id: str):
    """Mark a studied session as pending again"""
    _set_completed(item_id, False)


@app.command()
def record(
    item_id: str,
    correct: int = typer.Option(0, help="Correct answers"),
    wrong: int = typer.Option(0, help="Wrong answers"),
    replace: bool = typer.Option(False, "--replace", help="Replace the tally instead of adding to it"),
    notebook_url: Optional[str] = typer.Option(None, help="New notebook link")
):
    """Record quiz results on a pending session (synced to its sibling sessions)"""
    db = SessionLocal()
    try:
        registry, store = _repositories(db)
        mode = PerformanceMode.REPLACE if replace else PerformanceMode.ADD
        item = Synchronizer(registry, store).record_performance(
            item_id, correct=correct, wrong=wrong, mode=mode, notebook_url=notebook_url
        )
        if not item:
            console.print(f"[red]✗[/red] Cycle item {item_id} not found")
            return
        if item.completed:
            console.print(f"[yellow]{escape(item.name)} is completed; its tally stays frozen[/yellow]")
        console.print(f"[green]✓[/green] {escape(item.name)}: {item.correct} correct / {item.wrong} wrong ({item_percent(item)}%)")
    except ValidationError as e:
        _fail(f"Invalid result: {e.errors()[0]['msg']}")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def history(item_id: str):
    """Show the change log of a session"""
    db = SessionLocal()
    try:
        _, store = _repositories(db)
        item = store.get_item(item_id)
        if not item:
            console.print(f"[red]✗[/red] Cycle item {item_id} not found")
            return

        console.print(f"\n[bold]History - {escape(item.name)}[/bold]")
        if not item.history:
            console.print("[dim]No history recorded[/dim]")
        for entry in item.history:
            details = f" ({escape(entry.details)})" if entry.details else ""
            kind = escape(f"[{entry.type.value}]")
            console.print(f"  {entry.timestamp.strftime('%Y-%m-%d %H:%M')} {kind} {escape(entry.action)}{details}")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def delete_item(item_id: str):
    """Remove one session from the cycle"""
    db = SessionLocal()
    try:
        _, store = _repositories(db)
        if store.delete_item(item_id):
            console.print(f"[green]✓[/green] Session removed")
        else:
            console.print(f"[red]✗[/red] Cycle item {item_id} not found")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def clear_cycle():
    """Remove every session (subject tallies are kept)"""
    confirm = typer.confirm("Remove every session from the cycle?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    db = SessionLocal()
    try:
        _, store = _repositories(db)
        count = store.clear_cycle()
        console.print(f"[green]✓[/green] Removed {count} session(s)")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


@app.command()
def summary(subject_id: Optional[str] = typer.Option(None, help="Only this subject")):
    """Show performance and hours for the cycle"""
    db = SessionLocal()
    try:
        _, store = _repositories(db)
        items = store.list_items()
        if subject_id and subject_id not in {sid for sid, _ in subjects_in_cycle(items)}:
            console.print(f"[yellow]Subject {subject_id} has no sessions in the cycle[/yellow]")
            return

        stats = summarize(items, subject_id)
        style = BAND_STYLES[performance_band(stats.correct_pct)]

        console.print(f"\n[bold]Cycle Summary[/bold]\n")
        console.print(f"[cyan]Performance:[/cyan]")
        console.print(f"  Questions: {stats.total}")
        console.print(f"  Correct: {stats.correct} ([{style}]{stats.correct_pct}%[/{style}])")
        console.print(f"  Wrong: {stats.wrong} ({stats.wrong_pct}%)")
        console.print(f"[cyan]Hours:[/cyan]")
        console.print(f"  Studied: {stats.hours_studied:g}h")
        console.print(f"  To study: {stats.hours_to_study:g}h")

        if not subject_id:
            console.print(f"\n[cyan]Subjects in cycle:[/cyan]")
            for sid, name in subjects_in_cycle(items):
                console.print(f"  - {escape(name)} [dim]{sid}[/dim]")
    except StudyCycleError as e:
        _fail(str(e))
    finally:
        db.close()


if __name__ == "__main__":
    app()
