"""CLI commands for the progression engine.

Commands:
- init-db: Create the SQLite schema
- enroll: Enroll a student in a course
- unlock-status: Show whether a content item is accessible
- course-progress: Recompute and show a student's course progress
- attempts: Show a student's attempt history on a quiz/homework or standalone quiz
"""

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from progression.config.app_config import load_app_config
from progression.core.access import content_unlock_status
from progression.core.attempt_session import get_attempt_results, get_quiz_results
from progression.core.content_graph import load_course
from progression.core.errors import ProgressionError
from progression.core.progress_service import get_course_progress
from progression.db.database import init_db
from progression.db.enrollment_repository import enroll as do_enroll

app = typer.Typer(
    name="progression",
    help="Content progression and assessment engine.",
    no_args_is_help=True,
)

console = Console()


def _data_dir() -> Path:
    """Data directory: PROGRESSION_DATA_DIR, then the configured path."""
    return Path(os.environ.get("PROGRESSION_DATA_DIR", load_app_config().paths["data_dir"]))


def _open_db() -> Path:
    db_path = Path(load_app_config().paths["db_path"])
    init_db(db_path)
    return db_path


def _fail(error: ProgressionError) -> None:
    console.print(f"[red]✗ {error.message}[/red]")
    raise typer.Exit(code=1)


@app.command(name="init-db")
def init_db_command() -> None:
    """Create the database schema (idempotent)."""
    db_path = _open_db()
    console.print(f"[green]✓ Database ready:[/green] {db_path}")


@app.command()
def enroll(
    student_id: str = typer.Argument(..., help="Student identifier"),
    course_id: str = typer.Argument(..., help="Course identifier (data/courses/{id}.json)"),
    starting_order: int | None = typer.Option(
        None, "--starting-order", help="Bundle order the student joins from"
    ),
) -> None:
    """Enroll a student in a course."""
    data_dir = _data_dir()
    course = load_course(course_id, data_dir)
    if course is None:
        console.print(f"[red]✗ Course not found: {course_id}[/red]")
        raise typer.Exit(code=1)

    _open_db()
    enrollment = do_enroll(student_id, course_id, starting_order=starting_order)
    console.print(
        f"[green]✓ {student_id} enrolled in {course.title or course_id}[/green] "
        f"(progress {enrollment.progress}%)"
    )


@app.command(name="unlock-status")
def unlock_status(
    student_id: str = typer.Argument(..., help="Student identifier"),
    content_id: str = typer.Argument(..., help="Content identifier"),
) -> None:
    """Show whether a content item is unlocked for a student."""
    _open_db()
    try:
        status = content_unlock_status(student_id, content_id, _data_dir())
    except ProgressionError as e:
        _fail(e)

    if status.unlocked:
        console.print(f"[green]✓ {content_id}: unlocked[/green]")
    else:
        console.print(f"[yellow]🔒 {content_id}: {status.reason}[/yellow]")


@app.command(name="course-progress")
def course_progress(
    student_id: str = typer.Argument(..., help="Student identifier"),
    course_id: str = typer.Argument(..., help="Course identifier"),
) -> None:
    """Recompute and show a student's progress in a course."""
    _open_db()
    try:
        report = get_course_progress(student_id, course_id, _data_dir())
    except ProgressionError as e:
        _fail(e)

    progress = report.course_progress
    color = "green" if progress.is_completed else "cyan"
    console.print(
        Panel(
            f"[bold {color}]{progress.progress}%[/bold {color}] "
            f"- {len(progress.completed_topics)}/{len(progress.topics)} topics completed",
            title=f"[bold]{course_id}[/bold]",
            expand=False,
        )
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Topic", style="cyan")
    table.add_column("Required", justify="center")
    table.add_column("Progress", justify="right")
    for topic in progress.topics:
        table.add_row(
            topic.title or topic.topic_id,
            f"{topic.completed_required}/{topic.total_required}",
            f"{topic.percentage}%",
        )
    console.print(table)

    if report.aggregate_error:
        console.print(f"[yellow]⚠ {report.aggregate_error}[/yellow]")


@app.command()
def attempts(
    student_id: str = typer.Argument(..., help="Student identifier"),
    content_id: str = typer.Argument(..., help="Quiz or homework content identifier"),
    quiz: bool = typer.Option(False, "--quiz", help="Look up a standalone quiz id"),
) -> None:
    """Show a student's attempt history on a quiz or homework."""
    _open_db()
    lookup = get_quiz_results if quiz else get_attempt_results
    try:
        results = lookup(student_id, content_id, _data_dir())
    except ProgressionError as e:
        _fail(e)

    console.print(
        f"[bold]{results.title or content_id}[/bold] - {results.completion_status} | "
        f"best {results.best_score}% | "
        f"attempts {results.attempts_used}/{results.max_attempts} | "
        f"passing {results.passing_score}%"
    )

    if not results.attempts:
        console.print("[dim]No finished attempts yet.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=4)
    table.add_column("Status", width=10)
    table.add_column("Score", justify="right", width=7)
    table.add_column("Correct", justify="center", width=9)
    table.add_column("Result", justify="center", width=8)
    for attempt in results.attempts:
        if attempt.passed:
            icon = "[green]✓[/green]"
        else:
            icon = "[red]✗[/red]"
        table.add_row(
            str(attempt.attempt_number),
            attempt.status.value,
            f"{attempt.score or 0}%",
            f"{attempt.correct_answers or 0}/{attempt.total_questions or 0}",
            icon,
        )
    console.print(table)


if __name__ == "__main__":
    app()
