"""
Typer CLI for the fastrev adaptive learning engine.

Commands:
    fastrev curriculum validate PATH   - Validate a curriculum document
    fastrev curriculum order PATH      - Show topological levels and unlock thresholds
    fastrev schedule preview           - Show revision intervals from settings
    fastrev simulate CODE              - Play a score sequence through the engine
    fastrev info                       - Show configuration
    fastrev version                    - Show version information

Usage:
    fastrev --help
    fastrev curriculum validate data/curriculum/cp2025_sample.yaml
    fastrev schedule preview --count 8
    fastrev simulate CP.MA.N1.1 --scores 85,90,40,95
"""

from __future__ import annotations

import os
import sys

# Fix Windows encoding issues for Unicode characters (level glyphs, check marks)
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from datetime import datetime, timedelta, timezone
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from fastrev import __version__
from fastrev.core.errors import ConfigurationError, EngineError

app = typer.Typer(
    help="fastrev CLI: competence graph, mastery evaluation and spaced revision",
    no_args_is_help=True,
)

console = Console()


def configure_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """Replace loguru's default sink with stderr (and an optional rotating file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{message}</level>",
    )
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


# ========================================
# Curriculum Commands
# ========================================

curriculum_app = typer.Typer(help="Curriculum documents (validate, order)")
app.add_typer(curriculum_app, name="curriculum")


def _load_or_exit(path: Path):
    from fastrev.adaptive.scoring import ScoringCatalog
    from fastrev.graph.curriculum_loader import load_curriculum

    try:
        curriculum = load_curriculum(path)
        ScoringCatalog.from_config(curriculum.scoring_profiles)
    except ConfigurationError as e:
        rprint(f"[red]✗[/red] {e}")
        if e.cycle:
            rprint(f"  [yellow]Cycle:[/yellow] {' -> '.join(e.cycle)}")
        raise typer.Exit(code=1)
    return curriculum


@curriculum_app.command("validate")
def curriculum_validate(
    path: Path = typer.Argument(..., help="Curriculum document (.yaml, .yml or .json)"),
) -> None:
    """
    Validate a curriculum document.

    Fails with exit code 1 on schema errors, unknown competences,
    out-of-range edges or cycles among required prerequisites.
    """
    curriculum = _load_or_exit(path)
    graph = curriculum.graph
    required = sum(1 for edge in graph.edges if edge.is_required)

    rprint(f"[green]✓[/green] {curriculum.name}: valid")
    rprint(f"  Competences:   {len(graph)}")
    rprint(f"  Prerequisites: {len(graph.edges)} ({required} required)")
    rprint(f"  Levels:        {max((graph.level_of(c) for c in graph.topological_order), default=-1) + 1}")
    if curriculum.scoring_profiles:
        rprint(f"  Scoring:       {', '.join(sorted(curriculum.scoring_profiles))}")


@curriculum_app.command("order")
def curriculum_order(
    path: Path = typer.Argument(..., help="Curriculum document (.yaml, .yml or .json)"),
) -> None:
    """Show competences in unlock order with their required prerequisites."""
    graph = _load_or_exit(path).graph

    table = Table(title="Curriculum Order", show_header=True)
    table.add_column("Level", justify="right", style="cyan")
    table.add_column("Code", style="bold")
    table.add_column("Label")
    table.add_column("Requires", style="yellow")
    table.add_column("Weight", justify="right", style="dim")

    for code in graph.topological_order:
        node = graph.node(code)
        requires = ", ".join(
            f"{edge.source} ≥{edge.threshold}%" for edge in graph.prerequisites_of(code) if edge.is_required
        )
        weight = graph.competence_weight(code)
        table.add_row(
            str(graph.level_of(code)),
            code,
            node.label,
            requires or "-",
            f"{weight:.1f}" if weight else "",
        )

    console.print(table)


# ========================================
# Schedule Commands
# ========================================

schedule_app = typer.Typer(help="Revision scheduling")
app.add_typer(schedule_app, name="schedule")


@schedule_app.command("preview")
def schedule_preview(
    count: int = typer.Option(6, "--count", "-n", min=1, max=50, help="Number of steps to show"),
) -> None:
    """Show failure backoff and success intervals for the configured settings."""
    from fastrev.delivery.scheduler import SchedulerConfig, backoff_days, growth_days

    config = SchedulerConfig.from_settings(get_settings())

    table = Table(title="Revision Intervals (days)", show_header=True)
    table.add_column("n", justify="right", style="cyan")
    table.add_column("After n failures", justify="right", style="red")
    table.add_column("After n successes", justify="right", style="green")

    for n in range(1, count + 1):
        table.add_row(str(n), f"{backoff_days(n, config):g}", f"{growth_days(n, config):.1f}")

    console.print(table)
    rprint(
        f"[dim]Backoff cap {config.max_delay_days:g}d, "
        f"interval cap {config.max_interval_days:g}d[/dim]"
    )


# ========================================
# Simulation
# ========================================


@app.command("simulate")
def simulate(
    competence: str = typer.Argument(..., help="Competence code to practice"),
    scores: str = typer.Option("85,90,95", "--scores", "-s", help="Comma-separated attempt scores"),
    curriculum: Path | None = typer.Option(
        None, "--curriculum", "-c", help="Curriculum document (default: from settings)"
    ),
    student: str = typer.Option("demo-student", "--student", help="Student identifier"),
) -> None:
    """
    Play a sequence of correctness scores through a fresh engine.

    Each attempt is spaced one day apart; the table shows the resulting
    mastery level, progress, difficulty and next revision date.
    """
    from fastrev.adaptive.evaluator import MasteryEvaluator, scoring_defaults
    from fastrev.adaptive.learning_engine import LearningEngine
    from fastrev.adaptive.models import AttemptResult
    from fastrev.adaptive.scoring import ScoringCatalog
    from fastrev.delivery.scheduler import SchedulerConfig

    settings = get_settings()
    loaded = _load_or_exit(curriculum or Path(settings.curriculum_path))

    try:
        values = [float(value) for value in scores.split(",") if value.strip()]
    except ValueError:
        rprint(f"[red]✗[/red] Invalid scores: {scores}")
        raise typer.Exit(code=1)

    now = [datetime(2025, 9, 1, 9, 0, tzinfo=timezone.utc)]

    def clock() -> datetime:
        return now[0]

    engine = LearningEngine(
        loaded.graph,
        evaluator=MasteryEvaluator.from_settings(
            settings,
            catalog=ScoringCatalog.from_config(loaded.scoring_profiles, defaults=scoring_defaults(settings)),
            clock=clock,
        ),
        scheduler_config=SchedulerConfig.from_settings(settings),
        clock=clock,
    )
    engine.enroll_student(student)

    table = Table(title=f"Simulation: {competence}", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Level")
    table.add_column("Progress", justify="right")
    table.add_column("Difficulty", justify="right")
    table.add_column("Next revision", style="cyan")
    table.add_column("Unlocked", style="green")

    for i, score in enumerate(values, start=1):
        attempt = AttemptResult(
            student_id=student,
            competence_code=competence,
            exercise_id=f"sim-{i}",
            success=score >= settings.pass_threshold,
            score=score,
            time_spent_seconds=30.0,
        )
        try:
            outcome = engine.record_attempt(attempt)
        except EngineError as e:
            rprint(f"[red]✗[/red] {e}")
            raise typer.Exit(code=1)

        state = outcome.new_state
        level = state.mastery_level
        table.add_row(
            str(i),
            f"{score:g}",
            f"[{level.color}]{level.emoji} {level.display_name}[/{level.color}]",
            f"{state.progress_percent}%",
            f"{state.difficulty_multiplier:.2f}",
            outcome.revision.scheduled_for.strftime("%Y-%m-%d") if outcome.revision else outcome.evaluation.reason or "-",
            ", ".join(outcome.unlocked),
        )
        now[0] += timedelta(days=1)

    console.print(table)


# ========================================
# Info Commands
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="fastrev Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Curriculum", settings.curriculum_path)
    table.add_row("Pass threshold", f"{settings.pass_threshold:g}")
    table.add_row("Min trace samples", str(settings.min_trace_samples))
    for level, threshold in settings.get_level_thresholds().items():
        table.add_row(f"Threshold: {level}", f"{threshold}%")
    for key, value in settings.get_revision_config().items():
        table.add_row(key, f"{value:g}")
    table.add_row("Log level", settings.log_level)

    console.print(table)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]fastrev-engine[/bold] v{__version__}")
    rprint("  Competence graph, mastery evaluation and spaced revision")


def main() -> None:
    """Entry point for the CLI."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    app()


if __name__ == "__main__":
    main()
