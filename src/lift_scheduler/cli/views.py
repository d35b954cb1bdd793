"""
CLI view formatters using Rich for pretty console output.

Handles table formatting for profiles, programs, session plans, live
sessions, summaries, training history and the offline queue.
"""

from datetime import datetime

from rich.console import Console
from rich.table import Table

from ..core.autoregulation import SetAdjustment
from ..core.models import (
    AdherenceStats,
    OfflineOperation,
    PreviousBest,
    ProgramDay,
    ProgramInstance,
    SessionHistoryEntry,
    SessionPlan,
    SessionSummary,
    TrainingProfile,
    TrainingSessionItem,
    TrendPoint,
)
from ..core.session_runtime import SessionManager, SetLogResult

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

console = Console()


def _fmt_weight(weight_kg: float) -> str:
    return f"{weight_kg:g} kg" if weight_kg > 0 else "BW"


def _fmt_weekdays(weekdays) -> str:
    return ", ".join(WEEKDAY_NAMES[d - 1] for d in weekdays)


def print_profile(profile: TrainingProfile) -> None:
    """Print the training profile as a two-column table."""
    table = Table(title="Training Profile", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    goals = ", ".join(f"{g}={w:g}" for g, w in profile.goals.items()) or "equal weights"
    table.add_row("Goals", goals)
    table.add_row("Training days", _fmt_weekdays(profile.weekdays))
    table.add_row("Frequency", profile.frequency)
    table.add_row("Time window", profile.time_window)
    table.add_row("Experience", profile.experience)
    table.add_row("Equipment", ", ".join(profile.equipment) or "none (bodyweight)")
    table.add_row("Injuries", ", ".join(profile.injuries) or "-")
    table.add_row("Forbidden movements", ", ".join(profile.forbidden_movements) or "-")
    baselines = ", ".join(f"{k}={v:g}" for k, v in profile.baselines.items()) or "-"
    table.add_row("Baseline e1RM (kg)", baselines)
    console.print(table)


def print_program(program: ProgramInstance, days: list[ProgramDay], today: str | None = None) -> None:
    """
    Print the program calendar, marking the next training day.

    Args:
        program: Active program
        days: Its days, in date order
        today: ISO date used to mark past/next days (default: today)
    """
    today = today or datetime.now().strftime("%Y-%m-%d")
    plan = program.plan
    goals = ", ".join(f"{g} {w:.0%}" for g, w in plan.goals if w > 0)

    console.print(
        f"[bold]Program {program.id[:8]}[/bold]  start {program.start_date}  "
        f"{_fmt_weekdays(program.weekdays)}  frequency {plan.frequency}"
    )
    console.print(f"Goals: {goals}")
    for warning in plan.warnings:
        print_warning(warning)

    table = Table(title="Program Calendar")
    table.add_column("Date", style="cyan")
    table.add_column("Wk", justify="right")
    table.add_column("Day", justify="right")
    table.add_column("Session", style="magenta")
    table.add_column("Intensity", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("", width=6)

    weeks = {w.week_index: w for w in plan.weeks}
    next_marked = False
    for day in days:
        week = weeks.get(day.week_index)
        marker = ""
        if day.date == today:
            marker = "[bold green]today[/bold green]"
            next_marked = True
        elif day.date > today and not next_marked:
            marker = "[green]next[/green]"
            next_marked = True
        date_cell = f"[dim]{day.date}[/dim]" if day.date < today else day.date
        table.add_row(
            date_cell,
            str(day.week_index),
            str(day.day_index),
            day.label,
            f"{week.intensity:.0%}" if week else "-",
            f"x{week.volume:.2f}" if week else "-",
            marker,
        )
    console.print(table)


def format_plan_table(plan: SessionPlan) -> Table:
    """
    Create a Rich table for a session plan.

    Args:
        plan: SessionPlan to display

    Returns:
        Rich Table object
    """
    title = f"{plan.label} - week {plan.week_index}"
    if plan.date:
        title = f"{plan.date}  {title}"
    table = Table(title=title)

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Exercise", style="cyan")
    table.add_column("Tier")
    table.add_column("Sets", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("Weight", justify="right", style="bold")
    table.add_column("Rest", justify="right")
    table.add_column("Conf.", justify="right")

    for n, ex in enumerate(plan.exercises, 1):
        first = ex.sets[0]
        tier = "[bold]primary[/bold]" if ex.priority == "primary" else "accessory"
        table.add_row(
            str(n),
            ex.name,
            tier,
            str(len(ex.sets)),
            str(first.target_reps),
            _fmt_weight(first.suggested_weight_kg),
            f"{first.rest_seconds}s",
            f"{ex.trace.confidence:.2f}",
        )
    return table


def print_session_plan(plan: SessionPlan) -> None:
    console.print(format_plan_table(plan))
    console.print(f"Estimated duration: [bold]{plan.estimated_minutes} min[/bold], {plan.total_sets} sets")
    for slot in plan.unfilled_slots:
        print_warning(f"No exercise available for {slot}")


def _fmt_item_sets(item: TrainingSessionItem) -> str:
    done = {p.index: p for p in item.performed_sets}
    cells = []
    for planned in item.planned_sets:
        performed = done.get(planned.index)
        if performed is None:
            cells.append(f"[dim]{planned.target_reps}@{planned.suggested_weight_kg:g}[/dim]")
        else:
            rpe = f" rpe{performed.rpe:g}" if performed.rpe is not None else ""
            cells.append(f"[green]{performed.reps}@{performed.weight_kg:g}{rpe}[/green]")
    return "  ".join(cells)


def print_active_session(manager: SessionManager) -> None:
    """Print the live session: each item with planned vs performed sets and the next set."""
    session = manager.session
    if session is None:
        return
    table = Table(title=f"Session {session.id[:8]} ({session.mode}) started {session.started_at}")
    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Exercise", style="cyan")
    table.add_column("Sets (reps@kg)")
    table.add_column("Next", style="bold")

    for n, item in enumerate(manager.items, 1):
        if item.skipped:
            next_cell = "[yellow]skipped[/yellow]"
        else:
            nxt = manager.next_set(item.id)
            next_cell = (
                f"set {nxt.index}: {nxt.target_reps} x {_fmt_weight(nxt.suggested_weight_kg)}"
                if nxt
                else "[green]done[/green]"
            )
        table.add_row(str(n), item.name or item.exercise_id, _fmt_item_sets(item), next_cell)
    console.print(table)


def print_adjustment(adjustment: SetAdjustment) -> None:
    console.print(
        f"[magenta]Adjusted set {adjustment.set_index}:[/magenta] "
        f"{adjustment.new_target_reps} reps x {_fmt_weight(adjustment.new_suggested_weight_kg)}"
        f"  [dim]({adjustment.rule_id}: {adjustment.rationale})[/dim]"
    )


def print_set_logged(item: TrainingSessionItem, result: SetLogResult) -> None:
    p = result.performed
    rpe = f" @ RPE {p.rpe:g}" if p.rpe is not None else ""
    print_success(f"Logged {item.name or item.exercise_id} set {p.index}: {p.reps} x {_fmt_weight(p.weight_kg)}{rpe}")
    if result.queued:
        print_info("Saved to the offline queue; run 'sync' when back online.")
    if result.adjustment is not None:
        print_adjustment(result.adjustment)
    console.print(f"Rest {result.rest_seconds}s")
    if result.fatigue:
        print_warning("Several sets at RPE 9+. Consider trimming accessory work today.")


def print_summary(summary: SessionSummary) -> None:
    """Print the end-of-session summary and personal records."""
    minutes, seconds = divmod(summary.duration_seconds, 60)
    table = Table(title="Session Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Duration", f"{minutes}:{seconds:02d}")
    table.add_row("Exercises completed", str(summary.completed_exercises))
    table.add_row("Exercises skipped", str(summary.skipped_exercises))
    table.add_row("Total sets", str(summary.total_sets))
    table.add_row("Total volume", f"{summary.total_volume_kg:g} kg")
    console.print(table)

    if summary.personal_records:
        prs = Table(title="Personal Records")
        prs.add_column("Exercise", style="cyan")
        prs.add_column("Metric")
        prs.add_column("New", justify="right", style="bold green")
        prs.add_column("Previous", justify="right", style="dim")
        for pr in summary.personal_records:
            prev = f"{pr.previous_value:g}" if pr.previous_value is not None else "-"
            prs.add_row(pr.exercise_id, pr.metric, f"{pr.value:g}", prev)
        console.print(prs)
    if summary.pr_failures:
        print_warning(f"PR check unavailable for: {', '.join(summary.pr_failures)}")


def print_history(history: list[SessionHistoryEntry]) -> None:
    """Print finished sessions, newest first."""
    table = Table(title="Training History")
    table.add_column("Date", style="cyan")
    table.add_column("Mode")
    table.add_column("Exercises", justify="right")
    table.add_column("Sets", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("PRs", justify="right", style="bold green")

    for entry in reversed(history):
        summary = entry.session.summary
        done = sum(1 for i in entry.items if i.performed_sets and not i.skipped)
        if summary is not None:
            minutes = summary.duration_seconds // 60
            table.add_row(
                entry.date,
                entry.session.mode,
                f"{done}/{len(entry.items)}",
                str(summary.total_sets),
                f"{summary.total_volume_kg:g} kg",
                f"{minutes} min",
                str(len(summary.personal_records)) if summary.personal_records else "",
            )
        else:
            sets = sum(len(i.performed_sets) for i in entry.items)
            table.add_row(entry.date, entry.session.mode, f"{done}/{len(entry.items)}", str(sets), "-", "-", "")
    console.print(table)


def print_progress(
    exercise_id: str,
    e1rm: list[TrendPoint],
    best: list[TrendPoint],
    volume: list[TrendPoint],
    direction: str,
) -> None:
    """Print one exercise's per-date e1RM, best load and volume."""
    best_by_date = {p.date: p.value for p in best}
    e1rm_by_date = {p.date: p.value for p in e1rm}

    table = Table(title=f"Progress: {exercise_id}")
    table.add_column("Date", style="cyan")
    table.add_column("e1RM", justify="right", style="bold")
    table.add_column("Best set", justify="right")
    table.add_column("Volume", justify="right")
    for point in volume:
        e = e1rm_by_date.get(point.date)
        b = best_by_date.get(point.date)
        table.add_row(
            point.date,
            f"{e:.1f} kg" if e is not None else "BW",
            _fmt_weight(b) if b is not None else "BW",
            f"{point.value:g} kg",
        )
    console.print(table)

    color = {"increasing": "green", "decreasing": "red"}.get(direction, "yellow")
    console.print(f"e1RM trend: [{color}]{direction.replace('_', ' ')}[/{color}]")


def print_records(bests: dict[str, PreviousBest]) -> None:
    """Print all-time bests per exercise."""
    table = Table(title="Personal Records")
    table.add_column("Exercise", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("e1RM", justify="right", style="bold green")
    table.add_column("Session volume", justify="right")

    for exercise_id, best in bests.items():
        table.add_row(
            exercise_id,
            _fmt_weight(best.weight_kg or 0.0),
            str(best.reps) if best.reps is not None else "-",
            f"{best.e1rm:.1f} kg" if best.e1rm else "-",
            f"{best.volume:g} kg" if best.volume else "-",
        )
    console.print(table)


def print_adherence(stats: AdherenceStats) -> None:
    """Print program adherence and streaks."""
    table = Table(title="Program Adherence", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Training days due", str(stats.planned_days))
    table.add_row("Completed", str(stats.completed_days))
    table.add_row("Missed", str(stats.missed_days))
    table.add_row("Adherence", f"{stats.adherence_pct}%")
    table.add_row("Current streak", str(stats.current_streak))
    table.add_row("Longest streak", str(stats.longest_streak))
    console.print(table)


def format_queue_table(operations: list[OfflineOperation]) -> Table:
    table = Table(title="Offline Queue")
    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Operation", style="cyan")
    table.add_column("Key")
    table.add_column("State")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error", style="red")

    for n, op in enumerate(operations, 1):
        table.add_row(
            str(n),
            op.type.value,
            op.idempotency_key,
            op.state.value,
            str(op.attempts),
            op.last_error or "",
        )
    return table


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning: {message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]{message}[/blue]")


def confirm_action(message: str) -> bool:
    """
    Prompt user for confirmation.

    Args:
        message: Confirmation message

    Returns:
        True if confirmed, False otherwise
    """
    response = console.input(f"{message} [y/N]: ")
    return response.lower() in ("y", "yes")
