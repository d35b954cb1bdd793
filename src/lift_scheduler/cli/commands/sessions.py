"""Session commands: start, log-set, skip, end, e1rm."""

from datetime import datetime
from typing import Annotated, Optional

import typer

from ...core.errors import ActiveSessionError, RemoteError, SetLoggingError
from ...core.progression import estimate_1rm
from ...core.session_runtime import SessionManager
from ...io.serializers import ValidationError, validate_date
from .. import views
from ..app import CliState, DateOption, TemplateOption, app, get_state, require_profile, run
from .program import resolve_plan


def _load_active(state: CliState) -> SessionManager:
    """Manager restored from active_session.json, or exit when no session is running."""
    try:
        saved = state.store.load_active_session()
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if saved is None:
        views.print_error("No session in progress. Run 'start' first.")
        raise typer.Exit(1)

    manager = state.manager()
    manager.restore(*saved)
    return manager


def _save(state: CliState, manager: SessionManager) -> None:
    state.store.save_active_session(manager.session, manager.items, manager.adjustments)


@app.command()
def start(
    ctx: typer.Context,
    date: DateOption = None,
    template: TemplateOption = None,
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="timed | manual"),
    ] = "timed",
    resume: Annotated[
        bool,
        typer.Option("--resume", "-r", help="Continue the session already in progress"),
    ] = False,
) -> None:
    """
    Start the session planned for a date (or an ad hoc --template session).
    """
    state = get_state(ctx)
    profile = require_profile(state)
    date = date or datetime.now().strftime("%Y-%m-%d")
    try:
        validate_date(date)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if mode not in ("timed", "manual"):
        views.print_error(f"Invalid mode '{mode}'. Use timed or manual.")
        raise typer.Exit(1)

    manager = state.manager()
    saved = state.store.load_active_session()
    if saved is not None:
        manager.restore(*saved)

    if manager.session is not None and resume:
        plan = None
        program = day = None
    else:
        plan, program, day = resolve_plan(state, date, template)

    goals = program.profile_snapshot.goal_weights() if program is not None else dict(profile.goals)

    try:
        session = run(
            manager.start_session(
                plan,
                state.store.user_id(),
                goals=goals,
                mode=mode,
                program_id=program.id if program is not None else None,
                program_day_id=day.id if day is not None else None,
                resume=resume,
            )
        )
    except ActiveSessionError as e:
        views.print_error(str(e))
        views.print_info("Use 'start --resume' to continue it or 'end' to finish it.")
        raise typer.Exit(1)
    except RemoteError as e:
        views.print_error(f"Could not start the session: {e}")
        raise typer.Exit(1)

    _save(state, manager)
    if manager.resumed:
        views.print_success(f"Resumed session {session.id[:8]}")
    else:
        views.print_success(f"Started {mode} session {session.id[:8]}")
    views.print_active_session(manager)


@app.command("log-set")
def log_set(
    ctx: typer.Context,
    item: Annotated[int, typer.Argument(help="Exercise number as shown in the session table")],
    set_index: Annotated[int, typer.Argument(help="Set number (1-based)")],
    weight: Annotated[float, typer.Argument(help="Weight in kg (0 for bodyweight)")],
    reps: Annotated[int, typer.Argument(help="Reps completed")],
    rpe: Annotated[
        Optional[float],
        typer.Option("--rpe", help="Rating of perceived exertion, 1-10"),
    ] = None,
) -> None:
    """
    Log a performed set.  Logging the same set again replaces it.
    """
    state = get_state(ctx)
    manager = _load_active(state)

    try:
        target = manager.item_by_position(item)
        result = run(manager.log_set(target.id, set_index, weight, reps, rpe))
    except (ValueError, SetLoggingError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    _save(state, manager)
    views.print_set_logged(target, result)
    views.print_active_session(manager)


@app.command()
def skip(
    ctx: typer.Context,
    item: Annotated[int, typer.Argument(help="Exercise number as shown in the session table")],
) -> None:
    """Skip an exercise for the rest of the session."""
    state = get_state(ctx)
    manager = _load_active(state)

    try:
        target = manager.item_by_position(item)
        queued = run(manager.skip_exercise(target.id))
    except (ValueError, SetLoggingError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    _save(state, manager)
    views.print_success(f"Skipped {target.name or target.exercise_id}")
    if queued:
        views.print_info("Saved to the offline queue; run 'sync' when back online.")


@app.command()
def end(ctx: typer.Context) -> None:
    """Finish the session and show the summary and personal records."""
    state = get_state(ctx)
    manager = _load_active(state)

    try:
        summary = run(manager.end_session())
    except SetLoggingError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    state.store.clear_active_session()
    views.print_success("Session complete.")
    views.print_summary(summary)
    if state.store.queue().size():
        views.print_info("Some changes are queued; run 'sync' when back online.")


@app.command()
def e1rm(
    weight: Annotated[float, typer.Argument(help="Weight lifted in kg")],
    reps: Annotated[int, typer.Argument(help="Reps completed")],
) -> None:
    """Estimate a one-rep max from a set."""
    try:
        value = estimate_1rm(weight, reps)
    except ValueError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    views.console.print(f"Estimated 1RM: [bold]{value:.1f} kg[/bold]  ({weight:g} kg x {reps})")
