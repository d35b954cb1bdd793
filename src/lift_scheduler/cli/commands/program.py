"""Program commands: create-program, show-program, preview."""

import json
from datetime import datetime
from typing import Annotated, Optional

import typer

from ...core.errors import ProgramGenerationError, RemoteError
from ...core.history import load_last_performances
from ...core.program_days import ProgramDayCache, create_program
from ...core.session_engine import (
    build_adhoc_session,
    build_session_from_program_day,
    explain_session_plan,
)
from ...io.serializers import ValidationError, session_plan_to_dict, validate_date
from .. import views
from ..app import DateOption, TemplateOption, app, get_state, load_program_day, require_profile, run


def resolve_plan(state, date: str, template: Optional[str]):
    """
    Session plan for *date*: the program day if one is scheduled, else the ad hoc template.

    Loads progress from the lifter's last performance of each exercise
    before *date*; exercises never trained fall back to the baselines.

    Returns:
        (plan, program, day); program/day are None for ad hoc plans

    Raises:
        typer.Exit: When nothing is scheduled and no template was given
    """
    remote = state.store.remote()
    user_id = state.store.user_id()
    program, day = run(load_program_day(remote, user_id, date))
    history = run(load_last_performances(remote, user_id, before_date=date))

    if day is not None and template is None:
        return build_session_from_program_day(day, program.profile_snapshot, history=history), program, day

    if template is None:
        if program is None:
            views.print_error("No active program. Run 'create-program' or pass --template.")
        else:
            views.print_error(f"No training scheduled on {date}. Pass --template for an ad hoc session.")
        raise typer.Exit(1)

    try:
        snapshot = program.profile_snapshot if program is not None else None
        return build_adhoc_session(template, snapshot=snapshot, history=history), None, None
    except ValueError as e:
        views.print_error(str(e))
        raise typer.Exit(1)


@app.command("create-program")
def create_program_cmd(
    ctx: typer.Context,
    start_date: Annotated[
        Optional[str],
        typer.Option("--start-date", "-s", help="First day of the program (YYYY-MM-DD, default: today)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Replace an active program without asking"),
    ] = False,
) -> None:
    """
    Create a new 4-week program from the current profile.

    Any active program is cancelled.
    """
    state = get_state(ctx)
    profile = require_profile(state)
    start_date = start_date or datetime.now().strftime("%Y-%m-%d")

    try:
        validate_date(start_date)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    remote = state.store.remote()
    user_id = state.store.user_id()

    existing = run(remote.get_active_program(user_id))
    if existing is not None and not yes:
        if not views.confirm_action(f"Replace the active program started {existing.start_date}?"):
            views.print_info("Cancelled.")
            raise typer.Exit(0)

    try:
        program, days = run(
            create_program(
                remote,
                user_id,
                profile,
                profile.weekdays,
                start_date,
                event_log=state.store.event_log(),
            )
        )
    except (ProgramGenerationError, RemoteError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    views.print_success(f"Created program with {len(days)} training days starting {start_date}")
    views.print_program(program, days)


@app.command("show-program")
def show_program(ctx: typer.Context) -> None:
    """Show the active program calendar."""
    state = get_state(ctx)
    require_profile(state)
    remote = state.store.remote()

    async def _load():
        program = await remote.get_active_program(state.store.user_id())
        if program is None:
            return None, []
        return program, await ProgramDayCache(remote).get_days(program)

    program, days = run(_load())
    if program is None:
        views.print_error("No active program. Run 'create-program' first.")
        raise typer.Exit(1)
    views.print_program(program, days)


@app.command()
def preview(
    ctx: typer.Context,
    date: DateOption = None,
    template: TemplateOption = None,
    explain: Annotated[
        bool,
        typer.Option("--explain", "-x", help="Show why each exercise and load was chosen"),
    ] = False,
    json_out: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON for machine processing"),
    ] = False,
) -> None:
    """
    Preview the session planned for a date without starting it.
    """
    state = get_state(ctx)
    require_profile(state)
    date = date or datetime.now().strftime("%Y-%m-%d")
    try:
        validate_date(date)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    plan, _, _ = resolve_plan(state, date, template)
    if json_out:
        print(json.dumps(session_plan_to_dict(plan), indent=2))
        return

    views.print_session_plan(plan)
    if explain:
        views.console.print()
        views.console.print(explain_session_plan(plan))
